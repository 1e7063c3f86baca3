"""
Tests for code dispatch and the SES/SNS transports.
"""

import threading

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from auth_service.core.errors import DeliveryFailed
from auth_service.models import ActorType, ChannelType
from auth_service.services.email_service import EmailService
from auth_service.services.messaging import CodeMessage, MessageDispatcher
from auth_service.services.sms_service import SMSService


class FakeTransport:
    def __init__(self, result=True, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def send_sign_in_code(self, destination, code, expires_in_minutes, **kwargs):
        self.calls.append((destination, code, expires_in_minutes, kwargs))
        if self.error is not None:
            raise self.error
        return self.result


class BlockingTransport:
    """Never returns until released."""

    def __init__(self):
        self.release = threading.Event()

    def send_sign_in_code(self, *args, **kwargs):
        self.release.wait(timeout=5)
        return True


class FakeSES:
    def __init__(self, error=None):
        self.error = error
        self.sent = []

    def send_email(self, **kwargs):
        if self.error is not None:
            raise self.error
        self.sent.append(kwargs)
        return {"MessageId": "ses-123"}


class FakeSNS:
    def __init__(self, error=None):
        self.error = error
        self.published = []

    def publish(self, **kwargs):
        if self.error is not None:
            raise self.error
        self.published.append(kwargs)
        return {"MessageId": "sns-123"}


def email_message(actor_type=ActorType.USER):
    return CodeMessage(
        actor_type=actor_type,
        channel_type=ChannelType.EMAIL,
        destination="user@example.com",
        code="042917",
        expires_in_minutes=10,
        ip_address="203.0.113.7",
        user_agent="Browser/1.0",
    )


def phone_message():
    return CodeMessage(
        actor_type=ActorType.USER,
        channel_type=ChannelType.PHONE,
        destination="+14155550123",
        code="042917",
        expires_in_minutes=10,
    )


class TestMessageDispatcher:
    def test_email_goes_to_email_transport(self):
        email, sms = FakeTransport(), FakeTransport()
        MessageDispatcher(email, sms).send_code(email_message(ActorType.ADMIN))

        assert sms.calls == []
        destination, code, minutes, kwargs = email.calls[0]
        assert (destination, code, minutes) == ("user@example.com", "042917", 10)
        assert kwargs == {"ip_address": "203.0.113.7", "user_agent": "Browser/1.0", "admin": True}

    def test_phone_goes_to_sms_transport(self):
        email, sms = FakeTransport(), FakeTransport()
        MessageDispatcher(email, sms).send_code(phone_message())

        assert email.calls == []
        assert sms.calls == [("+14155550123", "042917", 10, {})]

    def test_transport_failure_raises(self):
        dispatcher = MessageDispatcher(FakeTransport(result=False), FakeTransport())
        with pytest.raises(DeliveryFailed):
            dispatcher.send_code(email_message())

    def test_transport_exception_raises(self):
        dispatcher = MessageDispatcher(FakeTransport(), FakeTransport(error=RuntimeError("boom")))
        with pytest.raises(DeliveryFailed):
            dispatcher.send_code(phone_message())

    def test_slow_transport_times_out(self):
        slow = BlockingTransport()
        dispatcher = MessageDispatcher(slow, FakeTransport(), timeout_seconds=0.05)
        try:
            with pytest.raises(DeliveryFailed):
                dispatcher.send_code(email_message())
        finally:
            slow.release.set()


class TestEmailService:
    def test_body_carries_code_and_request_details(self):
        ses = FakeSES()

        assert EmailService(ses_client=ses).send_sign_in_code(
            "user@example.com", "042917", 10, ip_address="203.0.113.7", user_agent="Browser/1.0"
        ) is True

        sent = ses.sent[0]
        assert sent["Destination"] == {"ToAddresses": ["user@example.com"]}
        text = sent["Message"]["Body"]["Text"]["Data"]
        html = sent["Message"]["Body"]["Html"]["Data"]
        for body in (text, html):
            assert "042917" in body
            assert "203.0.113.7" in body
            assert "Browser/1.0" in body
            assert "10 minutes" in body
        assert "Admin" not in sent["Message"]["Subject"]["Data"]

    def test_admin_subject(self):
        ses = FakeSES()
        EmailService(ses_client=ses).send_sign_in_code("ops@example.com", "123456", 10, admin=True)
        assert "Admin" in ses.sent[0]["Message"]["Subject"]["Data"]

    def test_user_agent_is_escaped_in_html(self):
        ses = FakeSES()
        EmailService(ses_client=ses).send_sign_in_code(
            "user@example.com", "123456", 10, user_agent="<script>alert(1)</script>"
        )
        html = ses.sent[0]["Message"]["Body"]["Html"]["Data"]
        assert "<script>" not in html

    def test_client_error_returns_false(self):
        error = ClientError({"Error": {"Code": "MessageRejected", "Message": "Email address is not verified"}}, "SendEmail")
        assert EmailService(ses_client=FakeSES(error=error)).send_sign_in_code("user@example.com", "123456", 10) is False

    def test_connection_error_returns_false(self):
        error = EndpointConnectionError(endpoint_url="https://email.eu-central-1.amazonaws.com")
        assert EmailService(ses_client=FakeSES(error=error)).send_sign_in_code("user@example.com", "123456", 10) is False


class TestSMSService:
    def test_message_text(self):
        sns = FakeSNS()
        service = SMSService(sns_client=sns)
        service.brand_name = "Made in World"

        assert service.send_sign_in_code("+14155550123", "042917", 10) is True

        published = sns.published[0]
        assert published["PhoneNumber"] == "+14155550123"
        assert published["Message"] == (
            "Your Made in World verification code is: 042917. "
            "This code expires in 10 minutes. If you didn't request this, please ignore."
        )
        assert published["MessageAttributes"]["AWS.SNS.SMS.SMSType"]["StringValue"] == "Transactional"

    def test_client_error_returns_false(self):
        error = ClientError({"Error": {"Code": "InvalidParameter", "Message": "Invalid phone number"}}, "Publish")
        assert SMSService(sns_client=FakeSNS(error=error)).send_sign_in_code("+14155550123", "123456", 10) is False
