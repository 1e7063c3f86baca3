"""
Dispatches one-time codes to the right transport with a bounded wait.

Transports return success/failure; the dispatcher turns a failure, an
exception or a timeout into DeliveryFailed.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import Optional

from auth_service.core.errors import DeliveryFailed
from auth_service.models.verification_code import ActorType, ChannelType

logger = logging.getLogger(__name__)

# Transport calls run here so the request thread can stop waiting on a stuck call
_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="code_dispatch")


@dataclass(frozen=True)
class CodeMessage:
    """A plaintext code on its way to a recipient. Never logged."""
    actor_type: ActorType
    channel_type: ChannelType
    destination: str
    code: str
    expires_in_minutes: int
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class MessageDispatcher:
    """
    Routes a CodeMessage to email or SMS.

    Args:
        email_service: Object with send_sign_in_code(to_email, code, expires_in_minutes, ...)
        sms_service: Object with send_sign_in_code(phone, code, expires_in_minutes)
        timeout_seconds: Longest time to wait for the transport
    """

    def __init__(self, email_service, sms_service, timeout_seconds: float = 10):
        self.email_service = email_service
        self.sms_service = sms_service
        self.timeout_seconds = timeout_seconds

    def _deliver(self, message: CodeMessage) -> bool:
        if message.channel_type == ChannelType.PHONE:
            return self.sms_service.send_sign_in_code(
                message.destination, message.code, message.expires_in_minutes
            )
        return self.email_service.send_sign_in_code(
            message.destination,
            message.code,
            message.expires_in_minutes,
            ip_address=message.ip_address,
            user_agent=message.user_agent,
            admin=message.actor_type == ActorType.ADMIN,
        )

    def send_code(self, message: CodeMessage) -> None:
        """
        Deliver a code or raise.

        Raises:
            DeliveryFailed: transport reported failure, raised, or timed out
        """
        future = _executor.submit(self._deliver, message)
        try:
            delivered = future.result(timeout=self.timeout_seconds)
        except FuturesTimeoutError:
            future.cancel()
            logger.error(
                f"Code dispatch timed out after {self.timeout_seconds}s "
                f"(channel={message.channel_type.value})"
            )
            raise DeliveryFailed()
        except Exception as e:
            logger.exception(f"Code dispatch raised (channel={message.channel_type.value}): {e}")
            raise DeliveryFailed() from e

        if not delivered:
            raise DeliveryFailed()


_default_dispatcher: Optional[MessageDispatcher] = None


def get_default_dispatcher() -> MessageDispatcher:
    """Lazily build the SES/SNS dispatcher so importing this module needs no AWS config."""
    global _default_dispatcher
    if _default_dispatcher is None:
        from auth_service.core.config import settings
        from auth_service.services.email_service import EmailService
        from auth_service.services.sms_service import SMSService

        _default_dispatcher = MessageDispatcher(
            EmailService(),
            SMSService(),
            timeout_seconds=settings.MESSAGE_DISPATCH_TIMEOUT_SECONDS,
        )
    return _default_dispatcher
