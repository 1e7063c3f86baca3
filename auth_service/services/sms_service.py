"""
AWS SNS service for sending sign-in codes by SMS.
"""

import logging
from typing import Optional
import boto3
from botocore.config import Config
from botocore.exceptions import ClientError, BotoCoreError
from auth_service.core.config import settings

logger = logging.getLogger(__name__)


class SMSService:
    """
    Sends transactional text messages through SNS direct publish.
    """

    def __init__(self, sns_client=None):
        if sns_client is None:
            timeout = settings.MESSAGE_DISPATCH_TIMEOUT_SECONDS
            session_kwargs = {
                'region_name': settings.AWS_REGION,
                'config': Config(connect_timeout=timeout, read_timeout=timeout, retries={"max_attempts": 1}),
            }
            if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
                session_kwargs['aws_access_key_id'] = settings.AWS_ACCESS_KEY_ID
                session_kwargs['aws_secret_access_key'] = settings.AWS_SECRET_ACCESS_KEY

            sns_client = boto3.client('sns', **session_kwargs)
        self.sns_client = sns_client
        self.brand_name = settings.BRAND_NAME
        self.sender_id = settings.SMS_SENDER_ID

    def build_code_message(self, code: str, expires_in_minutes: int) -> str:
        return (
            f"Your {self.brand_name} verification code is: {code}. "
            f"This code expires in {expires_in_minutes} minutes. "
            "If you didn't request this, please ignore."
        )

    def send_sign_in_code(self, phone: str, code: str, expires_in_minutes: int) -> bool:
        """
        Text a one-time code to an E.164 number.

        Returns:
            bool: True if SNS accepted the message, False otherwise
        """
        attributes = {
            'AWS.SNS.SMS.SMSType': {'DataType': 'String', 'StringValue': 'Transactional'},
        }
        if self.sender_id:
            attributes['AWS.SNS.SMS.SenderID'] = {'DataType': 'String', 'StringValue': self.sender_id}

        try:
            response = self.sns_client.publish(
                PhoneNumber=phone,
                Message=self.build_code_message(code, expires_in_minutes),
                MessageAttributes=attributes,
            )
            logger.info(f"Sign-in code SMS sent to {_mask(phone)} (MessageId: {response.get('MessageId')})")
            return True

        except ClientError as e:
            logger.error(f"AWS SNS ClientError: {e.response['Error']['Code']} - {e.response['Error']['Message']}")
            return False

        except BotoCoreError as e:
            logger.error(f"AWS BotoCoreError: {str(e)}")
            return False


def _mask(phone: Optional[str]) -> str:
    if not phone or len(phone) < 4:
        return "***"
    return "*" * (len(phone) - 4) + phone[-4:]
