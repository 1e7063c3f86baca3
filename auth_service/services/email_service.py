"""
AWS SES Email Service for sending sign-in codes.

Handles email formatting, template rendering, and AWS SES integration.
"""

import logging
from html import escape
from typing import Optional
import boto3
from botocore.config import Config
from botocore.exceptions import ClientError, BotoCoreError
from auth_service.core.config import settings

logger = logging.getLogger(__name__)


def _client_config() -> Config:
    # Keep SES calls inside the dispatch timeout
    timeout = settings.MESSAGE_DISPATCH_TIMEOUT_SECONDS
    return Config(connect_timeout=timeout, read_timeout=timeout, retries={"max_attempts": 1})


class EmailService:
    """
    Service for sending emails via AWS SES.

    Supports both development (sandbox) and production modes.
    """

    def __init__(self, ses_client=None):
        """Initialize AWS SES client"""
        if ses_client is None:
            session_kwargs = {
                'region_name': settings.AWS_REGION,
                'config': _client_config(),
            }

            # Add credentials if provided (otherwise uses IAM role)
            if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
                session_kwargs['aws_access_key_id'] = settings.AWS_ACCESS_KEY_ID
                session_kwargs['aws_secret_access_key'] = settings.AWS_SECRET_ACCESS_KEY

            ses_client = boto3.client('ses', **session_kwargs)
        self.ses_client = ses_client
        self.brand_name = settings.BRAND_NAME

    def send_sign_in_code(
        self,
        to_email: str,
        code: str,
        expires_in_minutes: int,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        admin: bool = False,
    ) -> bool:
        """
        Send a one-time sign-in code.

        Args:
            to_email: Recipient email address
            code: 6-digit code
            expires_in_minutes: Lifetime shown to the recipient
            ip_address: Address the request came from
            user_agent: Device that made the request
            admin: Word the message for the admin console

        Returns:
            bool: True if email sent successfully, False otherwise
        """
        if admin:
            subject = f"{self.brand_name} Admin - Your sign-in code"
        else:
            subject = f"{self.brand_name} - Your sign-in code"

        html_body = self._build_code_html(code, expires_in_minutes, ip_address, user_agent, admin)
        text_body = self._build_code_text(code, expires_in_minutes, ip_address, user_agent, admin)

        try:
            response = self.ses_client.send_email(
                Source=f"{settings.AWS_SES_FROM_NAME} <{settings.AWS_SES_FROM_EMAIL}>",
                Destination={'ToAddresses': [to_email]},
                Message={
                    'Subject': {'Data': subject, 'Charset': 'UTF-8'},
                    'Body': {
                        'Html': {'Data': html_body, 'Charset': 'UTF-8'},
                        'Text': {'Data': text_body, 'Charset': 'UTF-8'}
                    }
                }
            )

            message_id = response.get('MessageId')
            logger.info(f"Sign-in code email sent to {to_email} (MessageId: {message_id})")
            return True

        except ClientError as e:
            error_code = e.response['Error']['Code']
            error_message = e.response['Error']['Message']
            logger.error(f"AWS SES ClientError: {error_code} - {error_message}")

            if error_code == 'MessageRejected':
                logger.error("Email was rejected. Check if sender email is verified in SES.")
            elif error_code == 'MailFromDomainNotVerified':
                logger.error("Sender domain not verified in SES.")

            return False

        except BotoCoreError as e:
            logger.error(f"AWS BotoCoreError: {str(e)}")
            return False

    def _request_details(self, ip_address: Optional[str], user_agent: Optional[str]) -> str:
        return f"IP address: {ip_address or 'unknown'}\nDevice: {user_agent or 'unknown'}"

    def _build_code_html(
        self,
        code: str,
        expires_in_minutes: int,
        ip_address: Optional[str],
        user_agent: Optional[str],
        admin: bool,
    ) -> str:
        heading = "Admin console sign-in" if admin else "Your sign-in code"
        brand = escape(self.brand_name)

        html = f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{heading}</title>
</head>
<body style="margin: 0; padding: 0; font-family: Arial, sans-serif; background-color: #f4f4f4;">
    <table role="presentation" style="width: 100%; border-collapse: collapse;">
        <tr>
            <td align="center" style="padding: 40px 0;">
                <table role="presentation" style="width: 600px; border-collapse: collapse; background-color: #ffffff; border-radius: 8px;">
                    <tr>
                        <td style="padding: 40px 40px 20px 40px; text-align: center;">
                            <h1 style="margin: 0; color: #333333; font-size: 26px; font-weight: 600;">{heading}</h1>
                        </td>
                    </tr>
                    <tr>
                        <td style="padding: 0 40px 40px 40px;">
                            <p style="margin: 0 0 30px 0; color: #666666; font-size: 16px; line-height: 1.5;">
                                Use the code below to sign in to {brand}:
                            </p>
                            <div style="background-color: #f8f9fa; border-radius: 8px; padding: 30px; text-align: center; margin: 0 0 30px 0;">
                                <div style="font-size: 36px; font-weight: 700; letter-spacing: 8px; color: #1F2937; font-family: 'Courier New', monospace;">
                                    {code}
                                </div>
                            </div>
                            <p style="margin: 0 0 20px 0; color: #666666; font-size: 14px; line-height: 1.5;">
                                This code will expire in <strong>{expires_in_minutes} minutes</strong>.
                            </p>
                            <p style="margin: 0 0 20px 0; color: #999999; font-size: 13px; line-height: 1.5;">
                                Requested from IP address {escape(ip_address or 'unknown')}<br>
                                Device: {escape(user_agent or 'unknown')}
                            </p>
                            <p style="margin: 0; color: #999999; font-size: 13px; line-height: 1.5;">
                                If you didn't request this code, you can safely ignore this email.
                            </p>
                        </td>
                    </tr>
                </table>
            </td>
        </tr>
    </table>
</body>
</html>
"""
        return html

    def _build_code_text(
        self,
        code: str,
        expires_in_minutes: int,
        ip_address: Optional[str],
        user_agent: Optional[str],
        admin: bool,
    ) -> str:
        """Plain text fallback for the HTML body."""
        heading = "Admin console sign-in" if admin else "Your sign-in code"

        text = f"""{heading}

Use the code below to sign in to {self.brand_name}:

{code}

This code will expire in {expires_in_minutes} minutes.

{self._request_details(ip_address, user_agent)}

If you didn't request this code, you can safely ignore this email.
"""
        return text
