"""AWS SES email service for production use."""

import logging
from typing import TYPE_CHECKING, Any

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from crowdvine.services.email.base import EmailService

if TYPE_CHECKING:
    from crowdvine.config.settings import Settings

logger = logging.getLogger(__name__)


class SESEmailService(EmailService):
    """Sends email through AWS Simple Email Service.

    Requires AWS credentials and a verified sender identity in SES.
    Each message is tagged with its template category.
    """

    def __init__(self, settings: "Settings") -> None:
        super().__init__(settings)
        self.region = settings.aws_region
        self.session = aioboto3.Session(
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
            region_name=self.region,
        )
        logger.info("Using AWS SES email backend (region: %s)", self.region)

    def _build_request(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: str | None,
        category: str | None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"Html": {"Data": html_content, "Charset": "UTF-8"}}
        if text_content:
            body["Text"] = {"Data": text_content, "Charset": "UTF-8"}

        request: dict[str, Any] = {
            "Source": self._format_sender(),
            "Destination": {"ToAddresses": [to_email]},
            "Message": {"Subject": {"Data": subject, "Charset": "UTF-8"}, "Body": body},
        }
        if category:
            request["Tags"] = [{"Name": "category", "Value": category}]
        return request

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: str | None = None,
        category: str | None = None,
    ) -> bool:
        request = self._build_request(to_email, subject, html_content, text_content, category)
        try:
            async with self.session.client("ses") as ses_client:
                response = await ses_client.send_email(**request)
        except ClientError as e:
            error = e.response.get("Error", {})
            logger.error(
                "Failed to send email via SES: to=%s, error_code=%s, error=%s",
                to_email,
                error.get("Code", "Unknown"),
                error.get("Message", str(e)),
            )
            return False
        except BotoCoreError:
            logger.exception("SES transport error: to=%s", to_email)
            return False

        logger.info(
            "Email sent via SES: to=%s, category=%s, message_id=%s",
            to_email,
            category,
            response.get("MessageId"),
        )
        return True
