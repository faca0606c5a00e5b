"""Console email service for development and testing."""

import logging
from typing import TYPE_CHECKING

from crowdvine.services.email.base import EmailService

if TYPE_CHECKING:
    from crowdvine.config.settings import Settings

logger = logging.getLogger(__name__)


class ConsoleEmailService(EmailService):
    """Logs emails instead of sending them.

    Sent messages are also kept in `outbox` so tests can inspect them.
    """

    def __init__(self, settings: "Settings") -> None:
        super().__init__(settings)
        self.outbox: list[dict[str, str | None]] = []
        logger.debug("Using console email backend (emails will be logged, not sent)")

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: str | None = None,
        category: str | None = None,
    ) -> bool:
        self.outbox.append(
            {
                "to": to_email,
                "subject": subject,
                "html": html_content,
                "text": text_content,
                "category": category,
            }
        )
        separator = "=" * 60
        logger.info(
            "\n%s\nEMAIL [%s] (console backend - not actually sent)\nFrom: %s\nTo: %s\nSubject: %s\n%s\n%s\n%s",
            separator,
            category or "general",
            self._format_sender(),
            to_email,
            subject,
            separator,
            text_content or "(no text content)",
            separator,
        )
        return True
