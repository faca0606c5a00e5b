"""Base email service and factory.

Every transactional email has an HTML and a plain text Jinja2 template
under templates/ sharing the same stem.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

if TYPE_CHECKING:
    from crowdvine.config.settings import Settings

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"


class EmailService(ABC):
    """Abstract base class for email services."""

    def __init__(self, settings: "Settings") -> None:
        self.settings = settings
        self.sender = settings.email_sender
        self.sender_name = settings.email_sender_name
        self.frontend_url = settings.frontend_url.rstrip("/")

        self.template_env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=select_autoescape(enabled_extensions=("html",)),
        )

    def _render_template(self, template_name: str, **context: Any) -> str:
        template = self.template_env.get_template(template_name)
        return template.render(app_name=self.settings.app_name, **context)

    def _format_sender(self) -> str:
        """Sender like "PACT Wines <hello@pactwines.com>"."""
        return f"{self.sender_name} <{self.sender}>"

    @abstractmethod
    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: str | None = None,
        category: str | None = None,
    ) -> bool:
        """Send an email. Returns True if it was accepted for delivery."""

    async def send_templated(
        self, to_email: str, subject: str, template: str, **context: Any
    ) -> bool:
        """Render <template>.html and <template>.txt and send them."""
        return await self.send_email(
            to_email=to_email,
            subject=subject,
            html_content=self._render_template(f"{template}.html", **context),
            text_content=self._render_template(f"{template}.txt", **context).strip(),
            category=template,
        )

    async def send_verification_email(self, to_email: str, token: str) -> bool:
        return await self.send_templated(
            to_email,
            f"Verify your {self.settings.app_name} account",
            "verification",
            verify_url=f"{self.frontend_url}/verify?token={token}",
        )

    async def send_password_reset_email(self, to_email: str, token: str) -> bool:
        return await self.send_templated(
            to_email,
            f"Reset your {self.settings.app_name} password",
            "password_reset",
            reset_url=f"{self.frontend_url}/reset-password?token={token}",
        )

    async def send_access_approved_email(self, to_email: str, code: str) -> bool:
        """Tell an approved applicant how to create their account."""
        return await self.send_templated(
            to_email,
            f"Welcome to {self.settings.app_name}",
            "access_approved",
            signup_url=f"{self.frontend_url}/i/{code}",
            code=code,
        )

    async def send_reservation_confirmation(
        self,
        to_email: str,
        reservation_id: str,
        items: list[dict[str, Any]],
        total: str,
        pallet_name: str | None,
    ) -> bool:
        return await self.send_templated(
            to_email,
            "Your reservation is placed",
            "reservation_confirmation",
            reservation_id=reservation_id,
            items=items,
            total=total,
            pallet_name=pallet_name,
            orders_url=f"{self.frontend_url}/profile/reservations",
        )

    async def send_payment_request(
        self,
        to_email: str,
        pallet_name: str,
        payment_url: str,
        amount: str,
        deadline: str,
    ) -> bool:
        """Ask for payment once the member's pallet is complete."""
        return await self.send_templated(
            to_email,
            f"Your pallet {pallet_name} is complete - time to pay",
            "payment_request",
            pallet_name=pallet_name,
            payment_url=payment_url,
            amount=amount,
            deadline=deadline,
        )

    async def send_payment_received(self, to_email: str, reservation_id: str, amount: str) -> bool:
        return await self.send_templated(
            to_email,
            "Payment received",
            "payment_received",
            reservation_id=reservation_id,
            amount=amount,
        )


def get_email_service() -> EmailService:
    """Get the email service configured by settings.email_backend."""
    from crowdvine.config import settings

    if settings.email_backend == "ses":
        from crowdvine.services.email.ses import SESEmailService

        return SESEmailService(settings)

    from crowdvine.services.email.console import ConsoleEmailService

    return ConsoleEmailService(settings)
