"""Transactional email for CrowdVine: console output in development, SES in production."""

from crowdvine.services.email.base import EmailService, get_email_service
from crowdvine.services.email.console import ConsoleEmailService
from crowdvine.services.email.ses import SESEmailService

__all__ = ["EmailService", "ConsoleEmailService", "SESEmailService", "get_email_service"]
