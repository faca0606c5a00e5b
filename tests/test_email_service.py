"""Tests for email service module."""

import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from crowdvine.services.email import (
    ConsoleEmailService,
    SESEmailService,
    get_email_service,
)


@pytest.fixture
def mock_settings():
    """Create mock settings for testing."""
    settings = MagicMock()
    settings.email_sender = "hello@example.com"
    settings.email_sender_name = "PACT Test"
    settings.frontend_url = "http://localhost:3000/"
    settings.app_name = "PACT"
    settings.email_backend = "console"
    settings.aws_region = "eu-west-1"
    settings.aws_access_key_id = "test-key-id"
    settings.aws_secret_access_key = "test-secret-key"
    return settings


def ses_context(client):
    context = AsyncMock()
    context.__aenter__ = AsyncMock(return_value=client)
    context.__aexit__ = AsyncMock(return_value=None)
    return context


class TestConsoleEmailService:
    def test_init_strips_trailing_slash(self, mock_settings):
        service = ConsoleEmailService(mock_settings)
        assert service.frontend_url == "http://localhost:3000"
        assert service._format_sender() == "PACT Test <hello@example.com>"

    async def test_send_email_logs_and_keeps_outbox(self, mock_settings, caplog):
        caplog.set_level(logging.INFO)
        service = ConsoleEmailService(mock_settings)

        result = await service.send_email(
            to_email="user@example.com",
            subject="Test Subject",
            html_content="<p>Test HTML</p>",
            text_content="Test Text",
        )

        assert result is True
        assert "user@example.com" in caplog.text
        assert service.outbox[0]["subject"] == "Test Subject"

    async def test_verification_email_links_to_frontend(self, mock_settings):
        service = ConsoleEmailService(mock_settings)

        await service.send_verification_email("user@example.com", "tok-123")

        sent = service.outbox[0]
        assert sent["category"] == "verification"
        assert "http://localhost:3000/verify?token=tok-123" in sent["text"]
        assert "PACT" in sent["subject"]

    async def test_reservation_confirmation_lists_items(self, mock_settings):
        service = ConsoleEmailService(mock_settings)

        await service.send_reservation_confirmation(
            "user@example.com",
            reservation_id="abc123",
            items=[{"quantity": 6, "title": "Les Cailloux 2020", "line_total": "1 500 kr"}],
            total="1 500 kr",
            pallet_name="Languedoc Autumn",
        )

        text = service.outbox[0]["text"]
        assert "6 x Les Cailloux 2020" in text
        assert "on pallet Languedoc Autumn" in text
        assert "abc123" in text

    async def test_payment_request_html_is_escaped(self, mock_settings):
        service = ConsoleEmailService(mock_settings)

        await service.send_payment_request(
            "user@example.com",
            pallet_name="<b>Rhône</b>",
            payment_url="https://pay.example/s/1",
            amount="950 kr",
            deadline="2025-05-01",
        )

        sent = service.outbox[0]
        assert "&lt;b&gt;Rhône&lt;/b&gt;" in sent["html"]
        assert "https://pay.example/s/1" in sent["text"]

    async def test_access_approved_contains_code(self, mock_settings):
        service = ConsoleEmailService(mock_settings)

        await service.send_access_approved_email("new@example.com", "ABCD1234")

        assert "/i/ABCD1234" in service.outbox[0]["text"]


class TestSESEmailService:
    def test_request_carries_category_tag(self, mock_settings):
        service = SESEmailService(mock_settings)

        request = service._build_request("user@example.com", "Hi", "<p>x</p>", "x", "payment_request")

        assert request["Source"] == "PACT Test <hello@example.com>"
        assert request["Tags"] == [{"Name": "category", "Value": "payment_request"}]
        assert request["Message"]["Body"]["Text"]["Data"] == "x"

    def test_request_without_text_part(self, mock_settings):
        service = SESEmailService(mock_settings)
        request = service._build_request("user@example.com", "Hi", "<p>x</p>", None, None)
        assert "Text" not in request["Message"]["Body"]
        assert "Tags" not in request

    async def test_send_email_success(self, mock_settings):
        service = SESEmailService(mock_settings)
        client = AsyncMock()
        client.send_email = AsyncMock(return_value={"MessageId": "msg-1"})

        with patch.object(service.session, "client", return_value=ses_context(client)):
            result = await service.send_email("user@example.com", "Subject", "<p>Body</p>")

        assert result is True
        client.send_email.assert_called_once()

    async def test_send_email_failure(self, mock_settings):
        service = SESEmailService(mock_settings)
        client = AsyncMock()
        client.send_email = AsyncMock(
            side_effect=ClientError(
                {"Error": {"Code": "MessageRejected", "Message": "Test error"}},
                "SendEmail",
            )
        )

        with patch.object(service.session, "client", return_value=ses_context(client)):
            result = await service.send_email("user@example.com", "Subject", "<p>Body</p>")

        assert result is False


class TestGetEmailService:
    def test_get_console_service(self, mock_settings):
        with patch("crowdvine.config.settings", mock_settings):
            assert isinstance(get_email_service(), ConsoleEmailService)

    def test_get_ses_service(self, mock_settings):
        mock_settings.email_backend = "ses"
        with patch("crowdvine.config.settings", mock_settings):
            assert isinstance(get_email_service(), SESEmailService)
