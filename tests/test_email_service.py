"""
PayDesk - Email Service Tests

Provider selection and delivery failures.
"""

import smtplib

import httpx
import pytest

from paydesk.config import Settings
from paydesk.services.email_service import EmailMessage, EmailProvider, EmailService
from paydesk.utils.error_handling import ErrorCode, ExternalServiceException


def message() -> EmailMessage:
    return EmailMessage(
        to=["ravi@example.com"],
        subject="Salary Slip - June 2024",
        body_text="Your salary slip is attached.",
        attachments=[{"filename": "slip.pdf", "content": b"%PDF", "content_type": "application/pdf"}],
    )


class TestEmailService:

    def test_provider_selection(self):
        assert EmailService(Settings())._determine_provider() == EmailProvider.MOCK
        assert EmailService(Settings(smtp_host="mail.example.com"))._determine_provider() == EmailProvider.SMTP
        assert EmailService(
            Settings(smtp_host="mail.example.com", sendgrid_api_key="SG.key")
        )._determine_provider() == EmailProvider.SENDGRID

    @pytest.mark.asyncio
    async def test_mock_provider_delivers(self):
        assert await EmailService(Settings()).send_email(message()) is True

    @pytest.mark.asyncio
    async def test_sendgrid_rejection(self, monkeypatch):
        async def rejected(self, url, **kwargs):
            return httpx.Response(401, text="invalid api key", request=httpx.Request("POST", url))

        monkeypatch.setattr(httpx.AsyncClient, "post", rejected)
        service = EmailService(Settings(sendgrid_api_key="SG.bad"))

        with pytest.raises(ExternalServiceException) as exc_info:
            await service._send_via_sendgrid(message())
        assert exc_info.value.code == ErrorCode.EMAIL_SERVICE_ERROR
        assert exc_info.value.status_code == 502
        assert exc_info.value.details == {"service": "sendgrid"}

        assert await service.send_email(message()) is False

    @pytest.mark.asyncio
    async def test_smtp_unreachable(self, monkeypatch):
        def refuse(*args, **kwargs):
            raise ConnectionRefusedError("connection refused")

        monkeypatch.setattr(smtplib, "SMTP", refuse)
        service = EmailService(Settings(smtp_host="mail.example.com"))

        with pytest.raises(ExternalServiceException) as exc_info:
            service._send_via_smtp(message())
        assert exc_info.value.details == {"service": "smtp"}
        assert isinstance(exc_info.value.original_error, ConnectionRefusedError)

        assert await service.send_email(message()) is False
