"""Mail rendering and backend tests."""

import logging
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from studyportal.services.email import (
    ConsoleEmailBackend,
    EmailMessage,
    EmailService,
    ResendEmailBackend,
    SMTPEmailBackend,
    WebhookEmailBackend,
    get_email_backend,
    render_magic_link,
    render_reservation,
)

MESSAGE = EmailMessage(to="test@example.com", subject="Test", html="<p>Hi</p>", text="Hi")


def ok_response() -> MagicMock:
    response = MagicMock()
    response.raise_for_status = MagicMock()
    return response


class TestConsoleEmailBackend:
    @pytest.mark.asyncio
    async def test_logs_message(self, caplog):
        with caplog.at_level(logging.INFO):
            assert await ConsoleEmailBackend().send(MESSAGE) is True

        assert "test@example.com" in caplog.text
        assert "Subject: Test" in caplog.text


class TestSMTPEmailBackend:
    def make_backend(self) -> SMTPEmailBackend:
        return SMTPEmailBackend(
            host="smtp.example.com",
            port=587,
            username="user",
            password="pass",
            from_address="noreply@example.com",
        )

    def test_mime_has_both_parts(self):
        mime = self.make_backend().build_mime(MESSAGE)

        assert mime["From"] == "noreply@example.com"
        assert mime["To"] == "test@example.com"
        assert [p.get_content_subtype() for p in mime.get_payload()] == ["plain", "html"]

    @pytest.mark.asyncio
    async def test_send(self):
        with patch(
            "studyportal.services.email.aiosmtplib.send", new_callable=AsyncMock
        ) as mock_send:
            assert await self.make_backend().send(MESSAGE) is True

        mock_send.assert_called_once()
        assert mock_send.call_args[1]["hostname"] == "smtp.example.com"
        assert mock_send.call_args[1]["start_tls"] is True

    @pytest.mark.asyncio
    async def test_connection_failure(self, caplog):
        with patch(
            "studyportal.services.email.aiosmtplib.send",
            new_callable=AsyncMock,
            side_effect=OSError("Connection refused"),
        ):
            assert await self.make_backend().send(MESSAGE) is False

        assert "smtp failed" in caplog.text


class TestResendEmailBackend:
    @pytest.mark.asyncio
    async def test_send(self):
        backend = ResendEmailBackend(api_key="re_test_key", from_address="noreply@example.com")

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = ok_response()
            assert await backend.send(MESSAGE) is True

        payload = mock_post.call_args[1]["json"]
        assert payload["to"] == ["test@example.com"]
        assert payload["text"] == "Hi"
        assert mock_post.call_args[1]["headers"]["Authorization"] == "Bearer re_test_key"

    @pytest.mark.asyncio
    async def test_rejected(self, caplog):
        backend = ResendEmailBackend(api_key="re_test_key", from_address="noreply@example.com")
        response = MagicMock()
        response.status_code = 401
        response.text = "Unauthorized"
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "Unauthorized", request=MagicMock(), response=response
        )

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock, return_value=response):
            assert await backend.send(MESSAGE) is False

        assert "resend rejected mail" in caplog.text
        assert "401" in caplog.text


class TestWebhookEmailBackend:
    @pytest.mark.asyncio
    async def test_posts_message(self):
        backend = WebhookEmailBackend(url="https://relay.example.com/mail")

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = ok_response()
            assert await backend.send(MESSAGE) is True

        assert mock_post.call_args[0][0] == "https://relay.example.com/mail"
        assert mock_post.call_args[1]["json"] == {
            "to": "test@example.com",
            "subject": "Test",
            "html": "<p>Hi</p>",
        }

    @pytest.mark.asyncio
    async def test_network_error(self):
        backend = WebhookEmailBackend(url="https://relay.example.com/mail")

        with patch(
            "httpx.AsyncClient.post",
            new_callable=AsyncMock,
            side_effect=httpx.ConnectError("refused"),
        ):
            assert await backend.send(MESSAGE) is False


class TestGetEmailBackend:
    def test_console(self):
        with patch("studyportal.services.email.settings") as mock_settings:
            mock_settings.email_backend = "console"
            assert isinstance(get_email_backend(), ConsoleEmailBackend)

    def test_smtp(self):
        with patch("studyportal.services.email.settings") as mock_settings:
            mock_settings.email_backend = "smtp"
            mock_settings.smtp_host = "smtp.example.com"
            mock_settings.smtp_port = 587
            mock_settings.smtp_username = "user"
            mock_settings.smtp_password = "pass"
            mock_settings.smtp_use_tls = False
            mock_settings.email_from = "noreply@example.com"

            backend = get_email_backend()

        assert isinstance(backend, SMTPEmailBackend)
        assert backend.host == "smtp.example.com"
        assert backend.use_tls is False

    def test_webhook(self):
        with patch("studyportal.services.email.settings") as mock_settings:
            mock_settings.email_backend = "webhook"
            mock_settings.email_webhook_url = "https://relay.example.com/mail"
            backend = get_email_backend()

        assert isinstance(backend, WebhookEmailBackend)
        assert backend.url == "https://relay.example.com/mail"

    def test_webhook_without_url_uses_console(self):
        with patch("studyportal.services.email.settings") as mock_settings:
            mock_settings.email_backend = "webhook"
            mock_settings.email_webhook_url = ""
            assert isinstance(get_email_backend(), ConsoleEmailBackend)

    def test_unknown(self):
        with patch("studyportal.services.email.settings") as mock_settings:
            mock_settings.email_backend = "pigeon"
            with pytest.raises(ValueError, match="Unknown email backend"):
                get_email_backend()


class TestRendering:
    def test_magic_link_escapes_href(self):
        message = render_magic_link(
            "test@example.com", "http://test/api/auth/callback?token=abc&reset=true", False, 24
        )

        assert message.subject == "Sign in to Study Portal"
        assert "token=abc&amp;reset=true" in message.html
        assert "token=abc&reset=true" in message.text
        assert "24 hours" in message.text

    def test_reset_link(self):
        message = render_magic_link("test@example.com", "http://test/x", True, 2)

        assert message.subject == "Reset your Study Portal password"
        assert "2 hours" in message.text

    def test_reservation_for_student_and_owner(self):
        student_mail, owner_mail = render_reservation(
            "<Taro>", "taro@example.com", "One-on-one", "2026-11-05 10:00", "Coach", "owner@example.com"
        )

        assert student_mail.to == "taro@example.com"
        assert "&lt;Taro&gt;" in student_mail.html
        assert "Instructor: Coach" in student_mail.text
        assert owner_mail.to == "owner@example.com"
        assert "taro@example.com" in owner_mail.text

    def test_reservation_without_owner_or_instructor(self):
        (message,) = render_reservation(
            "Taro", "taro@example.com", "One-on-one", "2026-11-05 10:00", None, None
        )
        assert "Instructor" not in message.text


class TestEmailService:
    @pytest.mark.asyncio
    async def test_send_magic_link(self):
        backend = AsyncMock()
        backend.send.return_value = True
        service = EmailService(backend=backend)

        result = await service.send_magic_link(to="test@example.com", magic_link="http://test/x")

        assert result is True
        (message,) = backend.send.call_args[0]
        assert message.to == "test@example.com"
        assert "http://test/x" in message.text

    @pytest.mark.asyncio
    async def test_reservation_failure_is_logged(self, caplog):
        backend = AsyncMock()
        backend.send.return_value = False
        service = EmailService(backend=backend)

        with caplog.at_level(logging.WARNING):
            await service.send_reservation_emails(
                student_name="Taro",
                student_email="taro@example.com",
                schedule_name="One-on-one",
                when="2026-11-05 10:00",
                owner_email="owner@example.com",
            )

        assert backend.send.call_count == 2
        assert "not delivered" in caplog.text

    def test_backend_is_resolved_once(self):
        service = EmailService()

        with patch("studyportal.services.email.get_email_backend") as mock_get_backend:
            mock_get_backend.return_value = ConsoleEmailBackend()
            backend = service.backend
            assert service.backend is backend
            mock_get_backend.assert_called_once()
