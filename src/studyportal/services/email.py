"""Outgoing mail: sign-in links and consultation booking notices.

Messages are rendered into ``EmailMessage`` values and handed to the
configured backend. Backends only implement ``deliver``; ``send`` turns any
delivery failure into a logged ``False`` so mail problems never break the
request that triggered them.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

import aiosmtplib
import httpx

from studyportal.config import settings

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
HTTP_TIMEOUT = 30.0


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str
    text: str


class EmailBackend(ABC):
    name = "base"

    @abstractmethod
    async def deliver(self, message: EmailMessage) -> None:
        """Hand the message to the transport, raising on failure."""

    async def send(self, message: EmailMessage) -> bool:
        try:
            await self.deliver(message)
        except httpx.HTTPStatusError as e:
            logger.error(
                f"{self.name} rejected mail to {message.to}: "
                f"{e.response.status_code} {e.response.text}"
            )
            return False
        except Exception as e:
            logger.error(f"{self.name} failed to send mail to {message.to}: {e!r}")
            return False
        logger.info(f"Mail '{message.subject}' sent to {message.to} via {self.name}")
        return True


class ConsoleEmailBackend(EmailBackend):
    """Writes mail to the log instead of sending it."""

    name = "console"

    async def deliver(self, message: EmailMessage) -> None:
        rule = "-" * 60
        logger.info(
            f"\n{rule}\nTo: {message.to}\nSubject: {message.subject}\n{rule}\n{message.text}\n{rule}"
        )


class SMTPEmailBackend(EmailBackend):
    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        use_tls: bool = True,
        from_address: str = "",
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_address = from_address

    def build_mime(self, message: EmailMessage) -> MIMEMultipart:
        mime = MIMEMultipart("alternative")
        mime["From"] = self.from_address
        mime["To"] = message.to
        mime["Subject"] = message.subject
        mime.attach(MIMEText(message.text, "plain", "utf-8"))
        mime.attach(MIMEText(message.html, "html", "utf-8"))
        return mime

    async def deliver(self, message: EmailMessage) -> None:
        await aiosmtplib.send(
            self.build_mime(message),
            hostname=self.host,
            port=self.port,
            username=self.username or None,
            password=self.password or None,
            start_tls=self.use_tls,
        )


class ResendEmailBackend(EmailBackend):
    name = "resend"

    def __init__(self, api_key: str, from_address: str):
        self.api_key = api_key
        self.from_address = from_address

    async def deliver(self, message: EmailMessage) -> None:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            response = await client.post(
                RESEND_API_URL,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "from": self.from_address,
                    "to": [message.to],
                    "subject": message.subject,
                    "html": message.html,
                    "text": message.text,
                },
            )
            response.raise_for_status()


class WebhookEmailBackend(EmailBackend):
    """Posts ``{"to", "subject", "html"}`` to a relay that does the sending."""

    name = "webhook"

    def __init__(self, url: str):
        self.url = url

    async def deliver(self, message: EmailMessage) -> None:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT, follow_redirects=True) as client:
            response = await client.post(
                self.url,
                json={"to": message.to, "subject": message.subject, "html": message.html},
            )
            response.raise_for_status()


def get_email_backend() -> EmailBackend:
    """Build the backend selected by ``EMAIL_BACKEND``."""
    backend = settings.email_backend
    if backend == "console":
        return ConsoleEmailBackend()
    if backend == "smtp":
        return SMTPEmailBackend(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            from_address=settings.email_from,
        )
    if backend == "resend":
        return ResendEmailBackend(api_key=settings.resend_api_key, from_address=settings.email_from)
    if backend == "webhook":
        if not settings.email_webhook_url:
            logger.warning("EMAIL_WEBHOOK_URL is not set, mail goes to the console")
            return ConsoleEmailBackend()
        return WebhookEmailBackend(url=settings.email_webhook_url)
    raise ValueError(f"Unknown email backend: {backend}")


def render_magic_link(to: str, link: str, reset: bool, valid_hours: int) -> EmailMessage:
    if reset:
        subject = "Reset your Study Portal password"
        intro = "Use the link below to choose a new password."
        label = "Reset password"
    else:
        subject = "Sign in to Study Portal"
        intro = "Use the link below to sign in."
        label = "Sign in"
    footer = f"The link works for {valid_hours} hours. If you did not ask for it, ignore this mail."

    html = (
        f"<p>{intro}</p>"
        f'<p><a href="{escape(link, quote=True)}">{label}</a></p>'
        f"<p>{footer}</p>"
    )
    text = f"{intro}\n\n{link}\n\n{footer}\n"
    return EmailMessage(to=to, subject=subject, html=html, text=text)


def render_reservation(
    student_name: str,
    student_email: str,
    schedule_name: str,
    when: str,
    instructor: str | None,
    owner_email: str | None,
) -> list[EmailMessage]:
    """Confirmation for the student, plus a notice for the owner when configured."""
    details = [f"Date: {when}", f"Session: {schedule_name}"]
    if instructor:
        details.append(f"Instructor: {instructor}")
    details_html = "".join(f"<p>{escape(line)}</p>" for line in details)
    details_text = "\n".join(details)

    messages = [
        EmailMessage(
            to=student_email,
            subject=f"Consultation booked ({when})",
            html=f"<p>{escape(student_name)},</p><p>Your consultation is booked.</p>{details_html}",
            text=f"{student_name},\n\nYour consultation is booked.\n\n{details_text}\n",
        )
    ]
    if owner_email:
        messages.append(
            EmailMessage(
                to=owner_email,
                subject=f"New consultation booking ({student_name})",
                html=(
                    f"<p>New booking from {escape(student_name)} "
                    f"&lt;{escape(student_email)}&gt;.</p>{details_html}"
                ),
                text=f"New booking from {student_name} <{student_email}>.\n\n{details_text}\n",
            )
        )
    return messages


class EmailService:
    """Renders application mail and sends it through the configured backend."""

    def __init__(self, backend: EmailBackend | None = None):
        self._backend = backend

    @property
    def backend(self) -> EmailBackend:
        if self._backend is None:
            self._backend = get_email_backend()
        return self._backend

    async def send_magic_link(
        self, to: str, magic_link: str, reset: bool = False, valid_hours: int = 24
    ) -> bool:
        return await self.backend.send(render_magic_link(to, magic_link, reset, valid_hours))

    async def send_reservation_emails(
        self,
        student_name: str,
        student_email: str,
        schedule_name: str,
        when: str,
        instructor: str | None = None,
        owner_email: str | None = None,
    ) -> None:
        messages = render_reservation(
            student_name, student_email, schedule_name, when, instructor, owner_email
        )
        for message in messages:
            if not await self.backend.send(message):
                logger.warning(f"Reservation mail to {message.to} was not delivered")


email_service = EmailService()
