"""
Outbound collaborators: password-reset email, push broadcast, and the
announcer that pairs the in-app notification fan-out with a push.

All of them are best effort. Failures are logged and reported as False (or
swallowed by the announcer) so the write that triggered them still succeeds.
"""

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Dict, Optional

import httpx

from core.config import Settings
from database.notice_repository import NoticeRepository

log = logging.getLogger(__name__)


# ==========================================
# EMAIL
# ==========================================

class EmailSender:
    def __init__(self, host: str, port: int, username: str, password: str, from_name: str = "Portal"):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_name = from_name

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailSender":
        return cls(settings.smtp_host, settings.smtp_port, settings.smtp_email, settings.smtp_password)

    @property
    def configured(self) -> bool:
        return bool(self.username and self.password)

    def send(self, to_email: str, subject: str, html_body: str) -> bool:
        """Send one HTML email over SMTP. Returns False instead of raising."""
        if not self.configured:
            log.warning("SMTP not configured; email to %s not sent: %s", to_email, subject)
            return False
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.username}>"
        msg["To"] = to_email
        msg.attach(MIMEText(html_body, "html"))
        try:
            if self.port == 465:
                with smtplib.SMTP_SSL(self.host, self.port, timeout=30) as server:
                    server.login(self.username, self.password)
                    server.send_message(msg)
            else:
                with smtplib.SMTP(self.host, self.port, timeout=30) as server:
                    server.starttls()
                    server.login(self.username, self.password)
                    server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            log.error("Failed to send email to %s: %s", to_email, e)
            return False
        log.info("Email sent to %s: %s", to_email, subject)
        return True

    async def send_password_reset_email(self, to_email: str, reset_link: str) -> bool:
        html_body = f"""
        <div style="font-family: system-ui, sans-serif; max-width: 520px; margin: 0 auto;">
            <h2>Password Reset Request</h2>
            <p>We received a request to reset your password. Use the link below to set a new one.</p>
            <p><a href="{reset_link}">Reset Password</a></p>
            <p style="color: #94a3b8; font-size: 13px;">
                This link expires in 1 hour. If you didn't request this, you can ignore this email.
            </p>
        </div>
        """
        return await asyncio.to_thread(self.send, to_email, "Password Reset", html_body)


# ==========================================
# PUSH
# ==========================================

class PushBroadcaster:
    """POSTs broadcast messages to a push gateway. Disabled when no URL is set."""

    def __init__(self, gateway_url: str = "", api_key: str = "", timeout: float = 10.0):
        self.gateway_url = gateway_url
        self.api_key = api_key
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "PushBroadcaster":
        return cls(settings.push_gateway_url, settings.push_gateway_key)

    async def broadcast_push(self, title: str, body: str, data: Optional[Dict[str, str]] = None) -> bool:
        if not self.gateway_url:
            log.info("Push disabled; skipped broadcast: %s", title)
            return False
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                self.gateway_url,
                headers=headers,
                json={"title": title, "body": body, "data": data or {}},
            )
            response.raise_for_status()
        return True


# ==========================================
# ANNOUNCER
# ==========================================

class Announcer:
    """In-app notification for every approved student plus a push, run concurrently."""

    def __init__(self, notices: NoticeRepository, push: PushBroadcaster):
        self.notices = notices
        self.push = push

    async def announce(self, title: str, message: str, type: str, data: Optional[Dict[str, str]] = None) -> None:
        push_data = {"type": type, **(data or {})}
        results = await asyncio.gather(
            self.notices.notify_all_students(title, message, type),
            self.push.broadcast_push(title, message, push_data),
            return_exceptions=True,
        )
        for label, result in zip(("notification fan-out", "push"), results):
            if isinstance(result, BaseException):
                log.error("Announcement %s failed (%s): %r", label, title, result)
