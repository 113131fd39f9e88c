"""'Analysis ready' email sent once a seller's first analysis has data"""
import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from jinja2 import Template
from pydantic_settings import BaseSettings

from core.repositories import UserRepository

logger = logging.getLogger(__name__)

SUBJECT_TEMPLATE = "Your {{ country }} seller analysis is ready"

BODY_TEMPLATE = """Hi {{ first_name or "there" }},

Your Amazon {{ country }} ({{ region }}) account data has been fetched and analysed.
{% if success_rate %}{{ success_rate }} of today's data sources were refreshed successfully.
{% endif %}
Open your dashboard: {{ dashboard_url }}
"""


class NotificationSettings(BaseSettings):
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    email_from: str = "no-reply@seller-analytics.local"
    dashboard_url: str = "http://localhost:3000/dashboard"

    class Config:
        env_file = ".env"
        extra = "ignore"


class AnalysisReadyNotifier:
    """Sends the email when the user's analyse_account_success flag is set, then clears it"""

    def __init__(self, users: Optional[UserRepository] = None, settings: Optional[NotificationSettings] = None):
        self.users = users or UserRepository()
        self.settings = settings or NotificationSettings()

    def _send(self, to: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.settings.email_from
        message["To"] = to
        message.set_content(body)

        with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port) as client:
            if self.settings.smtp_use_tls:
                client.starttls()
            if self.settings.smtp_username and self.settings.smtp_password:
                client.login(self.settings.smtp_username, self.settings.smtp_password)
            client.send_message(message)

    def notify_sync(self, user_id: str, country: str, region: str, success_rate: Optional[str] = None) -> bool:
        profile = self.users.get_notification_profile(user_id)
        if not profile or profile.get("analyse_account_success") != 1 or not profile.get("email"):
            return False
        if not self.settings.smtp_host:
            logger.warning("SMTP host not configured; analysis ready email not sent", extra={"user_id": user_id})
            return False

        context = {
            "first_name": profile.get("first_name"),
            "country": country,
            "region": region,
            "success_rate": success_rate,
            "dashboard_url": self.settings.dashboard_url,
        }
        self._send(profile["email"], Template(SUBJECT_TEMPLATE).render(**context),
                   Template(BODY_TEMPLATE).render(**context))
        self.users.clear_analysis_flag(user_id)
        logger.info("Analysis ready email sent", extra={"user_id": user_id})
        return True

    async def notify(self, user_id: str, country: str, region: str, success_rate: Optional[str] = None) -> bool:
        """Fire-and-forget: any failure is logged and reported as False"""
        try:
            return await asyncio.to_thread(self.notify_sync, user_id, country, region, success_rate)
        except Exception:
            logger.exception("Analysis ready email failed", extra={"user_id": user_id})
            return False
