"""
Transactional email client (Resend HTTP API).

Without RESEND_API_KEY the client runs in dev mode: the email is logged
and reported as sent, so local cron runs behave like production ones.
"""

from __future__ import annotations

import logging

import httpx

from core.config import settings

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class EmailClient:
    def __init__(
        self,
        api_key: str | None = None,
        sender: str | None = None,
        timeout: float = 10.0,
    ):
        self.api_key = settings.resend_api_key if api_key is None else api_key
        self.sender = sender or settings.email_from
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def send_email(self, to: str, subject: str, html: str) -> bool:
        """Returns True if the provider accepted the message."""
        if not self.is_configured:
            logger.info("[DEV MODE] Email to %s: %s (%d bytes of HTML)", to, subject, len(html))
            return True

        payload = {"from": self.sender, "to": [to], "subject": subject, "html": html}
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(RESEND_API_URL, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Failed to send email to %s (%s): %s", to, subject, exc)
            return False
        logger.info("Email sent to %s: %s", to, subject)
        return True
