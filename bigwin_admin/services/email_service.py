"""
Email service - delivers transactional mail through an HTTP mail API.
"""

import asyncio
from typing import Optional

import aiohttp
import structlog

from bigwin_admin.core.config import settings

logger = structlog.get_logger(__name__)


class EmailService:
    """Sends HTML email via a JSON mail API. Never raises to the caller."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        sender: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        self.api_url = api_url if api_url is not None else settings.email_api_url
        self.api_key = api_key if api_key is not None else settings.email_api_key
        self.sender = sender or settings.email_from
        self.timeout = timeout or settings.email_timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.api_url)

    async def send_email(self, to: str, subject: str, html: str) -> bool:
        """Send an email. Returns True when the mail API accepted it."""
        if not self.is_configured:
            logger.warning("Email API not configured, skipping send", to=to, subject=subject)
            return False

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        payload = {
            "from": self.sender,
            "to": to,
            "subject": subject,
            "html": html,
        }

        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.api_url, json=payload, headers=headers) as response:
                    if 200 <= response.status < 300:
                        logger.info("Email sent", to=to, subject=subject)
                        return True

                    body = await response.text()
                    logger.error(
                        "Email API rejected message",
                        to=to,
                        status=response.status,
                        response=body[:500]
                    )

        except asyncio.TimeoutError:
            logger.error("Email API timeout", to=to, timeout=self.timeout)
        except aiohttp.ClientError as e:
            logger.error("Email API request failed", to=to, error=str(e))

        return False
