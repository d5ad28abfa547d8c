"""
Fire-and-forget delivery of game credentials after a game ID is assigned.

Sends are scheduled only after the assigning transaction has committed and
their outcome never reaches the caller of the approval operation.
"""

import asyncio
from typing import Optional, Set

import structlog

from bigwin_admin.core.exceptions import DependencyError
from bigwin_admin.services.email_service import EmailService
from bigwin_admin.templates.game_credentials import (
    render_game_credentials_email, credentials_subject
)

logger = structlog.get_logger(__name__)


class CredentialsNotifier:
    """Schedules credentials emails as tracked background tasks."""

    def __init__(self, email_service: Optional[EmailService] = None):
        self.email_service = email_service or EmailService()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(
        self,
        email: Optional[str],
        username: str,
        game_name: str,
        game_id: str,
        game_password: Optional[str] = None
    ) -> Optional[asyncio.Task]:
        """Schedule a credentials email. Returns the task, or None when skipped."""
        if not email:
            logger.info("User has no email, credentials not sent", username=username, game_name=game_name)
            return None

        task = asyncio.create_task(
            self._send(email, username, game_name, game_id, game_password)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _send(
        self,
        email: str,
        username: str,
        game_name: str,
        game_id: str,
        game_password: Optional[str]
    ) -> bool:
        html = render_game_credentials_email(username, game_name, game_id, game_password)

        try:
            sent = await self.email_service.send_email(email, credentials_subject(game_name), html)
            if not sent:
                raise DependencyError(
                    "Credentials email was not delivered",
                    {"to": email, "game_name": game_name}
                )
            return True

        except DependencyError as e:
            logger.error("Failed to send credentials email", code=e.code, **e.details)
        except Exception as e:
            logger.error(
                "Unexpected error sending credentials email",
                to=email,
                game_name=game_name,
                error=str(e),
                exc_info=True
            )

        return False

    async def drain(self) -> None:
        """Wait for all outstanding sends."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
