from datetime import datetime
from typing import Iterable, List, Optional
import logging

import httpx

from scripturequiz.database import Database
from scripturequiz.utils.time_utils import format_time_for_display

logger = logging.getLogger(__name__)

USERS = "users"


class NotificationService:
    """Delivers quiz notices to an outbound webhook.

    Runs after the triggering write has committed; a failed delivery is
    logged and dropped, never surfaced to the request that caused it.
    """

    def __init__(self, database: Database, webhook_url: Optional[str] = None,
                 timeout_seconds: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.db = database
        self.webhook_url = webhook_url
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    def lookup_emails(self, student_ids: Iterable[str]) -> List[str]:
        student_ids = list(dict.fromkeys(student_ids))
        if not student_ids:
            return []
        rows = self.db.select(USERS, "id,email", in_filters={"id": student_ids})
        return sorted({row["email"] for row in rows if row.get("email")})

    async def _deliver(self, payload: dict) -> bool:
        if not self.webhook_url:
            logger.debug(f"No notification webhook configured, dropping {payload['event']}")
            return False

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
                response = await client.post(self.webhook_url, json=payload)
                response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.error(f"Notification {payload['event']} failed: {e}")
            return False

    async def notify_schedule_change(self, student_ids: List[str], quiz_title: str,
                                     new_start_time: datetime, timezone: str,
                                     rescheduled: bool = False) -> bool:
        try:
            recipients = self.lookup_emails(student_ids)
        except Exception as e:
            logger.error(f"Could not look up recipients for '{quiz_title}': {e}")
            return False
        if not recipients:
            return False

        return await self._deliver({
            "event": "quiz_rescheduled" if rescheduled else "quiz_scheduled",
            "recipients": recipients,
            "quiz_title": quiz_title,
            "new_start_time": new_start_time.isoformat(),
            "display_time": format_time_for_display(new_start_time, timezone),
        })

    async def notify_reassignment(self, student_ids: List[str], quiz_title: str,
                                  reason: Optional[str] = None) -> bool:
        try:
            recipients = self.lookup_emails(student_ids)
        except Exception as e:
            logger.error(f"Could not look up recipients for '{quiz_title}': {e}")
            return False
        if not recipients:
            return False

        return await self._deliver({
            "event": "quiz_reassigned",
            "recipients": recipients,
            "quiz_title": quiz_title,
            "reason": reason,
        })
