import json
from datetime import timedelta

import httpx

from scripturequiz.services.notifications import NotificationService


def recording_transport(calls, status_code=200):
    def handler(request):
        calls.append(json.loads(request.content))
        return httpx.Response(status_code)
    return httpx.MockTransport(handler)


class TestNotificationService:
    """Test webhook delivery of quiz notices"""

    def seed_users(self, fake_db):
        fake_db.seed("users", {"id": "student-1", "email": "ruth@example.com"})
        fake_db.seed("users", {"id": "student-2", "email": "boaz@example.com"})
        fake_db.seed("users", {"id": "student-3", "email": None})

    async def test_schedule_change_payload(self, fake_db, now):
        self.seed_users(fake_db)
        calls = []
        service = NotificationService(fake_db, "https://hooks.example.com/quiz",
                                      transport=recording_transport(calls))

        delivered = await service.notify_schedule_change(
            ["student-1", "student-2", "student-3"], "Ruth 1-4", now + timedelta(hours=2), "UTC", rescheduled=True
        )

        assert delivered is True
        assert calls == [{
            "event": "quiz_rescheduled",
            "recipients": ["boaz@example.com", "ruth@example.com"],
            "quiz_title": "Ruth 1-4",
            "new_start_time": (now + timedelta(hours=2)).isoformat(),
            "display_time": "Mar 10, 2025 05:00 PM UTC",
        }]

    async def test_failed_delivery_is_swallowed(self, fake_db, now):
        self.seed_users(fake_db)
        calls = []
        service = NotificationService(fake_db, "https://hooks.example.com/quiz",
                                      transport=recording_transport(calls, status_code=503))

        assert await service.notify_reassignment(["student-1"], "Ruth 1-4", "Missed it") is False
        assert len(calls) == 1

    async def test_lookup_failure_is_swallowed(self, fake_db, now):
        fake_db.fail_tables.add("users")
        service = NotificationService(fake_db, "https://hooks.example.com/quiz")

        assert await service.notify_schedule_change(["student-1"], "Ruth 1-4", now, "UTC") is False

    async def test_without_webhook_nothing_is_sent(self, fake_db, now):
        self.seed_users(fake_db)
        service = NotificationService(fake_db)

        assert await service.notify_reassignment(["student-1"], "Ruth 1-4") is False

    async def test_no_recipients(self, fake_db, now):
        calls = []
        service = NotificationService(fake_db, "https://hooks.example.com/quiz",
                                      transport=recording_transport(calls))

        assert await service.notify_schedule_change([], "Ruth 1-4", now, "UTC") is False
        assert calls == []
