"""
Unit tests for quiz window availability
"""
import pytest
from datetime import datetime, timedelta
import pytz

from scripturequiz.models import AvailabilityStatus, Quiz, TimeConfiguration
from scripturequiz.services.availability import (
    REASSIGNED_MESSAGE,
    compute_availability,
    effective_start_time,
    reassignment_availability,
    unavailable_reason,
)

NOW = datetime(2025, 3, 10, 15, 0, tzinfo=pytz.UTC)


def build_quiz(**overrides):
    data = {
        "id": "quiz-1",
        "title": "Psalms Week 2",
        "status": "published",
        "scheduling_status": "scheduled",
        "start_time": NOW - timedelta(minutes=10),
        "timezone": "America/New_York",
        "duration": 60,
    }
    data.update(overrides)
    return Quiz.model_validate(data)


class TestComputeAvailability:
    """Test the availability window"""

    def test_active_inside_window(self):
        """Test a quiz inside its window is active with minutes remaining"""
        result = compute_availability(build_quiz(), NOW)

        assert result.status == AvailabilityStatus.ACTIVE
        assert result.available is True
        assert result.message == "Quiz is active (50 minutes remaining)"
        assert result.window_end == NOW + timedelta(minutes=50)

    def test_upcoming_message_uses_quiz_timezone(self):
        """Test the countdown shows the start in the quiz's own timezone"""
        quiz = build_quiz(start_time=NOW + timedelta(minutes=90))

        result = compute_availability(quiz, NOW)

        assert result.status == AvailabilityStatus.UPCOMING
        assert result.available is False
        assert result.message == "Starts in 1 hour 30 minutes (Mar 10, 2025 12:30 PM EDT)"

    def test_window_bounds_are_inclusive(self):
        """Test the first and last instant of the window are both active"""
        start = NOW
        quiz = build_quiz(start_time=start, duration=30)

        assert compute_availability(quiz, start).status == AvailabilityStatus.ACTIVE
        assert compute_availability(quiz, start + timedelta(minutes=30)).status == AvailabilityStatus.ACTIVE
        assert compute_availability(quiz, start - timedelta(seconds=1)).status == AvailabilityStatus.UPCOMING

        ended = compute_availability(quiz, start + timedelta(minutes=30, seconds=1))
        assert ended.status == AvailabilityStatus.ENDED
        assert ended.message == "Quiz has ended"

    def test_thirty_minute_quiz_through_the_day(self):
        """Test upcoming, active and ended states around a 03:30 start"""
        start = datetime(2025, 9, 4, 3, 30, tzinfo=pytz.UTC)
        quiz = build_quiz(start_time=start, duration=30, timezone="UTC")

        assert compute_availability(quiz, datetime(2025, 9, 4, 3, 0, tzinfo=pytz.UTC)).status == AvailabilityStatus.UPCOMING
        assert compute_availability(quiz, datetime(2025, 9, 4, 3, 45, tzinfo=pytz.UTC)).status == AvailabilityStatus.ACTIVE
        ended = compute_availability(quiz, datetime(2025, 9, 4, 4, 5, tzinfo=pytz.UTC))
        assert ended.status == AvailabilityStatus.ENDED
        assert reassignment_availability(ended).status == AvailabilityStatus.ACTIVE

    def test_zero_duration_is_a_single_instant(self):
        """Test a zero duration window is open only at its start"""
        quiz = build_quiz(start_time=NOW, duration=0)

        assert compute_availability(quiz, NOW).available is True
        assert compute_availability(quiz, NOW + timedelta(seconds=1)).status == AvailabilityStatus.ENDED

    def test_deferred_without_start_is_pending(self):
        """Test a deferred quiz with no start time is never available"""
        quiz = build_quiz(scheduling_status="deferred", start_time=None)

        result = compute_availability(quiz, NOW)

        assert result.status == AvailabilityStatus.NOT_SCHEDULED
        assert result.available is False
        assert result.message == "Schedule pending."

    def test_deferred_ignores_configured_start(self):
        """Test a deferred quiz stays pending even with a time in its configuration"""
        quiz = build_quiz(
            scheduling_status="deferred",
            start_time=None,
            time_configuration={"startTime": (NOW - timedelta(minutes=5)).isoformat()},
        )

        result = compute_availability(quiz, NOW)

        assert result.status == AvailabilityStatus.NOT_SCHEDULED
        assert result.available is False
        assert result.message == "Schedule pending."

    def test_unpublished_quiz_not_available(self):
        """Test a draft quiz is not available even inside its window"""
        result = compute_availability(build_quiz(status="draft"), NOW)

        assert result.status == AvailabilityStatus.NOT_SCHEDULED
        assert result.available is False

    def test_legacy_without_start_is_not_scheduled(self):
        """Test a legacy row missing its start time is treated as unscheduled"""
        quiz = build_quiz(scheduling_status=None, start_time=None)

        result = compute_availability(quiz, NOW)

        assert result.status == AvailabilityStatus.NOT_SCHEDULED
        assert result.message == "Quiz time has not been scheduled yet"

    def test_naive_now_is_read_as_utc(self):
        """Test a naive clock value is treated as UTC"""
        result = compute_availability(build_quiz(), NOW.replace(tzinfo=None))

        assert result.status == AvailabilityStatus.ACTIVE


class TestStartTimeResolution:
    """Test where the start time is read from"""

    def test_start_time_from_time_configuration(self):
        """Test the time configuration fills in a missing start time"""
        configured = NOW + timedelta(hours=2)
        quiz = build_quiz(
            start_time=None,
            time_configuration=TimeConfiguration(start_time=configured, timezone="UTC").model_dump(by_alias=True),
        )

        assert effective_start_time(quiz) == configured
        assert compute_availability(quiz, NOW).status == AvailabilityStatus.UPCOMING

    def test_time_configuration_json_string(self):
        """Test time configuration stored as a JSON string is parsed"""
        quiz = build_quiz(start_time=None, time_configuration='{"startTime": "2025-03-10T16:00:00Z"}')

        assert effective_start_time(quiz) == NOW + timedelta(hours=1)


class TestReassignmentAvailability:
    """Test availability for pending reassignments"""

    def test_reassignment_opens_ended_quiz(self):
        """Test a reassignment is active even after the window closed"""
        base = compute_availability(build_quiz(start_time=NOW - timedelta(hours=3)), NOW)
        assert base.status == AvailabilityStatus.ENDED

        result = reassignment_availability(base)

        assert result.status == AvailabilityStatus.ACTIVE
        assert result.available is True
        assert result.message == REASSIGNED_MESSAGE
        assert result.window_start == base.window_start

    @pytest.mark.parametrize("overrides,code", [
        ({"start_time": NOW + timedelta(hours=1)}, "not_started"),
        ({"start_time": NOW - timedelta(hours=3)}, "has_ended"),
        ({"status": "draft"}, "not_published"),
        ({"scheduling_status": "deferred", "start_time": None}, "awaiting_schedule"),
    ])
    def test_unavailable_reason_codes(self, overrides, code):
        """Test each closed state maps to its reason code"""
        reason, message = unavailable_reason(compute_availability(build_quiz(**overrides), NOW))

        assert reason == code
        assert message
