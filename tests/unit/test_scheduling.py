"""
Unit tests for the quiz scheduling state machine
"""
import pytest
from datetime import timedelta

from scripturequiz.errors import Conflict, NotFound, ValidationFailed
from scripturequiz.models import Quiz, QuizStatus, SchedulingStatus, TimeConfiguration
from scripturequiz.services.scheduling import (
    can_enroll,
    can_publish,
    can_reschedule,
    transition_scheduling,
    validate_start_time,
)


class TestSchedulingTransitions:
    """Test allowed scheduling moves"""

    def test_deferred_to_scheduled(self):
        assert transition_scheduling(SchedulingStatus.DEFERRED, SchedulingStatus.SCHEDULED) == SchedulingStatus.SCHEDULED

    def test_scheduled_can_be_rescheduled(self):
        assert transition_scheduling(SchedulingStatus.SCHEDULED, SchedulingStatus.SCHEDULED) == SchedulingStatus.SCHEDULED

    def test_legacy_is_fixed(self):
        with pytest.raises(ValidationFailed) as exc_info:
            transition_scheduling(SchedulingStatus.LEGACY, SchedulingStatus.SCHEDULED)
        assert "cannot be rescheduled" in exc_info.value.message

    @pytest.mark.parametrize("current", list(SchedulingStatus))
    def test_nothing_returns_to_deferred(self, current):
        with pytest.raises(ValidationFailed):
            transition_scheduling(current, SchedulingStatus.DEFERRED)


class TestStartTimeRules:
    """Test lead time and horizon checks"""

    def test_minimum_lead_time(self, now):
        with pytest.raises(ValidationFailed):
            validate_start_time(now + timedelta(minutes=4), now)
        validate_start_time(now + timedelta(minutes=5), now)

    def test_maximum_horizon(self, now):
        validate_start_time(now + timedelta(days=365), now)
        with pytest.raises(ValidationFailed):
            validate_start_time(now + timedelta(days=366), now)

    def test_can_reschedule_rules(self, now):
        future = Quiz(id="q", scheduling_status="scheduled", start_time=now + timedelta(hours=1))
        started = Quiz(id="q", scheduling_status="scheduled", start_time=now - timedelta(minutes=1))
        legacy = Quiz(id="q", scheduling_status="legacy", start_time=now + timedelta(hours=1))

        assert can_reschedule(future, now) == (True, None)
        assert can_reschedule(started, now)[0] is False
        assert can_reschedule(legacy, now)[0] is False

    def test_deferred_quiz_can_publish_without_time(self, now):
        quiz = Quiz(id="q", status="draft", scheduling_status="deferred")
        assert can_publish(quiz, now) == (True, None)

    def test_cannot_publish_quiz_starting_too_soon(self, now):
        quiz = Quiz(id="q", status="draft", scheduling_status="scheduled", start_time=now + timedelta(minutes=2))
        assert can_publish(quiz, now)[0] is False

    def test_enrollment_rules(self, now):
        deferred = Quiz(id="q", status="published", scheduling_status="deferred")
        ended = Quiz(id="q", status="published", start_time=now - timedelta(hours=2), duration=30)
        draft = Quiz(id="q", status="draft", start_time=now + timedelta(hours=2))

        assert can_enroll(deferred, now)[0] is True
        assert can_enroll(ended, now)[0] is False
        assert can_enroll(draft, now)[0] is False


class TestSchedulingService:
    """Test scheduling through the service and repository"""

    def test_schedule_deferred_quiz(self, scheduling_service, make_quiz, make_enrollment, fake_db, now):
        quiz = make_quiz(scheduling_status="deferred", start_time=None)
        make_enrollment(quiz["id"], "student-2")
        make_enrollment(quiz["id"], "student-1")

        result = scheduling_service.schedule_quiz(
            quiz["id"], "educator-1", "2025-03-10T17:00:00Z", "Europe/London", None, now
        )

        assert result.changed is True
        assert result.rescheduled is False
        assert result.message == "Quiz has been scheduled successfully"
        assert result.recipients == ["student-1", "student-2"]
        assert result.quiz.scheduling_status == SchedulingStatus.SCHEDULED
        assert result.quiz.start_time == now + timedelta(hours=2)

        stored = fake_db.rows("quizzes")[0]
        assert stored["scheduled_by"] == "educator-1"
        assert stored["time_configuration"]["configuredBy"] == "educator-1"
        assert stored["time_configuration"]["timezone"] == "Europe/London"
        assert "previousStartTime" not in stored["time_configuration"]

    def test_reschedule_records_previous_time(self, scheduling_service, make_quiz, now):
        original_start = now + timedelta(hours=3)
        quiz = make_quiz(start_time=original_start, timezone="UTC")

        result = scheduling_service.schedule_quiz(
            quiz["id"], "educator-1", now + timedelta(days=1), "Asia/Manila", 45, now
        )

        assert result.rescheduled is True
        config = result.quiz.time_configuration
        assert isinstance(config, TimeConfiguration)
        assert config.previous_start_time == original_start
        assert config.previous_timezone == "UTC"
        assert config.rescheduled_at == now
        assert result.quiz.duration == 45

    def test_identical_schedule_is_a_no_op(self, scheduling_service, make_quiz, now):
        start = now + timedelta(hours=3)
        quiz = make_quiz(start_time=start, timezone="UTC", duration=60)

        result = scheduling_service.schedule_quiz(quiz["id"], "educator-1", start, "UTC", 60, now)

        assert result.changed is False
        assert result.recipients == []
        assert result.message == "Quiz schedule is unchanged"

    def test_cannot_reschedule_started_quiz(self, scheduling_service, make_quiz, now):
        quiz = make_quiz(start_time=now - timedelta(minutes=5))

        with pytest.raises(ValidationFailed):
            scheduling_service.schedule_quiz(quiz["id"], "educator-1", now + timedelta(hours=1), "UTC", None, now)

    def test_legacy_quiz_rejected(self, scheduling_service, make_quiz, now):
        quiz = make_quiz(scheduling_status="legacy", start_time=now + timedelta(hours=2))

        with pytest.raises(ValidationFailed):
            scheduling_service.schedule_quiz(quiz["id"], "educator-1", now + timedelta(hours=4), "UTC", None, now)

    def test_unknown_timezone_rejected(self, scheduling_service, make_quiz, now):
        quiz = make_quiz(scheduling_status="deferred", start_time=None)

        with pytest.raises(ValidationFailed):
            scheduling_service.schedule_quiz(quiz["id"], "educator-1", now + timedelta(hours=4), "Nowhere/Land", None, now)

    def test_bad_start_time_rejected(self, scheduling_service, make_quiz, now):
        quiz = make_quiz(scheduling_status="deferred", start_time=None)

        with pytest.raises(ValidationFailed):
            scheduling_service.schedule_quiz(quiz["id"], "educator-1", "not-a-date", "UTC", None, now)

    def test_other_educator_gets_not_found(self, scheduling_service, make_quiz, now):
        quiz = make_quiz(scheduling_status="deferred", start_time=None)

        with pytest.raises(NotFound):
            scheduling_service.schedule_quiz(quiz["id"], "educator-2", now + timedelta(hours=4), "UTC", None, now)

    def test_guarded_update_never_touches_legacy_rows(self, quiz_repo, make_quiz, fake_db, now):
        """Test the conditional write refuses a quiz that is no longer deferred or scheduled"""
        quiz = make_quiz(scheduling_status="legacy", start_time=now + timedelta(hours=2))

        updated = quiz_repo.update_schedule(
            quiz["id"], now + timedelta(hours=5), "UTC", 30, "educator-1", TimeConfiguration(), now
        )

        assert updated is None
        assert fake_db.rows("quizzes")[0]["scheduling_status"] == "legacy"

    def test_lost_race_raises_conflict(self, scheduling_service, quiz_repo, make_quiz, now, monkeypatch):
        quiz = make_quiz(scheduling_status="deferred", start_time=None)
        monkeypatch.setattr(quiz_repo, "update_schedule", lambda *args, **kwargs: None)

        with pytest.raises(Conflict):
            scheduling_service.schedule_quiz(quiz["id"], "educator-1", now + timedelta(hours=4), "UTC", None, now)

    def test_publish_draft(self, scheduling_service, make_quiz, now):
        quiz = make_quiz(status="draft", scheduling_status="deferred", start_time=None)

        published = scheduling_service.publish_quiz(quiz["id"], "educator-1", now)

        assert published.status == QuizStatus.PUBLISHED
        with pytest.raises(ValidationFailed):
            scheduling_service.publish_quiz(quiz["id"], "educator-1", now)

    def test_get_schedule(self, scheduling_service, make_quiz, now):
        quiz = make_quiz(scheduling_status="deferred", start_time=None)

        info = scheduling_service.get_schedule(quiz["id"], "educator-1", now)

        assert info["is_scheduled"] is False
        assert info["scheduling_status"] == "deferred"
        assert info["can_reschedule"] is True
        assert info["can_publish"] is False
