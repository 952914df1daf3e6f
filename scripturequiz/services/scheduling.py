"""
Scheduling lifecycle of a quiz: legacy, deferred and scheduled.

legacy quizzes keep the start time they were created with. A deferred quiz
becomes scheduled once the educator sets a start time, and a scheduled quiz
can be moved to another time. Nothing ever goes back to deferred.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Tuple
import logging

from scripturequiz.errors import Conflict, NotFound, ValidationFailed
from scripturequiz.models import Quiz, QuizStatus, SchedulingStatus, TimeConfiguration
from scripturequiz.repositories import EnrollmentRepository, QuizRepository
from scripturequiz.services.availability import effective_start_time, window_end
from scripturequiz.utils.time_utils import ensure_utc, is_valid_timezone

logger = logging.getLogger(__name__)

SCHEDULING_TRANSITIONS = {
    SchedulingStatus.LEGACY: frozenset(),
    SchedulingStatus.DEFERRED: frozenset({SchedulingStatus.SCHEDULED}),
    SchedulingStatus.SCHEDULED: frozenset({SchedulingStatus.SCHEDULED}),
}


def transition_scheduling(current: SchedulingStatus, target: SchedulingStatus) -> SchedulingStatus:
    if target in SCHEDULING_TRANSITIONS[current]:
        return target
    if current == SchedulingStatus.LEGACY:
        raise ValidationFailed("This quiz was created with fixed scheduling and cannot be rescheduled")
    raise ValidationFailed(f"Cannot move a {current.value} quiz to {target.value}")


def validate_start_time(start_time: datetime, now: datetime, min_lead_minutes: int = 5,
                        max_days_ahead: int = 365) -> None:
    if start_time < now + timedelta(minutes=min_lead_minutes):
        raise ValidationFailed(f"Start time must be at least {min_lead_minutes} minutes in the future")
    if start_time > now + timedelta(days=max_days_ahead):
        raise ValidationFailed(f"Start time cannot be more than {max_days_ahead} days in the future")


def can_reschedule(quiz: Quiz, now: datetime) -> Tuple[bool, Optional[str]]:
    if quiz.scheduling_status == SchedulingStatus.LEGACY:
        return False, "Legacy quizzes cannot be rescheduled"
    if quiz.status == QuizStatus.ARCHIVED:
        return False, "Cannot reschedule an archived quiz"
    start_time = effective_start_time(quiz)
    if start_time and start_time <= now:
        return False, "Cannot reschedule a quiz that has already started"
    return True, None


def can_publish(quiz: Quiz, now: datetime, min_lead_minutes: int = 5) -> Tuple[bool, Optional[str]]:
    if quiz.status == QuizStatus.PUBLISHED:
        return False, "Quiz is already published"
    if quiz.status == QuizStatus.ARCHIVED:
        return False, "Cannot publish an archived quiz"
    # deferred quizzes may go out without a time; it is set later
    start_time = effective_start_time(quiz)
    if start_time and start_time < now + timedelta(minutes=min_lead_minutes):
        return False, f"Quiz start time must be at least {min_lead_minutes} minutes in the future"
    return True, None


def can_enroll(quiz: Quiz, now: datetime) -> Tuple[bool, Optional[str]]:
    if quiz.status != QuizStatus.PUBLISHED:
        return False, "Quiz is not yet published"
    if quiz.scheduling_status == SchedulingStatus.DEFERRED:
        return True, None
    start_time = effective_start_time(quiz)
    if start_time and now > window_end(start_time, quiz.duration):
        return False, "Quiz has already ended"
    return True, None


@dataclass
class ScheduleResult:
    quiz: Quiz
    rescheduled: bool
    changed: bool
    recipients: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if not self.changed:
            return "Quiz schedule is unchanged"
        if self.rescheduled:
            return "Quiz has been rescheduled successfully"
        return "Quiz has been scheduled successfully"


class SchedulingService:
    def __init__(self, quizzes: QuizRepository, enrollments: EnrollmentRepository,
                 min_lead_minutes: int = 5, max_days_ahead: int = 365):
        self.quizzes = quizzes
        self.enrollments = enrollments
        self.min_lead_minutes = min_lead_minutes
        self.max_days_ahead = max_days_ahead

    def _owned_quiz(self, quiz_id: str, educator_id: str) -> Quiz:
        quiz = self.quizzes.get_owned_quiz(quiz_id, educator_id)
        if quiz is None:
            raise NotFound("Quiz not found")
        return quiz

    def schedule_quiz(self, quiz_id: str, educator_id: str, start_time, timezone: str,
                      duration: Optional[int], now: datetime) -> ScheduleResult:
        quiz = self._owned_quiz(quiz_id, educator_id)
        transition_scheduling(quiz.scheduling_status, SchedulingStatus.SCHEDULED)

        if quiz.status == QuizStatus.ARCHIVED:
            raise ValidationFailed("Cannot schedule an archived quiz")
        if not is_valid_timezone(timezone):
            raise ValidationFailed(f"Unknown timezone: {timezone}")

        duration = quiz.duration if duration is None else duration
        if duration <= 0:
            raise ValidationFailed("Duration must be a positive number of minutes")

        try:
            start_time = ensure_utc(start_time)
        except (TypeError, ValueError):
            raise ValidationFailed("Invalid start time provided")
        if start_time is None:
            raise ValidationFailed("Start time and timezone are required")

        if (quiz.scheduling_status == SchedulingStatus.SCHEDULED
                and quiz.start_time == start_time
                and quiz.timezone == timezone
                and quiz.duration == duration):
            logger.info(f"Schedule for quiz {quiz_id} replayed without changes")
            return ScheduleResult(quiz=quiz, rescheduled=False, changed=False)

        allowed, reason = can_reschedule(quiz, now)
        if not allowed:
            raise ValidationFailed(reason)
        validate_start_time(start_time, now, self.min_lead_minutes, self.max_days_ahead)

        rescheduled = quiz.start_time is not None
        configuration = TimeConfiguration(
            start_time=start_time,
            timezone=timezone,
            duration=duration,
            configured_at=now,
            configured_by=educator_id,
            is_legacy=False,
        )
        if rescheduled:
            configuration.previous_start_time = quiz.start_time
            configuration.previous_timezone = quiz.timezone
            configuration.rescheduled_at = now

        updated = self.quizzes.update_schedule(
            quiz_id, start_time, timezone, duration, educator_id, configuration, now
        )
        if updated is None:
            raise Conflict("Quiz scheduling was changed by another request")

        recipients = sorted({e.student_id for e in self.enrollments.list_for_quiz(quiz_id)})
        logger.info(
            f"Quiz {quiz_id} {'rescheduled' if rescheduled else 'scheduled'} for "
            f"{start_time.isoformat()} ({timezone}) by {educator_id}; {len(recipients)} students to notify"
        )
        return ScheduleResult(quiz=updated, rescheduled=rescheduled, changed=True, recipients=recipients)

    def publish_quiz(self, quiz_id: str, educator_id: str, now: datetime) -> Quiz:
        quiz = self._owned_quiz(quiz_id, educator_id)
        allowed, reason = can_publish(quiz, now, self.min_lead_minutes)
        if not allowed:
            raise ValidationFailed(reason)

        published = self.quizzes.update_status(quiz_id, QuizStatus.PUBLISHED, QuizStatus.DRAFT, now)
        if published is None:
            raise Conflict("Quiz is no longer a draft")
        logger.info(f"Quiz {quiz_id} published by {educator_id}")
        return published

    def get_schedule(self, quiz_id: str, educator_id: str, now: datetime) -> dict:
        quiz = self._owned_quiz(quiz_id, educator_id)
        reschedulable, reschedule_reason = can_reschedule(quiz, now)
        publishable, publish_reason = can_publish(quiz, now, self.min_lead_minutes)
        start_time = effective_start_time(quiz)
        return {
            "quiz_id": quiz.id,
            "title": quiz.title,
            "status": quiz.status.value,
            "scheduling_status": quiz.scheduling_status.value,
            "start_time": start_time,
            "timezone": quiz.timezone,
            "duration": quiz.duration,
            "is_scheduled": start_time is not None,
            "scheduled_by": quiz.scheduled_by,
            "scheduled_at": quiz.scheduled_at,
            "time_configuration": quiz.time_configuration,
            "can_reschedule": reschedulable,
            "can_reschedule_reason": reschedule_reason,
            "can_publish": publishable,
            "can_publish_reason": publish_reason,
        }
