from collections import defaultdict
from datetime import datetime
from typing import Iterable, List
import logging

from scripturequiz.models import (
    AvailabilityStatus,
    Enrollment,
    EnrollmentStatus,
    Quiz,
    QuizAttempt,
    QuizStatus,
    StudentAction,
    StudentQuizStatus,
)
from scripturequiz.repositories import AttemptRepository, EnrollmentRepository, QuizRepository
from scripturequiz.services.reassignment import EffectiveEnrollment, resolve_effective_enrollment
from scripturequiz.services.scheduling import can_enroll

logger = logging.getLogger(__name__)

COMPLETED_MESSAGE = "You have already completed this quiz"


def _action_for(effective: EffectiveEnrollment, quiz: Quiz, now: datetime) -> StudentAction:
    if not effective.enrolled:
        allowed, _ = can_enroll(quiz, now)
        return StudentAction.ENROLL if allowed else StudentAction.LOCKED
    if effective.completed:
        return StudentAction.VIEW_RESULTS
    if effective.state.is_terminal or not effective.availability.available:
        return StudentAction.LOCKED
    if effective.state == EnrollmentStatus.IN_PROGRESS and effective.attempt is not None:
        return StudentAction.RESUME
    return StudentAction.START


def build_student_quiz_status(quiz: Quiz, rows: Iterable[Enrollment], attempts: Iterable[QuizAttempt],
                              now: datetime) -> StudentQuizStatus:
    effective = resolve_effective_enrollment(rows, attempts, quiz, now)
    availability = effective.availability
    completed = effective.completed

    return StudentQuizStatus(
        quiz_id=quiz.id,
        title=quiz.title,
        enrolled=effective.enrolled,
        attempted=completed,
        is_active=availability.status == AvailabilityStatus.ACTIVE,
        is_upcoming=availability.status == AvailabilityStatus.UPCOMING,
        is_expired=availability.status == AvailabilityStatus.ENDED,
        is_reassignment=effective.is_reassignment,
        availability_status=availability.status.value,
        availability_message=COMPLETED_MESSAGE if completed else availability.message,
        action=_action_for(effective, quiz, now),
        enrollment_id=effective.enrollment.id if effective.enrollment else None,
        attempt_id=effective.attempt.id if effective.attempt else None,
        score=effective.attempt.score if completed and effective.attempt else None,
        start_time=availability.window_start,
        end_time=availability.window_end,
        timezone=quiz.timezone,
    )


class StudentDashboardService:
    def __init__(self, quizzes: QuizRepository, enrollments: EnrollmentRepository,
                 attempts: AttemptRepository):
        self.quizzes = quizzes
        self.enrollments = enrollments
        self.attempts = attempts

    def list_student_quizzes(self, student_id: str, now: datetime) -> List[StudentQuizStatus]:
        """Status of every published quiz the student holds an enrollment for"""
        rows = self.enrollments.list_for_student(student_id)
        if not rows:
            return []

        rows_by_quiz = defaultdict(list)
        for row in rows:
            rows_by_quiz[row.quiz_id].append(row)
        attempts = self.attempts.list_for_enrollments(row.id for row in rows)

        statuses = []
        for quiz in self.quizzes.list_quizzes(rows_by_quiz):
            if quiz.status != QuizStatus.PUBLISHED:
                continue
            statuses.append(build_student_quiz_status(quiz, rows_by_quiz[quiz.id], attempts, now))

        statuses.sort(key=lambda s: (s.start_time is None, s.start_time or now, s.title))
        logger.debug(f"Built {len(statuses)} quiz statuses for student {student_id}")
        return statuses
