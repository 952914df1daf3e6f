"""
Student side of the quiz lifecycle.

Enrollment and attempt statuses move forward only:

    enrolled -> in_progress -> completed | abandoned | timeout

Every write is a conditional update on the current status, so two requests
racing on the same row cannot both win.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional, Tuple
import logging

from scripturequiz.database import DuplicateRecordError
from scripturequiz.errors import Conflict, FalseCompletion, Forbidden, NotFound, QuizUnavailable, ValidationFailed
from scripturequiz.models import AnswerRecord, AttemptStatus, Enrollment, EnrollmentStatus, QuizAttempt
from scripturequiz.repositories import AttemptRepository, EnrollmentRepository, QuizRepository
from scripturequiz.services.availability import unavailable_reason
from scripturequiz.services.grading import grade_answers
from scripturequiz.services.reassignment import pick_original, resolve_effective_enrollment
from scripturequiz.services.scheduling import can_enroll
from scripturequiz.utils.time_utils import ensure_utc

logger = logging.getLogger(__name__)

ENROLLMENT_TRANSITIONS: Dict[EnrollmentStatus, FrozenSet[EnrollmentStatus]] = {
    EnrollmentStatus.ENROLLED: frozenset({EnrollmentStatus.IN_PROGRESS}),
    EnrollmentStatus.IN_PROGRESS: frozenset({
        EnrollmentStatus.COMPLETED, EnrollmentStatus.ABANDONED, EnrollmentStatus.TIMEOUT,
    }),
    EnrollmentStatus.COMPLETED: frozenset(),
    EnrollmentStatus.ABANDONED: frozenset(),
    EnrollmentStatus.TIMEOUT: frozenset(),
}

ATTEMPT_TRANSITIONS: Dict[AttemptStatus, FrozenSet[AttemptStatus]] = {
    AttemptStatus.IN_PROGRESS: frozenset({
        AttemptStatus.COMPLETED, AttemptStatus.ABANDONED, AttemptStatus.TIMEOUT,
    }),
    AttemptStatus.COMPLETED: frozenset(),
    AttemptStatus.ABANDONED: frozenset(),
    AttemptStatus.TIMEOUT: frozenset(),
}

# Administrative correction of a false completion
ENROLLMENT_CORRECTIONS = {EnrollmentStatus.COMPLETED: frozenset({EnrollmentStatus.ABANDONED})}
ATTEMPT_CORRECTIONS = {AttemptStatus.COMPLETED: frozenset({AttemptStatus.ABANDONED})}


def _tables_for(status):
    if isinstance(status, EnrollmentStatus):
        return ENROLLMENT_TRANSITIONS, ENROLLMENT_CORRECTIONS
    return ATTEMPT_TRANSITIONS, ATTEMPT_CORRECTIONS


def can_transition(current, target, correction: bool = False) -> bool:
    transitions, corrections = _tables_for(current)
    if target in transitions[current]:
        return True
    return correction and target in corrections.get(current, frozenset())


def sources_for(target, correction: bool = False) -> List:
    """Statuses a row may be in for a move to target to be allowed"""
    return [status for status in type(target) if can_transition(status, target, correction)]


def remaining_seconds(attempt: QuizAttempt, duration: int, now: datetime) -> Optional[int]:
    """Seconds left on the attempt's clock, None when the quiz has no time limit"""
    if not duration or duration <= 0:
        return None
    started = attempt.start_time or attempt.created_at or ensure_utc(now)
    elapsed = (ensure_utc(now) - started).total_seconds()
    return max(int(duration * 60 - elapsed), 0)


@dataclass
class StartResult:
    attempt: QuizAttempt
    enrollment: Enrollment
    resumed: bool
    remaining_seconds: Optional[int] = None


class EnrollmentService:
    def __init__(self, quizzes: QuizRepository, enrollments: EnrollmentRepository,
                 attempts: AttemptRepository):
        self.quizzes = quizzes
        self.enrollments = enrollments
        self.attempts = attempts

    def _quiz(self, quiz_id: str):
        quiz = self.quizzes.get_quiz(quiz_id)
        if quiz is None:
            raise NotFound("Quiz not found")
        return quiz

    def enroll_student(self, quiz_id: str, student_id: str, now: datetime) -> Tuple[Enrollment, bool]:
        """Enroll once. Returns the enrollment and whether it was created now."""
        quiz = self._quiz(quiz_id)
        allowed, reason = can_enroll(quiz, now)
        if not allowed:
            raise ValidationFailed(reason)

        original, _ = pick_original(self.enrollments.list_enrollments(quiz_id, student_id))
        if original is not None:
            return original, False

        try:
            enrollment = self.enrollments.create_enrollment(quiz_id, student_id, now)
        except DuplicateRecordError:
            original, _ = pick_original(self.enrollments.list_enrollments(quiz_id, student_id))
            if original is None:
                raise
            return original, False

        logger.info(f"Student {student_id} enrolled in quiz {quiz_id}")
        return enrollment, True

    def start_attempt(self, quiz_id: str, student_id: str, now: datetime) -> StartResult:
        quiz = self._quiz(quiz_id)
        rows = self.enrollments.list_enrollments(quiz_id, student_id)
        if not rows:
            raise NotFound("You are not enrolled in this quiz")

        attempts = self.attempts.list_for_enrollments(row.id for row in rows)
        effective = resolve_effective_enrollment(rows, attempts, quiz, now)
        enrollment = effective.enrollment
        if enrollment is None:
            raise NotFound("You are not enrolled in this quiz")

        if effective.completed:
            raise QuizUnavailable("You have already completed this quiz", "already_completed")
        if enrollment.status.is_terminal:
            raise QuizUnavailable("Your attempt at this quiz has ended", "has_ended")
        if not effective.bypass and not effective.availability.available:
            code, message = unavailable_reason(effective.availability)
            raise QuizUnavailable(message, code)

        active = self.attempts.get_active_attempt(enrollment.id)
        if active is not None:
            return self._resume(active, enrollment, quiz.duration, now)

        try:
            attempt = self.attempts.create_attempt(enrollment, quiz.total_questions, now)
        except DuplicateRecordError:
            active = self.attempts.get_active_attempt(enrollment.id)
            if active is None:
                raise Conflict("Quiz attempt is already being started")
            return self._resume(active, enrollment, quiz.duration, now)

        moved = self.enrollments.update_enrollment_status(
            enrollment.id, EnrollmentStatus.IN_PROGRESS,
            expected=sources_for(EnrollmentStatus.IN_PROGRESS), started_at=now,
        )
        logger.info(
            f"Student {student_id} started quiz {quiz_id} (attempt {attempt.id}"
            f"{', reassignment' if enrollment.is_reassignment else ''})"
        )
        return StartResult(attempt, moved or enrollment, resumed=False,
                           remaining_seconds=remaining_seconds(attempt, quiz.duration, now))

    def _expire(self, attempt: QuizAttempt, now: datetime) -> None:
        timed_out = self.attempts.transition(
            attempt.id, AttemptStatus.TIMEOUT, expected=[AttemptStatus.IN_PROGRESS], now=now, end_time=now,
        )
        if timed_out is not None and attempt.enrollment_id:
            self.enrollments.update_enrollment_status(
                attempt.enrollment_id, EnrollmentStatus.TIMEOUT, expected=[EnrollmentStatus.IN_PROGRESS],
            )
        logger.info(f"Attempt {attempt.id} ran out of time")

    def _resume(self, attempt: QuizAttempt, enrollment: Enrollment, duration: int, now: datetime) -> StartResult:
        remaining = remaining_seconds(attempt, duration, now)
        if remaining == 0:
            self._expire(attempt, now)
            raise QuizUnavailable("Your time for this quiz has run out", "has_ended")
        return StartResult(attempt, enrollment, resumed=True, remaining_seconds=remaining)

    def _owned_attempt(self, attempt_id: str, student_id: str) -> QuizAttempt:
        attempt = self.attempts.get(attempt_id)
        if attempt is None:
            raise NotFound("Quiz attempt not found")
        if attempt.student_id != student_id:
            raise Forbidden("This attempt belongs to another student")
        return attempt

    def autosave_answers(self, attempt_id: str, student_id: str, answers: List[AnswerRecord],
                         now: datetime) -> QuizAttempt:
        """Keep partial answers on an in-progress attempt.

        Saved entries are flagged as autosave, so they never count as a
        submission and the attempt stays in progress.
        """
        attempt = self._owned_attempt(attempt_id, student_id)
        if attempt.status != AttemptStatus.IN_PROGRESS:
            raise Conflict(f"This attempt is {attempt.status.value} and can no longer be saved", existing=attempt)

        partial = [answer.model_copy(update={"is_autosave": True, "answered_at": answer.answered_at or now})
                   for answer in answers]
        saved = self.attempts.save_answers(attempt.id, partial, now)
        if saved is None:
            raise Conflict("This attempt is no longer in progress", existing=self.attempts.get(attempt.id))
        logger.debug(f"Autosaved {len(partial)} answers on attempt {attempt.id}")
        return saved

    def submit_attempt(self, attempt_id: str, student_id: str, answers: List[AnswerRecord],
                       now: datetime) -> QuizAttempt:
        attempt = self._owned_attempt(attempt_id, student_id)
        if attempt.status == AttemptStatus.COMPLETED:
            raise Conflict("Quiz already submitted", existing=attempt)
        if attempt.status != AttemptStatus.IN_PROGRESS:
            raise ValidationFailed(f"This attempt is {attempt.status.value} and can no longer be submitted")

        grade = grade_answers(answers, self.quizzes.list_questions(attempt.quiz_id))
        if not grade.answers:
            raise FalseCompletion("Submission has no answers")
        if grade.score is None:
            raise FalseCompletion("Submission could not be scored")

        started = attempt.start_time or attempt.created_at or ensure_utc(now)
        time_spent = max(int((ensure_utc(now) - started).total_seconds()), 0)

        completed = self.attempts.complete_attempt(
            attempt.id, grade.answers, grade.score, grade.total_correct,
            grade.total_questions, time_spent, now,
        )
        if completed is None:
            current = self.attempts.get(attempt.id)
            if current is not None and current.status == AttemptStatus.COMPLETED:
                raise Conflict("Quiz already submitted", existing=current)
            raise Conflict("This attempt is no longer in progress", existing=current)

        if attempt.enrollment_id:
            self.enrollments.update_enrollment_status(
                attempt.enrollment_id, EnrollmentStatus.COMPLETED,
                expected=sources_for(EnrollmentStatus.COMPLETED), completed_at=now,
            )
        logger.info(f"Attempt {attempt.id} completed by {student_id} with score {grade.score}")
        return completed

    def abandon_attempt(self, attempt_id: str, student_id: str, now: datetime) -> QuizAttempt:
        attempt = self._owned_attempt(attempt_id, student_id)
        abandoned = self.attempts.transition(
            attempt.id, AttemptStatus.ABANDONED,
            expected=sources_for(AttemptStatus.ABANDONED), now=now, end_time=now,
        )
        if abandoned is None:
            raise Conflict(f"This attempt is {attempt.status.value} and cannot be abandoned", existing=attempt)

        if attempt.enrollment_id:
            self.enrollments.update_enrollment_status(
                attempt.enrollment_id, EnrollmentStatus.ABANDONED,
                expected=sources_for(EnrollmentStatus.ABANDONED),
            )
        logger.info(f"Attempt {attempt.id} abandoned by {student_id}")
        return abandoned
