"""
Reassignment resolution.

A student can hold several enrollment rows for one quiz: the original, any
reassignments an educator granted later, and occasionally a duplicate original
left behind by a race. ``resolve_effective_enrollment`` picks the one row that
decides what the student sees, in this order:

1. a completed reassignment
2. a completed original
3. a pending reassignment, which is always open regardless of the quiz window
4. the original, under the normal window rules
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from scripturequiz.database import DuplicateRecordError
from scripturequiz.errors import Conflict, NotFound, ValidationFailed
from scripturequiz.models import (
    Availability,
    AttemptStatus,
    Enrollment,
    EnrollmentStatus,
    Quiz,
    QuizAttempt,
    QuizStatus,
)
from scripturequiz.repositories import AttemptRepository, EnrollmentRepository, QuizRepository
from scripturequiz.services.availability import compute_availability, reassignment_availability
from scripturequiz.utils.time_utils import EPOCH

logger = logging.getLogger(__name__)


def _created_key(enrollment: Enrollment):
    return (enrollment.created_at or enrollment.enrolled_at or EPOCH, enrollment.id)


def _reassigned_key(enrollment: Enrollment):
    return (enrollment.reassigned_at or enrollment.created_at or enrollment.enrolled_at or EPOCH, enrollment.id)


def _completed_key(enrollment: Enrollment):
    return (enrollment.completed_at or EPOCH,) + _reassigned_key(enrollment)


def _attempt_key(attempt: QuizAttempt):
    return (attempt.end_time or attempt.created_at or attempt.start_time or EPOCH, attempt.id)


def pick_original(rows: Iterable[Enrollment]) -> Tuple[Optional[Enrollment], int]:
    """Newest original wins; the second value counts the extra originals"""
    originals = [row for row in rows if not row.is_reassignment]
    if not originals:
        return None, 0
    return max(originals, key=_created_key), len(originals) - 1


def order_reassignments(rows: Iterable[Enrollment]) -> List[Enrollment]:
    return sorted((row for row in rows if row.is_reassignment), key=_reassigned_key)


@dataclass
class EffectiveEnrollment:
    enrollment: Optional[Enrollment]
    availability: Availability
    attempt: Optional[QuizAttempt] = None
    bypass: bool = False
    duplicate_originals: int = 0
    original: Optional[Enrollment] = None
    reassignments: List[Enrollment] = field(default_factory=list)

    @property
    def enrolled(self) -> bool:
        return self.enrollment is not None

    @property
    def state(self) -> Optional[EnrollmentStatus]:
        return self.enrollment.status if self.enrollment else None

    @property
    def is_reassignment(self) -> bool:
        return bool(self.enrollment and self.enrollment.is_reassignment)

    @property
    def completed(self) -> bool:
        return self.state == EnrollmentStatus.COMPLETED


def _attempt_for(enrollment: Enrollment, attempts: Iterable[QuizAttempt]) -> Optional[QuizAttempt]:
    mine = [a for a in attempts if a.enrollment_id == enrollment.id]
    if enrollment.status == EnrollmentStatus.COMPLETED:
        valid = [a for a in mine if a.is_valid_completion]
        candidates = valid or [a for a in mine if a.status == AttemptStatus.COMPLETED]
    else:
        candidates = [a for a in mine if a.status == AttemptStatus.IN_PROGRESS]
    return max(candidates, key=_attempt_key) if candidates else None


def resolve_effective_enrollment(rows: Iterable[Enrollment], attempts: Iterable[QuizAttempt],
                                 quiz: Quiz, now: datetime) -> EffectiveEnrollment:
    rows = list(rows)
    attempts = list(attempts)
    original, duplicates = pick_original(rows)
    reassignments = order_reassignments(rows)
    base = compute_availability(quiz, now)

    if duplicates:
        logger.warning(
            f"{duplicates + 1} original enrollments for quiz {quiz.id}, "
            f"student {original.student_id}; using {original.id}"
        )

    def build(chosen: Optional[Enrollment], availability: Availability, bypass: bool = False):
        return EffectiveEnrollment(
            enrollment=chosen,
            availability=availability,
            attempt=_attempt_for(chosen, attempts) if chosen else None,
            bypass=bypass,
            duplicate_originals=duplicates,
            original=original,
            reassignments=reassignments,
        )

    completed_reassignments = [r for r in reassignments if r.status == EnrollmentStatus.COMPLETED]
    if completed_reassignments:
        return build(max(completed_reassignments, key=_completed_key), base)

    if original and original.status == EnrollmentStatus.COMPLETED:
        return build(original, base)

    pending = [r for r in reassignments if r.status.is_pending]
    if pending:
        return build(pending[-1], reassignment_availability(base), bypass=True)

    return build(original, base)


@dataclass
class Eligibility:
    eligible: bool
    code: Optional[str] = None  # not_enrolled | completed | already_reassigned
    reason: Optional[str] = None


def check_reassignment_eligibility(rows: Iterable[Enrollment]) -> Eligibility:
    rows = list(rows)
    original, _ = pick_original(rows)
    if original is None:
        return Eligibility(False, "not_enrolled", "Student has no original enrollment for this quiz")
    if original.status == EnrollmentStatus.COMPLETED:
        return Eligibility(False, "completed", "Student has already completed this quiz")

    reassignments = order_reassignments(rows)
    if any(r.status == EnrollmentStatus.COMPLETED for r in reassignments):
        return Eligibility(False, "completed", "Student has already completed this quiz through a reassignment")
    if any(r.status.is_pending for r in reassignments):
        return Eligibility(False, "already_reassigned", "Student already has a pending reassignment")
    return Eligibility(True)


@dataclass
class ReassignmentSummary:
    quiz_title: str = ""
    reassigned: List[Enrollment] = field(default_factory=list)
    already_reassigned: List[str] = field(default_factory=list)
    completed: List[str] = field(default_factory=list)
    not_enrolled: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        return f"Successfully reassigned quiz to {len(self.reassigned)} student(s)"


def group_by_student(rows: Iterable[Enrollment]) -> Dict[str, List[Enrollment]]:
    grouped = defaultdict(list)
    for row in rows:
        grouped[row.student_id].append(row)
    return grouped


class ReassignmentService:
    def __init__(self, quizzes: QuizRepository, enrollments: EnrollmentRepository,
                 attempts: AttemptRepository):
        self.quizzes = quizzes
        self.enrollments = enrollments
        self.attempts = attempts

    def _owned_quiz(self, quiz_id: str, educator_id: str) -> Quiz:
        quiz = self.quizzes.get_owned_quiz(quiz_id, educator_id)
        if quiz is None:
            raise NotFound("Quiz not found or unauthorized")
        return quiz

    def reassign(self, quiz_id: str, educator_id: str, student_ids: List[str],
                 reason: str, now: datetime) -> ReassignmentSummary:
        quiz = self._owned_quiz(quiz_id, educator_id)
        if quiz.status != QuizStatus.PUBLISHED:
            raise ValidationFailed("Quiz must be published before reassigning")

        student_ids = list(dict.fromkeys(student_ids))
        if not student_ids:
            raise ValidationFailed("No students selected for reassignment")

        rows_by_student = group_by_student(self.enrollments.list_for_quiz(quiz_id, student_ids))
        summary = ReassignmentSummary(quiz_title=quiz.title)

        for student_id in student_ids:
            rows = rows_by_student.get(student_id, [])
            eligibility = check_reassignment_eligibility(rows)
            if not eligibility.eligible:
                getattr(summary, eligibility.code).append(student_id)
                continue

            parent, _ = pick_original(rows)
            try:
                created = self.enrollments.create_enrollment(
                    quiz_id, student_id, now, parent=parent, reason=reason, reassigned_by=educator_id
                )
            except DuplicateRecordError:
                # another educator request inserted the pending reassignment first
                summary.already_reassigned.append(student_id)
                continue
            summary.reassigned.append(created)

        if not summary.reassigned:
            if summary.already_reassigned and not (summary.completed or summary.not_enrolled):
                raise Conflict("All selected students have already been reassigned")
            raise ValidationFailed(
                "No eligible students for reassignment (all have completed, "
                "already have a pending reassignment, or have no original enrollment)"
            )

        logger.info(
            f"Quiz {quiz_id} reassigned to {len(summary.reassigned)} student(s) by {educator_id}; "
            f"skipped {len(summary.already_reassigned)} already reassigned, "
            f"{len(summary.completed)} completed, {len(summary.not_enrolled)} not enrolled"
        )
        return summary

    def list_candidates(self, quiz_id: str, educator_id: str, now: datetime) -> List[dict]:
        quiz = self._owned_quiz(quiz_id, educator_id)
        rows = self.enrollments.list_for_quiz(quiz_id)
        attempts = self.attempts.list_for_enrollments(row.id for row in rows)

        candidates = []
        for student_id, student_rows in sorted(group_by_student(rows).items()):
            effective = resolve_effective_enrollment(student_rows, attempts, quiz, now)
            eligibility = check_reassignment_eligibility(student_rows)
            candidates.append({
                "student_id": student_id,
                "enrollment_id": effective.enrollment.id if effective.enrollment else None,
                "status": effective.state.value if effective.state else None,
                "is_reassignment": effective.is_reassignment,
                "reassignment_count": len(effective.reassignments),
                "score": effective.attempt.score if effective.attempt and effective.completed else None,
                "eligible": eligibility.eligible,
                "reason": eligibility.reason,
            })
        return candidates
