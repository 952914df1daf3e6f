"""
Administrative upkeep of quiz attempts.

The stale sweep closes attempts nobody will ever submit:

* elapsed time since start (or creation) above ``timeout_multiplier`` x
  duration marks the attempt ``timeout``
* an attempt that never recorded a start and is older than
  ``abandon_multiplier`` x duration is ``abandoned``

Every write is guarded on the status the row was read in, so a student
submitting while the sweep runs keeps the submission.
"""

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
import json
import logging
import math

from scripturequiz.models import AttemptStatus, EnrollmentStatus, QuizAttempt, TimeConfiguration
from scripturequiz.repositories import AttemptRepository, EnrollmentRepository, QuizRepository
from scripturequiz.services.enrollment import sources_for
from scripturequiz.services.reassignment import pick_original
from scripturequiz.utils.time_utils import EPOCH, ensure_utc, minutes_between

logger = logging.getLogger(__name__)

ENROLLMENT_OUTCOME = {
    AttemptStatus.TIMEOUT: EnrollmentStatus.TIMEOUT,
    AttemptStatus.ABANDONED: EnrollmentStatus.ABANDONED,
}


def resolve_duration(quiz_row: Dict[str, Any], default: int = 30) -> int:
    """Minutes a quiz runs for.

    A positive ``duration`` wins, then the ``timeLimit`` (seconds) recorded in
    the time configuration. Malformed configuration JSON raises.
    """
    duration = quiz_row.get("duration")
    if duration and int(duration) > 0:
        return int(duration)

    raw = quiz_row.get("time_configuration")
    if isinstance(raw, str):
        raw = json.loads(raw) if raw.strip() else None
    if raw:
        config = TimeConfiguration.model_validate(raw)
        if config.time_limit_seconds:
            return math.ceil(config.time_limit_seconds / 60)
    return default


def classify_stale_attempt(attempt: QuizAttempt, duration: int, now: datetime,
                           timeout_multiplier: float = 2.0,
                           abandon_multiplier: float = 1.5) -> Optional[AttemptStatus]:
    started = attempt.start_time or attempt.created_at
    if started is None:
        return None

    elapsed = minutes_between(started, now)
    if elapsed > duration * timeout_multiplier:
        return AttemptStatus.TIMEOUT
    if attempt.start_time is None and elapsed > duration * abandon_multiplier:
        return AttemptStatus.ABANDONED
    return None


def is_false_completion(attempt: QuizAttempt) -> bool:
    return attempt.is_false_completion


@dataclass
class SweepResult:
    timed_out: int = 0
    abandoned: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)
    total_processed: int = 0


@dataclass
class CorrectionResult:
    dry_run: bool
    found: int = 0
    fixed: int = 0
    enrollments_reverted: int = 0
    attempt_ids: List[str] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)


class MaintenanceService:
    def __init__(self, quizzes: QuizRepository, enrollments: EnrollmentRepository,
                 attempts: AttemptRepository, default_duration: int = 30,
                 timeout_multiplier: float = 2.0, abandon_multiplier: float = 1.5,
                 answer_retention_days: int = 7):
        self.quizzes = quizzes
        self.enrollments = enrollments
        self.attempts = attempts
        self.default_duration = default_duration
        self.timeout_multiplier = timeout_multiplier
        self.abandon_multiplier = abandon_multiplier
        self.answer_retention_days = answer_retention_days

    def _close_enrollment(self, enrollment_id: Optional[str], status: EnrollmentStatus) -> None:
        if not enrollment_id:
            return
        self.enrollments.update_enrollment_status(
            enrollment_id, status, expected=[EnrollmentStatus.IN_PROGRESS]
        )

    def sweep_stale_attempts(self, now: datetime) -> SweepResult:
        now = ensure_utc(now)
        rows = self.attempts.list_raw_by_status(AttemptStatus.IN_PROGRESS)
        quiz_rows = {row["id"]: row for row in self.quizzes.list_raw(row.get("quiz_id") for row in rows)}
        result = SweepResult(total_processed=len(rows))
        logger.info(f"Found {len(rows)} in-progress attempts to check")

        for row in rows:
            attempt_id = str(row.get("id"))
            try:
                quiz_row = quiz_rows.get(row.get("quiz_id"))
                if quiz_row is None:
                    logger.warning(f"Attempt {attempt_id} references missing quiz {row.get('quiz_id')}")
                    result.errors.append({"attempt_id": attempt_id, "error": "quiz not found"})
                    continue

                attempt = QuizAttempt.model_validate(row)
                duration = resolve_duration(quiz_row, self.default_duration)
                outcome = classify_stale_attempt(
                    attempt, duration, now, self.timeout_multiplier, self.abandon_multiplier
                )
                if outcome is None:
                    continue

                fields = {"end_time": now} if outcome == AttemptStatus.TIMEOUT else {}
                changed = self.attempts.transition(
                    attempt.id, outcome, expected=[AttemptStatus.IN_PROGRESS], now=now, **fields
                )
                if changed is None:
                    # submitted or swept elsewhere since it was read
                    continue

                self._close_enrollment(attempt.enrollment_id, ENROLLMENT_OUTCOME[outcome])
                if outcome == AttemptStatus.TIMEOUT:
                    result.timed_out += 1
                else:
                    result.abandoned += 1
                logger.info(
                    f"Marked attempt {attempt.id} as {outcome.value} "
                    f"(student {attempt.student_id}, quiz {attempt.quiz_id}, duration {duration}m)"
                )
            except Exception as e:
                logger.error(f"Error processing attempt {attempt_id}: {e}")
                result.errors.append({"attempt_id": attempt_id, "error": str(e)})

        return result

    def purge_stale_answers(self, now: datetime) -> int:
        cutoff = ensure_utc(now) - timedelta(days=self.answer_retention_days)
        cleared = self.attempts.clear_answers([AttemptStatus.TIMEOUT, AttemptStatus.ABANDONED], cutoff)
        if cleared:
            logger.info(f"Cleared saved answers from {cleared} closed attempts")
        return cleared

    def correct_false_completions(self, now: datetime, dry_run: bool = True) -> CorrectionResult:
        """Completed attempts with no score or no real answers go back to abandoned"""
        completed = self.attempts.list_by_status(AttemptStatus.COMPLETED)
        suspects = [attempt for attempt in completed if is_false_completion(attempt)]
        result = CorrectionResult(dry_run=dry_run, found=len(suspects),
                                  attempt_ids=[attempt.id for attempt in suspects])
        if dry_run or not suspects:
            return result

        valid_by_enrollment = defaultdict(int)
        for attempt in completed:
            if attempt.is_valid_completion and attempt.enrollment_id:
                valid_by_enrollment[attempt.enrollment_id] += 1

        for attempt in suspects:
            try:
                changed = self.attempts.transition(
                    attempt.id, AttemptStatus.ABANDONED,
                    expected=sources_for(AttemptStatus.ABANDONED, correction=True), now=now,
                )
                if changed is None:
                    continue
                result.fixed += 1

                if attempt.enrollment_id and not valid_by_enrollment[attempt.enrollment_id]:
                    reverted = self.enrollments.update_enrollment_status(
                        attempt.enrollment_id, EnrollmentStatus.ABANDONED,
                        expected=[EnrollmentStatus.COMPLETED], completed_at=None,
                    )
                    if reverted is not None:
                        result.enrollments_reverted += 1
            except Exception as e:
                logger.error(f"Error correcting attempt {attempt.id}: {e}")
                result.errors.append({"attempt_id": attempt.id, "error": str(e)})

        logger.info(
            f"Corrected {result.fixed} of {result.found} false completions, "
            f"reverted {result.enrollments_reverted} enrollments"
        )
        return result

    def abandon_duplicate_attempts(self, now: datetime) -> int:
        """Several in-progress attempts for one enrollment: keep the newest"""
        by_enrollment = defaultdict(list)
        for attempt in self.attempts.list_by_status(AttemptStatus.IN_PROGRESS):
            if attempt.enrollment_id:
                by_enrollment[attempt.enrollment_id].append(attempt)

        abandoned = 0
        for enrollment_id, attempts in by_enrollment.items():
            if len(attempts) < 2:
                continue
            attempts.sort(key=lambda a: (a.created_at or a.start_time or EPOCH, a.id))
            for stale in attempts[:-1]:
                if self.attempts.transition(
                    stale.id, AttemptStatus.ABANDONED, expected=[AttemptStatus.IN_PROGRESS], now=now
                ):
                    abandoned += 1
            logger.warning(f"Enrollment {enrollment_id} had {len(attempts)} in-progress attempts")
        return abandoned

    def reconcile_enrollment_statuses(self, now: datetime) -> int:
        """Enrollments whose valid completed attempt was never reflected on the row"""
        completed_at = {}
        for attempt in self.attempts.list_by_status(AttemptStatus.COMPLETED):
            if attempt.is_valid_completion and attempt.enrollment_id:
                end = attempt.end_time or ensure_utc(now)
                completed_at[attempt.enrollment_id] = max(end, completed_at.get(attempt.enrollment_id, end))
        if not completed_at:
            return 0

        not_completed = [status for status in EnrollmentStatus if status != EnrollmentStatus.COMPLETED]
        fixed = 0
        for enrollment in self.enrollments.list_by_status(not_completed):
            if enrollment.id not in completed_at:
                continue
            updated = self.enrollments.update_enrollment_status(
                enrollment.id, EnrollmentStatus.COMPLETED,
                expected=not_completed, completed_at=completed_at[enrollment.id],
            )
            if updated is not None:
                fixed += 1
                logger.info(f"Enrollment {enrollment.id} marked completed from its attempt")
        return fixed

    def find_duplicate_originals(self) -> List[Dict[str, Any]]:
        pairs = defaultdict(list)
        for enrollment in self.enrollments.list_originals():
            pairs[(enrollment.quiz_id, enrollment.student_id)].append(enrollment)

        duplicates = []
        for (quiz_id, student_id), rows in sorted(pairs.items()):
            if len(rows) < 2:
                continue
            kept, _ = pick_original(rows)
            duplicates.append({
                "quiz_id": quiz_id,
                "student_id": student_id,
                "count": len(rows),
                "authoritative_id": kept.id,
                "enrollment_ids": sorted(row.id for row in rows),
            })
        return duplicates

    def attempt_statistics(self, now: datetime) -> Dict[str, Any]:
        now = ensure_utc(now)
        counts = Counter()
        older_than_hour = older_than_day = 0

        for status in AttemptStatus:
            attempts = self.attempts.list_by_status(status)
            counts[status.value] = len(attempts)
            if status != AttemptStatus.IN_PROGRESS:
                continue
            for attempt in attempts:
                created = attempt.created_at or attempt.start_time
                if created is None:
                    continue
                if created < now - timedelta(hours=1):
                    older_than_hour += 1
                if created < now - timedelta(days=1):
                    older_than_day += 1

        return {
            "statistics": dict(counts),
            "stuck_attempts": {
                "older_than_one_hour": older_than_hour,
                "older_than_one_day": older_than_day,
            },
        }

    def run(self, now: datetime) -> Dict[str, Any]:
        """One full maintenance pass, as run by the periodic scheduler"""
        sweep = self.sweep_stale_attempts(now)
        cleared = self.purge_stale_answers(now)
        return {"sweep": sweep, "answers_cleared": cleared}
