from datetime import datetime
from typing import Iterable, List, Optional
from uuid import uuid4

from scripturequiz.database import Database
from scripturequiz.models import AnswerRecord, AttemptStatus, Enrollment, QuizAttempt
from scripturequiz.utils.time_utils import EPOCH

ATTEMPTS = "quiz_attempts"


def _serialize(value):
    return value.isoformat() if isinstance(value, datetime) else value


class AttemptRepository:
    def __init__(self, database: Database):
        self.db = database

    def _many(self, rows) -> List[QuizAttempt]:
        return [QuizAttempt.model_validate(row) for row in rows or []]

    def get(self, attempt_id: str) -> Optional[QuizAttempt]:
        rows = self.db.select(ATTEMPTS, "*", {"id": attempt_id}, limit=1)
        return QuizAttempt.model_validate(rows[0]) if rows else None

    def get_active_attempt(self, enrollment_id: str) -> Optional[QuizAttempt]:
        """Newest in-progress attempt for the enrollment"""
        attempts = self._many(self.db.select(
            ATTEMPTS, "*", {"enrollment_id": enrollment_id, "status": AttemptStatus.IN_PROGRESS.value}
        ))
        if not attempts:
            return None
        return max(attempts, key=lambda a: (a.created_at or a.start_time or EPOCH, a.id))

    def list_for_enrollments(self, enrollment_ids: Iterable[str]) -> List[QuizAttempt]:
        enrollment_ids = list(enrollment_ids)
        if not enrollment_ids:
            return []
        return self._many(self.db.select(ATTEMPTS, "*", in_filters={"enrollment_id": enrollment_ids}))

    def list_by_status(self, status: AttemptStatus, updated_before: Optional[datetime] = None) -> List[QuizAttempt]:
        return self._many(self.list_raw_by_status(status, updated_before))

    def list_raw_by_status(self, status: AttemptStatus, updated_before: Optional[datetime] = None) -> List[dict]:
        lt_filters = {"updated_at": updated_before.isoformat()} if updated_before else None
        return self.db.select(ATTEMPTS, "*", {"status": status.value}, lt_filters=lt_filters)

    def create_attempt(self, enrollment: Enrollment, total_questions: int, now: datetime) -> QuizAttempt:
        """Insert an in-progress attempt.

        A partial unique index on (enrollment_id) WHERE status = 'in_progress'
        makes a racing second insert raise DuplicateRecordError.
        """
        row = {
            "id": str(uuid4()),
            "quiz_id": enrollment.quiz_id,
            "student_id": enrollment.student_id,
            "enrollment_id": enrollment.id,
            "status": AttemptStatus.IN_PROGRESS.value,
            "total_questions": total_questions,
            "start_time": now.isoformat(),
            "answers": [],
            "created_at": now.isoformat(),
            "updated_at": now.isoformat(),
        }
        created = self.db.insert(ATTEMPTS, row)
        return QuizAttempt.model_validate(created or row)

    def complete_attempt(self, attempt_id: str, answers: List[AnswerRecord], score: float,
                         total_correct: int, total_questions: int, time_spent: int,
                         now: datetime) -> Optional[QuizAttempt]:
        """in_progress -> completed. None when the attempt already left in_progress."""
        return self.transition(
            attempt_id,
            AttemptStatus.COMPLETED,
            expected=[AttemptStatus.IN_PROGRESS],
            now=now,
            answers=[answer.model_dump(mode="json", by_alias=True) for answer in answers],
            score=score,
            total_correct=total_correct,
            total_questions=total_questions,
            time_spent=time_spent,
            end_time=now,
        )

    def save_answers(self, attempt_id: str, answers: List[AnswerRecord], now: datetime) -> Optional[QuizAttempt]:
        """Store partial answers on an attempt that is still in progress"""
        rows = self.db.update(
            ATTEMPTS,
            {
                "answers": [answer.model_dump(mode="json", by_alias=True) for answer in answers],
                "updated_at": now.isoformat(),
            },
            {"id": attempt_id},
            in_filters={"status": [AttemptStatus.IN_PROGRESS.value]},
        )
        return QuizAttempt.model_validate(rows[0]) if rows else None

    def transition(self, attempt_id: str, status: AttemptStatus, expected: Iterable[AttemptStatus],
                   now: datetime, **fields) -> Optional[QuizAttempt]:
        data = {"status": status.value, "updated_at": now.isoformat()}
        for key, value in fields.items():
            data[key] = _serialize(value)

        rows = self.db.update(
            ATTEMPTS, data, {"id": attempt_id},
            in_filters={"status": [s.value for s in expected]},
        )
        return QuizAttempt.model_validate(rows[0]) if rows else None

    def clear_answers(self, statuses: Iterable[AttemptStatus], updated_before: datetime) -> int:
        rows = self.db.update(
            ATTEMPTS, {"answers": []}, {},
            in_filters={"status": [s.value for s in statuses]},
            lt_filters={"updated_at": updated_before.isoformat()},
        )
        return len(rows)
