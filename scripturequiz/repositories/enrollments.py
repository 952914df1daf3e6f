from datetime import datetime
from typing import Iterable, List, Optional
from uuid import uuid4

from scripturequiz.database import Database
from scripturequiz.models import Enrollment, EnrollmentStatus

ENROLLMENTS = "enrollments"


class EnrollmentRepository:
    def __init__(self, database: Database):
        self.db = database

    def _many(self, rows) -> List[Enrollment]:
        return [Enrollment.model_validate(row) for row in rows or []]

    def get(self, enrollment_id: str) -> Optional[Enrollment]:
        rows = self.db.select(ENROLLMENTS, "*", {"id": enrollment_id}, limit=1)
        return Enrollment.model_validate(rows[0]) if rows else None

    def list_enrollments(self, quiz_id: str, student_id: str) -> List[Enrollment]:
        """Every row for the pair: the original(s) and any reassignments"""
        return self._many(self.db.select(ENROLLMENTS, "*", {"quiz_id": quiz_id, "student_id": student_id}))

    def list_for_quiz(self, quiz_id: str, student_ids: Optional[Iterable[str]] = None) -> List[Enrollment]:
        in_filters = {"student_id": list(student_ids)} if student_ids is not None else None
        return self._many(self.db.select(ENROLLMENTS, "*", {"quiz_id": quiz_id}, in_filters=in_filters))

    def list_for_student(self, student_id: str) -> List[Enrollment]:
        return self._many(self.db.select(ENROLLMENTS, "*", {"student_id": student_id}))

    def list_by_status(self, statuses: Iterable[EnrollmentStatus]) -> List[Enrollment]:
        return self._many(self.db.select(
            ENROLLMENTS, "*", in_filters={"status": [status.value for status in statuses]}
        ))

    def list_originals(self) -> List[Enrollment]:
        return self._many(self.db.select(ENROLLMENTS, "*", {"is_reassignment": False}))

    def create_enrollment(self, quiz_id: str, student_id: str, now: datetime,
                          parent: Optional[Enrollment] = None, reason: Optional[str] = None,
                          reassigned_by: Optional[str] = None) -> Enrollment:
        """Insert an original enrollment, or a reassignment when a parent is given.

        Raises DuplicateRecordError when a unique index rejects the row.
        """
        row = {
            "id": str(uuid4()),
            "quiz_id": quiz_id,
            "student_id": student_id,
            "status": EnrollmentStatus.ENROLLED.value,
            "enrolled_at": now.isoformat(),
            "created_at": now.isoformat(),
            "is_reassignment": parent is not None,
        }
        if parent is not None:
            row.update({
                "parent_enrollment_id": parent.id,
                "reassignment_reason": reason,
                "reassigned_at": now.isoformat(),
                "reassigned_by": reassigned_by,
            })
        created = self.db.insert(ENROLLMENTS, row)
        return Enrollment.model_validate(created or row)

    def update_enrollment_status(self, enrollment_id: str, status: EnrollmentStatus,
                                 expected: Optional[Iterable[EnrollmentStatus]] = None,
                                 **fields) -> Optional[Enrollment]:
        """Conditional status change. Returns None if the row was not in an expected state."""
        data = {"status": status.value}
        for key, value in fields.items():
            data[key] = value.isoformat() if isinstance(value, datetime) else value

        in_filters = {"status": [s.value for s in expected]} if expected else None
        rows = self.db.update(ENROLLMENTS, data, {"id": enrollment_id}, in_filters=in_filters)
        return Enrollment.model_validate(rows[0]) if rows else None
