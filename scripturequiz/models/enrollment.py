from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import field_validator
from scripturequiz.models.base import Record, utc_datetime


class EnrollmentStatus(str, Enum):
    ENROLLED = "enrolled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_ENROLLMENT_STATUSES

    @property
    def is_pending(self) -> bool:
        return self in (EnrollmentStatus.ENROLLED, EnrollmentStatus.IN_PROGRESS)


TERMINAL_ENROLLMENT_STATUSES = frozenset({
    EnrollmentStatus.COMPLETED,
    EnrollmentStatus.ABANDONED,
    EnrollmentStatus.TIMEOUT,
})


class Enrollment(Record):
    id: str
    quiz_id: str
    student_id: str
    status: EnrollmentStatus = EnrollmentStatus.ENROLLED
    enrolled_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    is_reassignment: bool = False
    parent_enrollment_id: Optional[str] = None
    reassignment_reason: Optional[str] = None
    reassigned_at: Optional[datetime] = None
    reassigned_by: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_validator(
        "enrolled_at", "started_at", "completed_at", "reassigned_at", "created_at", mode="before"
    )
    @classmethod
    def as_utc(cls, value):
        return utc_datetime(value)

    @field_validator("is_reassignment", mode="before")
    @classmethod
    def null_is_original(cls, value):
        return bool(value)

    def __repr__(self):
        kind = "reassignment" if self.is_reassignment else "original"
        return f"<Enrollment(id={self.id}, quiz_id={self.quiz_id}, student_id={self.student_id}, {kind}, status={self.status.value})>"
