from datetime import datetime
from enum import Enum
from typing import Any, Optional
import json
from pydantic import Field, field_validator
from scripturequiz.models.base import CamelModel, Record, utc_datetime


class QuizStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class SchedulingStatus(str, Enum):
    LEGACY = "legacy"        # created before deferred scheduling, always has a start time
    DEFERRED = "deferred"    # published without a time, educator sets it later
    SCHEDULED = "scheduled"


class TimeConfiguration(CamelModel):
    """Audit trail of the last schedule change, stored as JSON on the quiz"""
    start_time: Optional[datetime] = None
    timezone: Optional[str] = None
    duration: Optional[int] = None
    configured_at: Optional[datetime] = None
    configured_by: Optional[str] = None
    is_legacy: bool = False
    previous_start_time: Optional[datetime] = None
    previous_timezone: Optional[str] = None
    rescheduled_at: Optional[datetime] = None
    time_limit_seconds: Optional[int] = Field(default=None, alias="timeLimit")

    @field_validator(
        "start_time", "configured_at", "previous_start_time", "rescheduled_at", mode="before"
    )
    @classmethod
    def as_utc(cls, value):
        return utc_datetime(value)


class Quiz(Record):
    id: str
    title: str = ""
    educator_id: Optional[str] = None
    status: QuizStatus = QuizStatus.DRAFT
    start_time: Optional[datetime] = None
    timezone: str = "UTC"
    duration: int = 30  # minutes
    scheduling_status: SchedulingStatus = SchedulingStatus.LEGACY
    time_configuration: Optional[TimeConfiguration] = None
    scheduled_by: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    total_questions: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator(
        "start_time", "scheduled_at", "created_at", "updated_at", mode="before"
    )
    @classmethod
    def as_utc(cls, value):
        return utc_datetime(value)

    @field_validator("scheduling_status", mode="before")
    @classmethod
    def default_scheduling_status(cls, value):
        # Rows written before the column existed carry NULL
        return value or SchedulingStatus.LEGACY

    @field_validator("timezone", mode="before")
    @classmethod
    def default_timezone(cls, value):
        return value or "UTC"

    @field_validator("time_configuration", mode="before")
    @classmethod
    def parse_time_configuration(cls, value: Any):
        if isinstance(value, str):
            return json.loads(value) if value.strip() else None
        return value

    def __repr__(self):
        return f"<Quiz(id={self.id}, title={self.title}, status={self.status.value}, scheduling={self.scheduling_status.value})>"
