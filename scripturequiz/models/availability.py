from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel
from scripturequiz.models.base import CamelModel


class AvailabilityStatus(str, Enum):
    NOT_SCHEDULED = "not_scheduled"
    UPCOMING = "upcoming"
    ACTIVE = "active"
    ENDED = "ended"


class StudentAction(str, Enum):
    ENROLL = "enroll"
    START = "start"
    RESUME = "resume"
    VIEW_RESULTS = "view_results"
    LOCKED = "locked"


class Availability(BaseModel):
    status: AvailabilityStatus
    available: bool
    message: str
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None


class StudentQuizStatus(CamelModel):
    """Per quiz, per student view the dashboards and the quiz page rely on"""
    quiz_id: str
    title: str
    enrolled: bool
    attempted: bool
    is_active: bool
    is_upcoming: bool
    is_expired: bool
    is_reassignment: bool
    availability_status: str
    availability_message: str
    action: StudentAction
    enrollment_id: Optional[str] = None
    attempt_id: Optional[str] = None
    score: Optional[float] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    timezone: str = "UTC"
