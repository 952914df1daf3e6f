from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator
from scripturequiz.models.base import Record, utc_datetime


class AttemptStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    TIMEOUT = "timeout"


class AnswerRecord(BaseModel):
    question_id: str
    selected_answer: Optional[str] = None
    is_correct: Optional[bool] = None
    answered_at: Optional[datetime] = None
    # Partial saves from the client carry this flag; they are never a final answer
    is_autosave: bool = Field(default=False, alias="_autosave_metadata")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("question_id", mode="before")
    @classmethod
    def question_id_as_str(cls, value):
        return str(value) if value is not None else value


class QuizAttempt(Record):
    id: str
    quiz_id: str
    student_id: str
    enrollment_id: Optional[str] = None
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    score: Optional[float] = None
    total_correct: Optional[int] = None
    total_questions: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    time_spent: Optional[int] = None  # seconds
    answers: List[AnswerRecord] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("start_time", "end_time", "created_at", "updated_at", mode="before")
    @classmethod
    def as_utc(cls, value):
        return utc_datetime(value)

    @field_validator("answers", mode="before")
    @classmethod
    def null_answers(cls, value):
        return value or []

    @property
    def final_answers(self) -> List[AnswerRecord]:
        return [answer for answer in self.answers if not answer.is_autosave]

    @property
    def is_false_completion(self) -> bool:
        """Marked completed without a score or without any real answer"""
        return self.status == AttemptStatus.COMPLETED and (self.score is None or not self.final_answers)

    @property
    def is_valid_completion(self) -> bool:
        return self.status == AttemptStatus.COMPLETED and not self.is_false_completion

    def __repr__(self):
        return f"<QuizAttempt(id={self.id}, enrollment_id={self.enrollment_id}, status={self.status.value})>"
