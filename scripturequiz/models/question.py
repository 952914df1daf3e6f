from typing import List, Optional
from pydantic import field_validator
from scripturequiz.models.base import Record


class Question(Record):
    id: str
    quiz_id: str
    question_text: str = ""
    options: List[dict] = []
    correct_answer: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def id_as_str(cls, value):
        return str(value)

    @field_validator("options", mode="before")
    @classmethod
    def null_options(cls, value):
        return value or []

    def __repr__(self):
        return f"<Question(id={self.id}, quiz_id={self.quiz_id})>"
