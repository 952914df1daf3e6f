from datetime import datetime
from typing import Iterable, List, Optional
import json
import logging

from scripturequiz.database import Database
from scripturequiz.models import Question, Quiz, QuizStatus, SchedulingStatus, TimeConfiguration
from scripturequiz.utils.cache import CacheClient

logger = logging.getLogger(__name__)

QUIZZES = "quizzes"
QUESTIONS = "questions"


class QuizRepository:
    def __init__(self, database: Database, cache: Optional[CacheClient] = None, cache_ttl: int = 300):
        self.db = database
        self.cache = cache
        self.cache_ttl = cache_ttl

    @staticmethod
    def _cache_key(quiz_id: str) -> str:
        return f"quiz:{quiz_id}"

    def invalidate(self, quiz_id: str) -> None:
        if self.cache:
            self.cache.delete(self._cache_key(quiz_id))

    def get_quiz(self, quiz_id: str) -> Optional[Quiz]:
        if self.cache:
            cached = self.cache.get(self._cache_key(quiz_id))
            if cached:
                return Quiz.model_validate_json(cached)

        rows = self.db.select(QUIZZES, "*", {"id": quiz_id}, limit=1)
        if not rows:
            return None

        quiz = Quiz.model_validate(rows[0])
        if self.cache:
            self.cache.set(self._cache_key(quiz_id), quiz.model_dump_json(), self.cache_ttl)
        return quiz

    def get_owned_quiz(self, quiz_id: str, educator_id: str) -> Optional[Quiz]:
        quiz = self.get_quiz(quiz_id)
        if quiz is None or quiz.educator_id != educator_id:
            return None
        return quiz

    def list_quizzes(self, quiz_ids: Iterable[str]) -> List[Quiz]:
        quiz_ids = list(dict.fromkeys(quiz_ids))
        if not quiz_ids:
            return []
        rows = self.db.select(QUIZZES, "*", in_filters={"id": quiz_ids})
        return [Quiz.model_validate(row) for row in rows]

    def list_raw(self, quiz_ids: Iterable[str]) -> List[dict]:
        """Rows without validation, for batch jobs that isolate bad rows themselves"""
        quiz_ids = list(dict.fromkeys(quiz_ids))
        if not quiz_ids:
            return []
        return self.db.select(QUIZZES, "*", in_filters={"id": quiz_ids})

    def update_schedule(self, quiz_id: str, start_time: datetime, timezone: str, duration: int,
                        actor: str, time_configuration: TimeConfiguration, now: datetime) -> Optional[Quiz]:
        """Set the start time. Only deferred or scheduled quizzes can be written."""
        rows = self.db.update(
            QUIZZES,
            {
                "start_time": start_time.isoformat(),
                "timezone": timezone,
                "duration": duration,
                "scheduling_status": SchedulingStatus.SCHEDULED.value,
                "scheduled_by": actor,
                "scheduled_at": now.isoformat(),
                "time_configuration": json.loads(
                    time_configuration.model_dump_json(by_alias=True, exclude_none=True)
                ),
                "updated_at": now.isoformat(),
            },
            {"id": quiz_id},
            in_filters={"scheduling_status": [SchedulingStatus.DEFERRED.value, SchedulingStatus.SCHEDULED.value]},
        )
        self.invalidate(quiz_id)
        return Quiz.model_validate(rows[0]) if rows else None

    def update_status(self, quiz_id: str, status: QuizStatus, expected: QuizStatus,
                      now: datetime) -> Optional[Quiz]:
        rows = self.db.update(
            QUIZZES,
            {"status": status.value, "updated_at": now.isoformat()},
            {"id": quiz_id, "status": expected.value},
        )
        self.invalidate(quiz_id)
        return Quiz.model_validate(rows[0]) if rows else None

    def list_questions(self, quiz_id: str) -> List[Question]:
        rows = self.db.select(QUESTIONS, "id,quiz_id,question_text,options,correct_answer", {"quiz_id": quiz_id})
        return [Question.model_validate(row) for row in rows]
