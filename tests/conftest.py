import copy
import pytest
from datetime import datetime, timedelta
from uuid import uuid4
from httpx import ASGITransport, AsyncClient
import pytz

from scripturequiz.database import DuplicateRecordError
from scripturequiz.dependencies import (
    get_database,
    get_notification_service,
    get_now,
    get_quiz_repository,
)
from scripturequiz.repositories import AttemptRepository, EnrollmentRepository, QuizRepository
from scripturequiz.services.enrollment import EnrollmentService
from scripturequiz.services.maintenance import MaintenanceService
from scripturequiz.services.notifications import NotificationService
from scripturequiz.services.reassignment import ReassignmentService
from scripturequiz.services.scheduling import SchedulingService
from scripturequiz.services.student_status import StudentDashboardService
from scripturequiz.utils.auth_utils import get_current_user
from scripturequiz.utils.time_utils import ensure_utc

NOW = datetime(2025, 3, 10, 15, 0, tzinfo=pytz.UTC)


def _active_attempt_key(row):
    if row.get("status") == "in_progress":
        return ("active_attempt", row.get("enrollment_id"))
    return None


def _enrollment_key(row):
    pair = (row.get("quiz_id"), row.get("student_id"))
    if not row.get("is_reassignment"):
        return ("original",) + pair
    if row.get("status") in ("enrolled", "in_progress"):
        return ("pending_reassignment",) + pair
    return None


# Partial unique indexes of the production schema
UNIQUE_KEYS = {
    "quiz_attempts": [_active_attempt_key],
    "enrollments": [_enrollment_key],
}


class FakeDatabase:
    """In-memory stand-in for the Supabase-backed Database helper"""

    def __init__(self):
        self.tables = {}
        self.fail_tables = set()

    def rows(self, table):
        return self.tables.setdefault(table, [])

    def seed(self, table, row):
        """Insert without unique checks, to set up states the indexes would reject"""
        self.rows(table).append(copy.deepcopy(row))
        return row

    def _check(self, table):
        if table in self.fail_tables:
            raise RuntimeError(f"{table} is unavailable")

    @staticmethod
    def _matches(row, filters=None, in_filters=None, lt_filters=None):
        for key, value in (filters or {}).items():
            if row.get(key) != value:
                return False
        for key, values in (in_filters or {}).items():
            if row.get(key) not in list(values):
                return False
        for key, value in (lt_filters or {}).items():
            if row.get(key) is None or ensure_utc(row[key]) >= ensure_utc(value):
                return False
        return True

    def insert(self, table, data):
        self._check(table)
        for key_fn in UNIQUE_KEYS.get(table, []):
            key = key_fn(data)
            if key is not None and any(key_fn(row) == key for row in self.rows(table)):
                raise DuplicateRecordError(table, str(key))
        self.rows(table).append(copy.deepcopy(data))
        return copy.deepcopy(data)

    def select(self, table, columns="*", filters=None, limit=None, in_filters=None,
               lt_filters=None, order_by=None, desc=False):
        self._check(table)
        found = [copy.deepcopy(row) for row in self.rows(table)
                 if self._matches(row, filters, in_filters, lt_filters)]
        if order_by:
            found.sort(key=lambda row: row.get(order_by) or "", reverse=desc)
        if limit:
            found = found[:limit]
        return found

    def update(self, table, data, filters, in_filters=None, lt_filters=None):
        self._check(table)
        changed = []
        for row in self.rows(table):
            if self._matches(row, filters, in_filters, lt_filters):
                row.update(copy.deepcopy(data))
                changed.append(copy.deepcopy(row))
        return changed

    def delete(self, table, filters):
        self._check(table)
        kept, removed = [], []
        for row in self.rows(table):
            (removed if self._matches(row, filters) else kept).append(row)
        self.tables[table] = kept
        return removed


def _iso(value):
    return value.isoformat() if isinstance(value, datetime) else value


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def quiz_repo(fake_db):
    return QuizRepository(fake_db)


@pytest.fixture
def enrollment_repo(fake_db):
    return EnrollmentRepository(fake_db)


@pytest.fixture
def attempt_repo(fake_db):
    return AttemptRepository(fake_db)


@pytest.fixture
def scheduling_service(quiz_repo, enrollment_repo):
    return SchedulingService(quiz_repo, enrollment_repo, min_lead_minutes=5, max_days_ahead=365)


@pytest.fixture
def enrollment_service(quiz_repo, enrollment_repo, attempt_repo):
    return EnrollmentService(quiz_repo, enrollment_repo, attempt_repo)


@pytest.fixture
def reassignment_service(quiz_repo, enrollment_repo, attempt_repo):
    return ReassignmentService(quiz_repo, enrollment_repo, attempt_repo)


@pytest.fixture
def dashboard_service(quiz_repo, enrollment_repo, attempt_repo):
    return StudentDashboardService(quiz_repo, enrollment_repo, attempt_repo)


@pytest.fixture
def maintenance_service(quiz_repo, enrollment_repo, attempt_repo):
    return MaintenanceService(quiz_repo, enrollment_repo, attempt_repo)


@pytest.fixture
def make_quiz(fake_db):
    """Seed a quiz with two questions (correct answers A and B)"""
    def factory(**overrides):
        row = {
            "id": str(uuid4()),
            "title": "Romans 8 Review",
            "educator_id": "educator-1",
            "status": "published",
            "start_time": NOW - timedelta(minutes=10),
            "timezone": "America/New_York",
            "duration": 60,
            "scheduling_status": "scheduled",
            "time_configuration": None,
            "total_questions": 2,
            "created_at": NOW - timedelta(days=3),
        }
        row.update(overrides)
        row = {key: _iso(value) for key, value in row.items()}
        fake_db.seed("quizzes", row)
        for number, correct in (("1", "A"), ("2", "B")):
            fake_db.seed("questions", {
                "id": f"{row['id']}-q{number}",
                "quiz_id": row["id"],
                "question_text": f"Question {number}",
                "options": [],
                "correct_answer": correct,
            })
        return row
    return factory


@pytest.fixture
def make_enrollment(fake_db):
    def factory(quiz_id, student_id="student-1", status="enrolled", parent=None, **overrides):
        row = {
            "id": str(uuid4()),
            "quiz_id": quiz_id,
            "student_id": student_id,
            "status": status,
            "enrolled_at": NOW - timedelta(days=1),
            "created_at": NOW - timedelta(days=1),
            "is_reassignment": parent is not None,
        }
        if parent is not None:
            row.update({
                "parent_enrollment_id": parent["id"],
                "reassignment_reason": "Missed the quiz",
                "reassigned_at": NOW - timedelta(hours=1),
                "reassigned_by": "educator-1",
                "created_at": NOW - timedelta(hours=1),
            })
        row.update(overrides)
        row = {key: _iso(value) for key, value in row.items()}
        return fake_db.seed("enrollments", row)
    return factory


@pytest.fixture
def make_attempt(fake_db):
    def factory(enrollment, status="in_progress", **overrides):
        row = {
            "id": str(uuid4()),
            "quiz_id": enrollment["quiz_id"],
            "student_id": enrollment["student_id"],
            "enrollment_id": enrollment["id"],
            "status": status,
            "score": None,
            "answers": [],
            "start_time": NOW - timedelta(minutes=5),
            "created_at": NOW - timedelta(minutes=5),
            "updated_at": NOW - timedelta(minutes=5),
        }
        row.update(overrides)
        row = {key: _iso(value) for key, value in row.items()}
        return fake_db.seed("quiz_attempts", row)
    return factory


@pytest.fixture
def current_user():
    """Mutable caller identity used by the client fixture"""
    return {"id": "educator-1", "email": "teacher@example.com", "role": "educator", "metadata": {}}


@pytest.fixture
async def client(fake_db, current_user):
    """API client with the database, clock and caller replaced"""
    from scripturequiz.main import app

    app.dependency_overrides[get_database] = lambda: fake_db
    app.dependency_overrides[get_now] = lambda: NOW
    app.dependency_overrides[get_current_user] = lambda: current_user
    app.dependency_overrides[get_quiz_repository] = lambda: QuizRepository(fake_db)
    app.dependency_overrides[get_notification_service] = lambda: NotificationService(fake_db)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
