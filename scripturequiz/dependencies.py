"""FastAPI dependency providers. Tests swap these out through ``app.dependency_overrides``."""

from datetime import datetime

from fastapi import Depends

from scripturequiz.config import settings
from scripturequiz.database import Database, db
from scripturequiz.repositories import AttemptRepository, EnrollmentRepository, QuizRepository
from scripturequiz.services.enrollment import EnrollmentService
from scripturequiz.services.maintenance import MaintenanceService
from scripturequiz.services.notifications import NotificationService
from scripturequiz.services.reassignment import ReassignmentService
from scripturequiz.services.scheduling import SchedulingService
from scripturequiz.services.student_status import StudentDashboardService
from scripturequiz.utils.cache import get_cache
from scripturequiz.utils.time_utils import utc_now


def get_database() -> Database:
    return db


def get_now() -> datetime:
    return utc_now()


def get_quiz_repository(database: Database = Depends(get_database)) -> QuizRepository:
    return QuizRepository(database, get_cache(), settings.quiz_cache_ttl_seconds)


def get_enrollment_repository(database: Database = Depends(get_database)) -> EnrollmentRepository:
    return EnrollmentRepository(database)


def get_attempt_repository(database: Database = Depends(get_database)) -> AttemptRepository:
    return AttemptRepository(database)


def get_scheduling_service(
    quizzes: QuizRepository = Depends(get_quiz_repository),
    enrollments: EnrollmentRepository = Depends(get_enrollment_repository),
) -> SchedulingService:
    return SchedulingService(
        quizzes, enrollments,
        min_lead_minutes=settings.schedule_min_lead_minutes,
        max_days_ahead=settings.schedule_max_days_ahead,
    )


def get_enrollment_service(
    quizzes: QuizRepository = Depends(get_quiz_repository),
    enrollments: EnrollmentRepository = Depends(get_enrollment_repository),
    attempts: AttemptRepository = Depends(get_attempt_repository),
) -> EnrollmentService:
    return EnrollmentService(quizzes, enrollments, attempts)


def get_reassignment_service(
    quizzes: QuizRepository = Depends(get_quiz_repository),
    enrollments: EnrollmentRepository = Depends(get_enrollment_repository),
    attempts: AttemptRepository = Depends(get_attempt_repository),
) -> ReassignmentService:
    return ReassignmentService(quizzes, enrollments, attempts)


def get_dashboard_service(
    quizzes: QuizRepository = Depends(get_quiz_repository),
    enrollments: EnrollmentRepository = Depends(get_enrollment_repository),
    attempts: AttemptRepository = Depends(get_attempt_repository),
) -> StudentDashboardService:
    return StudentDashboardService(quizzes, enrollments, attempts)


def build_maintenance_service(database: Database) -> MaintenanceService:
    return MaintenanceService(
        QuizRepository(database),
        EnrollmentRepository(database),
        AttemptRepository(database),
        default_duration=settings.default_quiz_duration,
        timeout_multiplier=settings.timeout_multiplier,
        abandon_multiplier=settings.abandon_multiplier,
        answer_retention_days=settings.answer_retention_days,
    )


def get_maintenance_service(database: Database = Depends(get_database)) -> MaintenanceService:
    return build_maintenance_service(database)


def get_notification_service(database: Database = Depends(get_database)) -> NotificationService:
    return NotificationService(
        database,
        webhook_url=settings.notification_webhook_url,
        timeout_seconds=settings.notification_timeout_seconds,
    )
