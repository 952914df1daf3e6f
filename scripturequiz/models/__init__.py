from .quiz import Quiz, QuizStatus, SchedulingStatus, TimeConfiguration
from .enrollment import Enrollment, EnrollmentStatus, TERMINAL_ENROLLMENT_STATUSES
from .attempt import AnswerRecord, AttemptStatus, QuizAttempt
from .question import Question
from .availability import Availability, AvailabilityStatus, StudentAction, StudentQuizStatus

__all__ = [
    "Quiz", "QuizStatus", "SchedulingStatus", "TimeConfiguration",
    "Enrollment", "EnrollmentStatus", "TERMINAL_ENROLLMENT_STATUSES",
    "AnswerRecord", "AttemptStatus", "QuizAttempt",
    "Question",
    "Availability", "AvailabilityStatus", "StudentAction", "StudentQuizStatus",
]
