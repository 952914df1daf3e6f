from .quizzes import QuizRepository
from .enrollments import EnrollmentRepository
from .attempts import AttemptRepository

__all__ = ["QuizRepository", "EnrollmentRepository", "AttemptRepository"]
