from typing import Any, Optional


class QuizServiceError(Exception):
    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class ValidationFailed(QuizServiceError):
    """Rejected input or rule violation. Nothing was written."""
    status_code = 400


class FalseCompletion(ValidationFailed):
    """A submission without answers or without a score"""
    status_code = 422


class NotFound(QuizServiceError):
    status_code = 404


class Forbidden(QuizServiceError):
    status_code = 403


class Conflict(QuizServiceError):
    """The record already exists or is already in progress"""
    status_code = 409

    def __init__(self, message: str, existing: Any = None):
        super().__init__(message)
        self.existing = existing


class QuizUnavailable(QuizServiceError):
    """The student cannot take the quiz right now"""
    status_code = 403

    def __init__(self, message: str, reason: str):
        super().__init__(message)
        self.reason = reason


def http_detail(error: QuizServiceError):
    """Response body detail for a service error"""
    if isinstance(error, QuizUnavailable):
        return {"error": error.message, "reason": error.reason}
    return error.message
