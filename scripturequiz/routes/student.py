from fastapi import APIRouter, Depends, HTTPException
from fastapi.encoders import jsonable_encoder
from scripturequiz.dependencies import get_dashboard_service, get_enrollment_service, get_now
from scripturequiz.errors import Conflict, QuizServiceError, http_detail
from scripturequiz.models import AnswerRecord, QuizAttempt
from scripturequiz.models.base import CamelModel
from scripturequiz.services.enrollment import EnrollmentService
from scripturequiz.services.student_status import StudentDashboardService
from scripturequiz.utils.auth_utils import require_student
from typing import List
from datetime import datetime
import logging

router = APIRouter()
logger = logging.getLogger(__name__)

class SubmitRequest(CamelModel):
    answers: List[AnswerRecord] = []

def attempt_summary(attempt: QuizAttempt) -> dict:
    return {
        "id": attempt.id,
        "quiz_id": attempt.quiz_id,
        "enrollment_id": attempt.enrollment_id,
        "status": attempt.status.value,
        "score": attempt.score,
        "total_correct": attempt.total_correct,
        "total_questions": attempt.total_questions,
        "start_time": attempt.start_time,
        "end_time": attempt.end_time,
        "time_spent": attempt.time_spent,
    }

@router.get("/quizzes")
async def list_my_quizzes(
    current_user: dict = Depends(require_student),
    service: StudentDashboardService = Depends(get_dashboard_service),
    now: datetime = Depends(get_now),
):
    """Every quiz the student is enrolled in, with what they can do next"""
    try:
        statuses = service.list_student_quizzes(current_user["id"], now)
        return [status.model_dump(mode="json", by_alias=True) for status in statuses]
    except HTTPException:
        raise
    except QuizServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=http_detail(e))
    except Exception as e:
        logger.error(f"Failed to list quizzes for student {current_user['id']}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch quizzes")

@router.post("/quizzes/{quiz_id}/enroll")
async def enroll(
    quiz_id: str,
    current_user: dict = Depends(require_student),
    service: EnrollmentService = Depends(get_enrollment_service),
    now: datetime = Depends(get_now),
):
    try:
        enrollment, created = service.enroll_student(quiz_id, current_user["id"], now)
        return {
            "success": True,
            "message": "Enrolled successfully" if created else "Already enrolled",
            "created": created,
            "enrollment_id": enrollment.id,
            "status": enrollment.status.value,
        }
    except HTTPException:
        raise
    except QuizServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=http_detail(e))
    except Exception as e:
        logger.error(f"Failed to enroll {current_user['id']} in quiz {quiz_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to enroll in quiz")

@router.post("/quiz/{quiz_id}/start")
async def start_quiz(
    quiz_id: str,
    current_user: dict = Depends(require_student),
    service: EnrollmentService = Depends(get_enrollment_service),
    now: datetime = Depends(get_now),
):
    """Start the quiz, or resume the attempt already in progress"""
    try:
        result = service.start_attempt(quiz_id, current_user["id"], now)
        return {
            "success": True,
            "resumed": result.resumed,
            "remaining_seconds": result.remaining_seconds,
            "is_reassignment": result.enrollment.is_reassignment,
            "attempt": attempt_summary(result.attempt),
        }
    except HTTPException:
        raise
    except QuizServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=http_detail(e))
    except Exception as e:
        logger.error(f"Failed to start quiz {quiz_id} for {current_user['id']}: {e}")
        raise HTTPException(status_code=500, detail="Failed to start quiz")

@router.post("/attempts/{attempt_id}/autosave")
async def autosave_quiz(
    attempt_id: str,
    request: SubmitRequest,
    current_user: dict = Depends(require_student),
    service: EnrollmentService = Depends(get_enrollment_service),
    now: datetime = Depends(get_now),
):
    """Save answers so far without submitting"""
    try:
        attempt = service.autosave_answers(attempt_id, current_user["id"], request.answers, now)
        return {"success": True, "saved_at": now, "answers_saved": len(attempt.answers)}
    except HTTPException:
        raise
    except QuizServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=http_detail(e))
    except Exception as e:
        logger.error(f"Failed to autosave attempt {attempt_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to auto-save")

@router.post("/attempts/{attempt_id}/submit")
async def submit_quiz(
    attempt_id: str,
    request: SubmitRequest,
    current_user: dict = Depends(require_student),
    service: EnrollmentService = Depends(get_enrollment_service),
    now: datetime = Depends(get_now),
):
    try:
        attempt = service.submit_attempt(attempt_id, current_user["id"], request.answers, now)
        return {"success": True, "message": "Quiz submitted successfully", "attempt": attempt_summary(attempt)}
    except HTTPException:
        raise
    except Conflict as e:
        detail = {"error": e.message}
        if isinstance(e.existing, QuizAttempt):
            detail["attempt"] = jsonable_encoder(attempt_summary(e.existing))
        raise HTTPException(status_code=e.status_code, detail=detail)
    except QuizServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=http_detail(e))
    except Exception as e:
        logger.error(f"Failed to submit attempt {attempt_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to submit quiz")

@router.post("/attempts/{attempt_id}/abandon")
async def abandon_quiz(
    attempt_id: str,
    current_user: dict = Depends(require_student),
    service: EnrollmentService = Depends(get_enrollment_service),
    now: datetime = Depends(get_now),
):
    try:
        attempt = service.abandon_attempt(attempt_id, current_user["id"], now)
        return {"success": True, "message": "Quiz attempt abandoned", "attempt": attempt_summary(attempt)}
    except HTTPException:
        raise
    except QuizServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=http_detail(e))
    except Exception as e:
        logger.error(f"Failed to abandon attempt {attempt_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to abandon quiz")
