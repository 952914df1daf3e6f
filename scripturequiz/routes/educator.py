from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from scripturequiz.dependencies import (
    get_now,
    get_notification_service,
    get_reassignment_service,
    get_scheduling_service,
)
from scripturequiz.errors import QuizServiceError, http_detail
from scripturequiz.models.base import CamelModel
from scripturequiz.services.notifications import NotificationService
from scripturequiz.services.reassignment import ReassignmentService
from scripturequiz.services.scheduling import SchedulingService
from scripturequiz.utils.auth_utils import require_educator
from typing import List, Optional
from datetime import datetime
import logging

router = APIRouter()
logger = logging.getLogger(__name__)

class ScheduleRequest(CamelModel):
    start_time: str
    timezone: str
    duration: Optional[int] = None

class ReassignRequest(CamelModel):
    student_ids: List[str]
    reason: str = ""

@router.get("/quiz/{quiz_id}/schedule")
async def get_schedule(
    quiz_id: str,
    current_user: dict = Depends(require_educator),
    service: SchedulingService = Depends(get_scheduling_service),
    now: datetime = Depends(get_now),
):
    """Scheduling state of a quiz owned by the caller"""
    try:
        return service.get_schedule(quiz_id, current_user["id"], now)
    except HTTPException:
        raise
    except QuizServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=http_detail(e))
    except Exception as e:
        logger.error(f"Failed to fetch schedule for quiz {quiz_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch schedule")

@router.post("/quiz/{quiz_id}/schedule")
async def schedule_quiz(
    quiz_id: str,
    request: ScheduleRequest,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(require_educator),
    service: SchedulingService = Depends(get_scheduling_service),
    notifier: NotificationService = Depends(get_notification_service),
    now: datetime = Depends(get_now),
):
    """Set or change the start time of a deferred or scheduled quiz"""
    try:
        result = service.schedule_quiz(
            quiz_id, current_user["id"], request.start_time, request.timezone, request.duration, now
        )

        if result.changed and result.recipients:
            background_tasks.add_task(
                notifier.notify_schedule_change,
                result.recipients,
                result.quiz.title,
                result.quiz.start_time,
                result.quiz.timezone,
                result.rescheduled,
            )

        return {
            "success": True,
            "message": result.message,
            "changed": result.changed,
            "rescheduled": result.rescheduled,
            "notified_students": len(result.recipients),
            "quiz": {
                "id": result.quiz.id,
                "start_time": result.quiz.start_time,
                "timezone": result.quiz.timezone,
                "duration": result.quiz.duration,
                "scheduling_status": result.quiz.scheduling_status.value,
            },
        }
    except HTTPException:
        raise
    except QuizServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=http_detail(e))
    except Exception as e:
        logger.error(f"Failed to schedule quiz {quiz_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update quiz schedule")

@router.post("/quiz/{quiz_id}/publish")
async def publish_quiz(
    quiz_id: str,
    current_user: dict = Depends(require_educator),
    service: SchedulingService = Depends(get_scheduling_service),
    now: datetime = Depends(get_now),
):
    try:
        quiz = service.publish_quiz(quiz_id, current_user["id"], now)
        return {
            "success": True,
            "message": "Quiz published successfully",
            "quiz_id": quiz.id,
            "scheduling_status": quiz.scheduling_status.value,
        }
    except HTTPException:
        raise
    except QuizServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=http_detail(e))
    except Exception as e:
        logger.error(f"Failed to publish quiz {quiz_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to publish quiz")

@router.get("/quiz/{quiz_id}/reassign")
async def list_reassignment_candidates(
    quiz_id: str,
    current_user: dict = Depends(require_educator),
    service: ReassignmentService = Depends(get_reassignment_service),
    now: datetime = Depends(get_now),
):
    """Enrolled students and whether each can be given another attempt"""
    try:
        students = service.list_candidates(quiz_id, current_user["id"], now)
        return {"students": students, "total": len(students)}
    except HTTPException:
        raise
    except QuizServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=http_detail(e))
    except Exception as e:
        logger.error(f"Failed to list reassignment candidates for quiz {quiz_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch reassignment data")

@router.post("/quiz/{quiz_id}/reassign")
async def reassign_quiz(
    quiz_id: str,
    request: ReassignRequest,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(require_educator),
    service: ReassignmentService = Depends(get_reassignment_service),
    notifier: NotificationService = Depends(get_notification_service),
    now: datetime = Depends(get_now),
):
    """Give selected students another attempt at a published quiz"""
    try:
        summary = service.reassign(quiz_id, current_user["id"], request.student_ids, request.reason, now)

        reassigned_ids = [enrollment.student_id for enrollment in summary.reassigned]
        if reassigned_ids:
            background_tasks.add_task(
                notifier.notify_reassignment, reassigned_ids, summary.quiz_title, request.reason
            )

        return {
            "success": True,
            "message": summary.message,
            "reassigned": [
                {"student_id": e.student_id, "enrollment_id": e.id, "parent_enrollment_id": e.parent_enrollment_id}
                for e in summary.reassigned
            ],
            "skipped": {
                "already_reassigned": summary.already_reassigned,
                "completed": summary.completed,
                "not_enrolled": summary.not_enrolled,
            },
        }
    except HTTPException:
        raise
    except QuizServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=http_detail(e))
    except Exception as e:
        logger.error(f"Failed to reassign quiz {quiz_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to reassign quiz")
