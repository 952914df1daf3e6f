from fastapi import APIRouter, Depends, HTTPException, Query
from scripturequiz.dependencies import get_maintenance_service, get_now
from scripturequiz.services.maintenance import MaintenanceService
from scripturequiz.utils.auth_utils import require_admin
from datetime import datetime
import logging

router = APIRouter()
logger = logging.getLogger(__name__)

@router.post("/cleanup-stuck-attempts")
async def cleanup_stuck_attempts(
    current_user: dict = Depends(require_admin),
    service: MaintenanceService = Depends(get_maintenance_service),
    now: datetime = Depends(get_now),
):
    """Time out or abandon attempts left in progress, then drop old saved answers"""
    try:
        sweep = service.sweep_stale_attempts(now)
        cleared = service.purge_stale_answers(now)
        logger.info(
            f"Cleanup by {current_user['email']}: {sweep.timed_out} timed out, "
            f"{sweep.abandoned} abandoned, {len(sweep.errors)} errors"
        )
        return {
            "success": True,
            "message": "Cleanup completed",
            "results": {
                "timed_out": sweep.timed_out,
                "abandoned": sweep.abandoned,
                "errors": sweep.errors,
                "total_processed": sweep.total_processed,
                "answers_cleared": cleared,
            },
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Cleanup error: {e}")
        raise HTTPException(status_code=500, detail="Failed to cleanup stuck attempts")

@router.get("/cleanup-stuck-attempts")
async def stuck_attempt_statistics(
    current_user: dict = Depends(require_admin),
    service: MaintenanceService = Depends(get_maintenance_service),
    now: datetime = Depends(get_now),
):
    try:
        return service.attempt_statistics(now)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to fetch attempt statistics: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch statistics")

@router.post("/fix-attempt-issues")
async def fix_attempt_issues(
    dry_run: bool = Query(True),
    current_user: dict = Depends(require_admin),
    service: MaintenanceService = Depends(get_maintenance_service),
    now: datetime = Depends(get_now),
):
    """Revert false completions; with dry_run off also clear duplicate attempts and stale enrollment statuses"""
    try:
        corrections = service.correct_false_completions(now, dry_run=dry_run)
        duplicates_abandoned = 0
        enrollments_reconciled = 0
        if not dry_run:
            duplicates_abandoned = service.abandon_duplicate_attempts(now)
            enrollments_reconciled = service.reconcile_enrollment_statuses(now)

        return {
            "success": True,
            "dry_run": dry_run,
            "false_completions": {
                "found": corrections.found,
                "fixed": corrections.fixed,
                "enrollments_reverted": corrections.enrollments_reverted,
                "attempt_ids": corrections.attempt_ids,
                "errors": corrections.errors,
            },
            "duplicate_attempts_abandoned": duplicates_abandoned,
            "enrollments_reconciled": enrollments_reconciled,
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to fix attempt issues: {e}")
        raise HTTPException(status_code=500, detail="Failed to fix attempt issues")

@router.get("/duplicate-enrollments")
async def duplicate_enrollments(
    current_user: dict = Depends(require_admin),
    service: MaintenanceService = Depends(get_maintenance_service),
):
    try:
        duplicates = service.find_duplicate_originals()
        return {"duplicates": duplicates, "total": len(duplicates)}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to find duplicate enrollments: {e}")
        raise HTTPException(status_code=500, detail="Failed to find duplicate enrollments")
