"""
Quiz availability: the single place that decides whether a quiz window is
open. Every caller passes ``now`` explicitly; nothing here reads the clock.
"""

from datetime import datetime, timedelta
from typing import Optional, Tuple
import logging

from scripturequiz.models import Availability, AvailabilityStatus, Quiz, QuizStatus, SchedulingStatus
from scripturequiz.utils.time_utils import (
    describe_time_until,
    ensure_utc,
    format_time_for_display,
    minutes_until,
)

logger = logging.getLogger(__name__)

NOT_PUBLISHED_MESSAGE = "Quiz is not yet published"
SCHEDULE_PENDING_MESSAGE = "Schedule pending."
NOT_SCHEDULED_MESSAGE = "Quiz time has not been scheduled yet"
ENDED_MESSAGE = "Quiz has ended"
REASSIGNED_MESSAGE = "Reassigned - available"


def effective_start_time(quiz: Quiz) -> Optional[datetime]:
    """The stored start time, or the one recorded in the time configuration"""
    if quiz.start_time:
        return quiz.start_time
    if quiz.time_configuration and quiz.time_configuration.start_time:
        return quiz.time_configuration.start_time
    return None


def window_end(start_time: datetime, duration: int) -> datetime:
    # A non-positive duration is a zero-length window, not an error
    return start_time + timedelta(minutes=max(duration or 0, 0))


def compute_availability(quiz: Quiz, now: datetime) -> Availability:
    now = ensure_utc(now)

    if quiz.status != QuizStatus.PUBLISHED:
        return Availability(
            status=AvailabilityStatus.NOT_SCHEDULED,
            available=False,
            message=NOT_PUBLISHED_MESSAGE,
        )

    # A deferred quiz stays closed until a start time is actually set on it
    if quiz.scheduling_status == SchedulingStatus.DEFERRED and quiz.start_time is None:
        return Availability(
            status=AvailabilityStatus.NOT_SCHEDULED,
            available=False,
            message=SCHEDULE_PENDING_MESSAGE,
        )

    start_time = effective_start_time(quiz)

    if start_time is None:
        # legacy/scheduled rows must carry a start time; treat a gap as unscheduled
        logger.warning(f"Quiz {quiz.id} is {quiz.scheduling_status.value} but has no start time")
        return Availability(
            status=AvailabilityStatus.NOT_SCHEDULED,
            available=False,
            message=NOT_SCHEDULED_MESSAGE,
        )

    end_time = window_end(start_time, quiz.duration)

    if now < start_time:
        countdown = describe_time_until(minutes_until(start_time, now))
        return Availability(
            status=AvailabilityStatus.UPCOMING,
            available=False,
            message=f"{countdown} ({format_time_for_display(start_time, quiz.timezone)})",
            window_start=start_time,
            window_end=end_time,
        )

    if now > end_time:
        return Availability(
            status=AvailabilityStatus.ENDED,
            available=False,
            message=ENDED_MESSAGE,
            window_start=start_time,
            window_end=end_time,
        )

    remaining = minutes_until(end_time, now)
    return Availability(
        status=AvailabilityStatus.ACTIVE,
        available=True,
        message=f"Quiz is active ({remaining} minute{'' if remaining == 1 else 's'} remaining)",
        window_start=start_time,
        window_end=end_time,
    )


def reassignment_availability(base: Availability) -> Availability:
    """A pending reassignment is open whatever the original window says"""
    return Availability(
        status=AvailabilityStatus.ACTIVE,
        available=True,
        message=REASSIGNED_MESSAGE,
        window_start=base.window_start,
        window_end=base.window_end,
    )


def unavailable_reason(availability: Availability) -> Tuple[str, str]:
    """Reason code and message shown to a student who is turned away"""
    if availability.status == AvailabilityStatus.UPCOMING:
        return "not_started", "Quiz has not started yet"
    if availability.status == AvailabilityStatus.ENDED:
        return "has_ended", "Quiz has ended"
    if availability.message == NOT_PUBLISHED_MESSAGE:
        return "not_published", NOT_PUBLISHED_MESSAGE
    return "awaiting_schedule", "Quiz is awaiting schedule"
