"""Schedule and consultation reservation endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from studyportal.api.deps import ApiRateLimit, CurrentSession, DirectoryDep, get_email_service
from studyportal.api.utils import directory_unavailable
from studyportal.config import settings
from studyportal.models import ReserveRequest, Schedule, ScheduleType
from studyportal.services.directory import DirectoryError
from studyportal.services.email import EmailService

logger = logging.getLogger(__name__)

router = APIRouter()
consultation_router = APIRouter()


def filter_schedules(
    schedules: list[Schedule],
    year: int | None = None,
    month: int | None = None,
    schedule_type: ScheduleType | None = None,
) -> list[Schedule]:
    """Narrow schedules to a calendar month and/or category."""
    result = schedules
    if year is not None and month is not None:
        result = [
            s
            for s in result
            if s.starts_at is not None and s.starts_at.year == year and s.starts_at.month == month
        ]
    if schedule_type is not None:
        result = [s for s in result if s.schedule_type == schedule_type]
    return result


@router.get("")
async def list_schedules(
    _session: CurrentSession,
    directory: DirectoryDep,
    year: int | None = Query(default=None, ge=2000, le=2100),
    month: int | None = Query(default=None, ge=1, le=12),
    type: ScheduleType | None = Query(default=None),
):
    """List upcoming schedules, optionally for one month and category."""
    try:
        schedules = await directory.get_schedules()
    except DirectoryError as e:
        raise directory_unavailable("fetch schedules", e) from e
    filtered = filter_schedules(schedules, year=year, month=month, schedule_type=type)
    return [s.model_dump(mode="json") for s in filtered]


@consultation_router.post("/reserve")
async def reserve_consultation(
    request: ReserveRequest,
    session: CurrentSession,
    directory: DirectoryDep,
    email: Annotated[EmailService, Depends(get_email_service)],
    _rate_limit: ApiRateLimit,
):
    """Book a consultation slot for the signed-in student."""
    try:
        schedule = await directory.get_schedule(request.schedule_id)
    except DirectoryError as e:
        raise directory_unavailable("load schedule", e) from e

    if schedule is None or schedule.completed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Schedule not found")
    if schedule.schedule_type != ScheduleType.CONSULTATION:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only consultation slots can be reserved",
        )
    if schedule.reserved_by == session.email:
        return {"success": True}
    if schedule.is_reserved:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Slot is already reserved")

    try:
        await directory.reserve_schedule(schedule.id, session.email)
    except DirectoryError as e:
        raise directory_unavailable("reserve consultation", e) from e

    logger.info(f"Consultation {schedule.id} reserved by {session.email}")

    when = schedule.starts_at.strftime("%Y-%m-%d %H:%M") if schedule.starts_at else "TBD"
    try:
        await email.send_reservation_emails(
            student_name=session.student.name,
            student_email=session.email,
            schedule_name=schedule.name,
            when=when,
            instructor=schedule.instructor,
            owner_email=settings.owner_email or None,
        )
    except Exception as e:
        logger.error(f"Reservation emails for {schedule.id} failed: {e!r}")

    return {"success": True}


@consultation_router.get("/user-reservations")
async def user_reservations(session: CurrentSession, directory: DirectoryDep):
    """List consultation slots reserved by the signed-in student."""
    try:
        schedules = await directory.get_reserved_schedules(session.email)
    except DirectoryError as e:
        raise directory_unavailable("fetch reservations", e) from e
    return {"success": True, "schedules": [s.model_dump(mode="json") for s in schedules]}
