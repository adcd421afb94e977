"""Page routes.

These back the frontend's pages: each one verifies the session in full
(the redirect guard only checks that a cookie exists) and returns the data
the page renders.
"""

import asyncio
import logging

from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse

from studyportal.api.deps import CurrentSessionOptional, DirectoryDep, SessionCookiesDep
from studyportal.models import ScheduleType, StudentRead
from studyportal.services.directory import DirectoryError
from studyportal.services.guard import DASHBOARD_LANDING, LOGIN_PATH
from studyportal.services.session import Session, SessionCookies, read_token

logger = logging.getLogger(__name__)

router = APIRouter()


def _student(session: Session) -> dict:
    return StudentRead.model_validate(session.student.model_dump()).model_dump()


def _login_redirect(request: Request, cookies: SessionCookies) -> RedirectResponse:
    """Send an unverified visitor to login.

    A cookie that failed verification is removed here, otherwise the guard
    would keep bouncing the browser back to the dashboard.
    """
    if read_token(request) is None:
        return RedirectResponse(LOGIN_PATH)
    response = RedirectResponse(f"{LOGIN_PATH}?session_invalid=true")
    cookies.clear_session(response)
    return response


@router.get("/")
async def index():
    return RedirectResponse(LOGIN_PATH)


@router.get("/login")
async def login_page(request: Request, session: CurrentSessionOptional):
    if session is not None:
        return RedirectResponse("/dashboard")
    return {
        "page": "login",
        "error": request.query_params.get("error"),
        "forced_logout": request.query_params.get("forced_logout") == "true",
        "session_invalid": request.query_params.get("session_invalid") == "true",
    }


@router.get("/dashboard")
async def dashboard(request: Request, session: CurrentSessionOptional, cookies: SessionCookiesDep):
    if session is None:
        return _login_redirect(request, cookies)
    return RedirectResponse(DASHBOARD_LANDING)


@router.get("/dashboard/schedule")
async def schedule_page(
    request: Request,
    session: CurrentSessionOptional,
    cookies: SessionCookiesDep,
    directory: DirectoryDep,
):
    if session is None:
        return _login_redirect(request, cookies)

    groups: dict[str, list] = {t.value: [] for t in ScheduleType}
    fetch_error = False
    try:
        for schedule in await directory.get_schedules():
            groups[schedule.schedule_type.value].append(schedule.model_dump(mode="json"))
    except DirectoryError as e:
        logger.error(f"Error fetching schedules: {e}")
        fetch_error = True

    return {
        "page": "schedule",
        "user": _student(session),
        "schedules": groups,
        "fetch_error": fetch_error,
    }


@router.get("/dashboard/task")
async def task_page(
    request: Request,
    session: CurrentSessionOptional,
    cookies: SessionCookiesDep,
    directory: DirectoryDep,
):
    if session is None:
        return _login_redirect(request, cookies)

    try:
        await directory.update_last_viewed_at(session.student.id)
    except DirectoryError as e:
        logger.warning(f"Could not record last view for {session.email}: {e}")

    personal_page = session.student.personal_page
    tasks, submissions = [], []
    fetch_error = False
    if personal_page:
        try:
            tasks, submissions = await asyncio.gather(
                directory.get_tasks(personal_page),
                directory.get_submissions(personal_page),
            )
        except DirectoryError as e:
            logger.error(f"Error fetching tasks for {session.email}: {e}")
            fetch_error = True

    return {
        "page": "task",
        "user": _student(session),
        "tasks": [t.model_dump(mode="json") for t in tasks],
        "submissions": [s.model_dump(mode="json") for s in submissions],
        "fetch_error": fetch_error,
    }


@router.get("/dashboard/setup-password")
async def setup_password_page(
    request: Request, session: CurrentSessionOptional, cookies: SessionCookiesDep
):
    if session is None:
        return _login_redirect(request, cookies)
    return {
        "page": "setup-password",
        "user": _student(session),
        "has_password": session.student.has_password,
    }
