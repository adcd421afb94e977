"""Task and submission endpoints."""

import logging

from fastapi import APIRouter, status

from studyportal.api.deps import ApiRateLimit, CurrentSession, DirectoryDep
from studyportal.api.utils import directory_unavailable, get_owned_task, require_personal_page
from studyportal.models import Submission, SubmissionCreate, Task, TaskUpdate
from studyportal.services.directory import DirectoryError

logger = logging.getLogger(__name__)

router = APIRouter()
submissions_router = APIRouter()


@router.get("", response_model=list[Task])
async def list_tasks(session: CurrentSession, directory: DirectoryDep):
    """List tasks assigned to the signed-in student."""
    if not session.student.personal_page:
        return []
    try:
        return await directory.get_tasks(session.student.personal_page)
    except DirectoryError as e:
        raise directory_unavailable("fetch tasks", e) from e


@router.patch("/{task_id}", response_model=Task)
async def update_task(
    task_id: str,
    update: TaskUpdate,
    session: CurrentSession,
    directory: DirectoryDep,
    _rate_limit: ApiRateLimit,
):
    """Mark a task complete or incomplete."""
    task = await get_owned_task(task_id, session, directory)
    try:
        await directory.update_task_status(task.id, update.completed)
    except DirectoryError as e:
        raise directory_unavailable("update task", e) from e

    logger.info(f"Task {task.id} set completed={update.completed} by {session.email}")
    return task.model_copy(update={"completed": update.completed})


@submissions_router.get("", response_model=list[Submission])
async def list_submissions(session: CurrentSession, directory: DirectoryDep):
    """List the signed-in student's submissions, newest first."""
    if not session.student.personal_page:
        return []
    try:
        return await directory.get_submissions(session.student.personal_page)
    except DirectoryError as e:
        raise directory_unavailable("fetch submissions", e) from e


@submissions_router.post("", status_code=status.HTTP_201_CREATED)
async def create_submission(
    submission: SubmissionCreate,
    session: CurrentSession,
    directory: DirectoryDep,
    _rate_limit: ApiRateLimit,
):
    """Submit an assignment link."""
    personal_page = require_personal_page(session)
    try:
        await directory.add_submission(personal_page, submission.name, str(submission.url))
    except DirectoryError as e:
        raise directory_unavailable("add submission", e) from e

    logger.info(f"Submission '{submission.name}' added by {session.email}")
    return {"success": True}
