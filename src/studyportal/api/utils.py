"""Shared API utilities."""

import logging

from fastapi import HTTPException, status

from studyportal.models import Task
from studyportal.services.directory import DirectoryError, StudentDirectory
from studyportal.services.session import Session

logger = logging.getLogger(__name__)


def directory_unavailable(action: str, error: DirectoryError) -> HTTPException:
    """Build the error raised when the directory cannot serve a request."""
    logger.error(f"Failed to {action}: {error}")
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Failed to {action}",
    )


def require_personal_page(session: Session) -> str:
    """Return the student's personal page key or raise 409 if unset."""
    personal_page = session.student.personal_page
    if not personal_page:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="No personal page is linked to this account",
        )
    return personal_page


async def get_owned_task(task_id: str, session: Session, directory: StudentDirectory) -> Task:
    """Get a task assigned to the signed-in student.

    Raises:
        HTTPException: 404 if the task does not exist or belongs to someone else
    """
    try:
        task = await directory.get_task(task_id)
    except DirectoryError as e:
        raise directory_unavailable("load task", e) from e

    if task is None or not task.assigned_to or task.assigned_to != session.student.personal_page:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Task not found",
        )
    return task
