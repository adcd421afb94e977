"""Resolve verified emails to live student records."""

import logging
from dataclasses import dataclass
from enum import Enum

from studyportal.models import Student
from studyportal.services.directory import DirectoryError, StudentDirectory

logger = logging.getLogger(__name__)


class ResolveStatus(str, Enum):
    ACTIVE = "active"
    NOT_FOUND = "user_not_found"
    RETIRED = "user_retired"


@dataclass
class ResolveOutcome:
    """Result of looking up a student for authentication."""

    status: ResolveStatus
    student: Student | None = None

    @property
    def is_active(self) -> bool:
        return self.status == ResolveStatus.ACTIVE


class IdentityResolver:
    """Maps emails to students, applying the retired-student rule."""

    def __init__(self, directory: StudentDirectory) -> None:
        self.directory = directory

    async def resolve_by_email(self, email: str) -> Student | None:
        """Look up a student by exact email.

        Directory failures are logged and reported as "not found".
        """
        try:
            return await self.directory.get_student_by_email(email)
        except DirectoryError as e:
            logger.error(f"Student lookup failed for {email}: {e}")
            return None

    async def resolve_active(self, email: str) -> ResolveOutcome:
        student = await self.resolve_by_email(email)
        if student is None:
            logger.info(f"Unknown student: {email}")
            return ResolveOutcome(ResolveStatus.NOT_FOUND)
        if student.is_retired:
            logger.info(f"Retired student: {email}")
            return ResolveOutcome(ResolveStatus.RETIRED, student)
        return ResolveOutcome(ResolveStatus.ACTIVE, student)

    async def save_password_hash(self, student_id: str, password_hash: str) -> bool:
        try:
            await self.directory.save_password_hash(student_id, password_hash)
            return True
        except DirectoryError as e:
            logger.error(f"Failed to save password hash for {student_id}: {e}")
            return False
