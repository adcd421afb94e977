"""Records mirrored from the Notion workspace."""

from studyportal.models.schedule import CONSULTATION_THEME, ReserveRequest, Schedule, ScheduleType
from studyportal.models.student import Student, StudentRead
from studyportal.models.task import Submission, SubmissionCreate, Task, TaskUpdate

__all__ = [
    "CONSULTATION_THEME",
    "ReserveRequest",
    "Schedule",
    "ScheduleType",
    "Student",
    "StudentRead",
    "Submission",
    "SubmissionCreate",
    "Task",
    "TaskUpdate",
]
