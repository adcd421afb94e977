"""Schedule model."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, computed_field

# Theme value that marks a one-on-one consultation slot
CONSULTATION_THEME = "個人コンサル"


class ScheduleType(str, Enum):
    """Schedule categories shown on the schedule page."""

    REGULAR = "regular"
    CONSULTATION = "consultation"
    ARCHIVE = "archive"


class Schedule(BaseModel):
    """A scheduled session, consultation slot or archived recording."""

    id: str
    name: str = ""
    url: str | None = None
    password: str | None = None
    instructor: str | None = None
    starts_at: datetime | None = None
    theme: str | None = None
    is_archive: bool = False
    completed: bool = False
    # Never serialised: other students must not see who booked a slot
    reserved_by: str | None = Field(default=None, exclude=True)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def schedule_type(self) -> ScheduleType:
        if self.is_archive:
            return ScheduleType.ARCHIVE
        if self.theme == CONSULTATION_THEME:
            return ScheduleType.CONSULTATION
        return ScheduleType.REGULAR

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_reserved(self) -> bool:
        return bool(self.reserved_by)


class ReserveRequest(BaseModel):
    """Request body for reserving a consultation slot."""

    schedule_id: str = Field(min_length=1)
