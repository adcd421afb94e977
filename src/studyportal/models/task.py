"""Task and submission models."""

from datetime import datetime

from pydantic import BaseModel, Field, HttpUrl


class Task(BaseModel):
    """A task assigned to a student's personal page."""

    id: str
    name: str = ""
    assigned_to: str = ""
    completed: bool = False


class TaskUpdate(BaseModel):
    """Schema for toggling a task."""

    completed: bool


class Submission(BaseModel):
    """An assignment link submitted by a student."""

    id: str
    name: str = ""
    personal_page: str = ""
    url: str | None = None
    submitted_at: datetime | None = None


class SubmissionCreate(BaseModel):
    """Schema for submitting an assignment link."""

    name: str = Field(min_length=1, max_length=200)
    url: HttpUrl
