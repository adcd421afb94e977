"""Student record model."""

from datetime import datetime

from pydantic import BaseModel, Field


class Student(BaseModel):
    """A student as stored in the external directory."""

    id: str = Field(description="Directory page ID")
    name: str = ""
    email: str
    personal_page: str = Field(default="", description="Key linking tasks and submissions")
    progress: str = ""
    last_viewed_at: datetime | None = None
    password_hash: str | None = None
    is_retired: bool = False

    @property
    def has_password(self) -> bool:
        """Check if the student has completed password setup."""
        return bool(self.password_hash)


class StudentRead(BaseModel):
    """Public view of a student."""

    id: str
    name: str
    email: str
    personal_page: str
    progress: str
