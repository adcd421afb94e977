"""Pytest configuration and fixtures."""

import os
from collections.abc import AsyncGenerator
from datetime import UTC, datetime

# Set test environment before importing app
os.environ["ENVIRONMENT"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key-for-portal-tests"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["EMAIL_BACKEND"] = "console"
os.environ["APP_URL"] = "http://test"

import pytest
from httpx import ASGITransport, AsyncClient

from studyportal.api.deps import get_directory, get_email_service, get_password_hasher, get_token_codec
from studyportal.main import app
from studyportal.models import CONSULTATION_THEME, Schedule, Student, Submission, Task
from studyportal.services.directory import DirectoryError, StudentDirectory
from studyportal.services.email import EmailBackend, EmailMessage, EmailService
from studyportal.services.rate_limit import get_rate_limiter
from studyportal.services.session import SESSION_COOKIE


class FakeDirectory(StudentDirectory):
    """In-memory StudentDirectory.

    Set ``error`` to make every call raise it, simulating an outage.
    """

    def __init__(self) -> None:
        self.students: dict[str, Student] = {}
        self.tasks: dict[str, Task] = {}
        self.submissions: list[Submission] = []
        self.schedules: dict[str, Schedule] = {}
        self.error: DirectoryError | None = None
        self.pings = 0

    def _check(self) -> None:
        if self.error is not None:
            raise self.error

    def add_student(self, student: Student) -> Student:
        self.students[student.email] = student
        return student

    def _student_by_id(self, student_id: str) -> Student:
        for student in self.students.values():
            if student.id == student_id:
                return student
        raise DirectoryError(f"No student page {student_id}")

    async def get_student_by_email(self, email: str) -> Student | None:
        self._check()
        return self.students.get(email)

    async def save_password_hash(self, student_id: str, password_hash: str) -> None:
        self._check()
        student = self._student_by_id(student_id)
        self.students[student.email] = student.model_copy(update={"password_hash": password_hash})

    async def update_last_viewed_at(self, student_id: str) -> None:
        self._check()
        student = self._student_by_id(student_id)
        self.students[student.email] = student.model_copy(
            update={"last_viewed_at": datetime.now(UTC)}
        )

    async def get_tasks(self, personal_page: str) -> list[Task]:
        self._check()
        return [t for t in self.tasks.values() if t.assigned_to == personal_page]

    async def get_task(self, task_id: str) -> Task | None:
        self._check()
        return self.tasks.get(task_id)

    async def update_task_status(self, task_id: str, completed: bool) -> None:
        self._check()
        self.tasks[task_id] = self.tasks[task_id].model_copy(update={"completed": completed})

    async def get_submissions(self, personal_page: str) -> list[Submission]:
        self._check()
        return [s for s in self.submissions if s.personal_page == personal_page]

    async def add_submission(self, personal_page: str, name: str, url: str) -> None:
        self._check()
        self.submissions.insert(
            0,
            Submission(
                id=f"sub-{len(self.submissions) + 1}",
                name=name,
                personal_page=personal_page,
                url=url,
                submitted_at=datetime.now(UTC),
            ),
        )

    async def get_schedules(self) -> list[Schedule]:
        self._check()
        return [s for s in self.schedules.values() if not s.completed]

    async def get_schedule(self, schedule_id: str) -> Schedule | None:
        self._check()
        return self.schedules.get(schedule_id)

    async def reserve_schedule(self, schedule_id: str, email: str) -> None:
        self._check()
        self.schedules[schedule_id] = self.schedules[schedule_id].model_copy(
            update={"reserved_by": email}
        )

    async def get_reserved_schedules(self, email: str) -> list[Schedule]:
        self._check()
        return [s for s in self.schedules.values() if s.reserved_by == email]

    async def ping(self) -> None:
        self._check()
        self.pings += 1


class RecordingEmailBackend(EmailBackend):
    """Email backend that keeps sent messages in memory."""

    def __init__(self, succeed: bool = True) -> None:
        self.sent: list[EmailMessage] = []
        self.succeed = succeed

    async def deliver(self, message: EmailMessage) -> None:
        if not self.succeed:
            raise ConnectionError("mail relay unavailable")
        self.sent.append(message)


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    """Each test starts with empty rate limit windows."""
    get_rate_limiter().reset()
    yield
    get_rate_limiter().reset()


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture
def email_backend() -> RecordingEmailBackend:
    return RecordingEmailBackend()


@pytest.fixture
def email_service(email_backend: RecordingEmailBackend) -> EmailService:
    return EmailService(backend=email_backend)


@pytest.fixture
async def client(
    directory: FakeDirectory, email_service: EmailService
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""
    app.dependency_overrides[get_directory] = lambda: directory
    app.dependency_overrides[get_email_service] = lambda: email_service

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def student(directory: FakeDirectory) -> Student:
    """An active student who has set a password."""
    return directory.add_student(
        Student(
            id="student-1",
            name="Test Student",
            email="student@example.com",
            personal_page="page-1",
            progress="Week 3",
            password_hash=get_password_hasher().hash("correct-horse"),
        )
    )


@pytest.fixture
def new_student(directory: FakeDirectory) -> Student:
    """An active student who has not set a password yet."""
    return directory.add_student(
        Student(id="student-2", name="New Student", email="new@example.com", personal_page="page-2")
    )


@pytest.fixture
def retired_student(directory: FakeDirectory) -> Student:
    return directory.add_student(
        Student(
            id="student-3",
            name="Retired Student",
            email="retired@example.com",
            personal_page="page-3",
            password_hash=get_password_hasher().hash("correct-horse"),
            is_retired=True,
        )
    )


@pytest.fixture
def consultation(directory: FakeDirectory) -> Schedule:
    schedule = Schedule(
        id="sched-consult",
        name="One-on-one",
        instructor="Coach",
        starts_at=datetime(2026, 11, 5, 10, 0, tzinfo=UTC),
        theme=CONSULTATION_THEME,
    )
    directory.schedules[schedule.id] = schedule
    return schedule


@pytest.fixture
def regular_schedule(directory: FakeDirectory) -> Schedule:
    schedule = Schedule(
        id="sched-regular",
        name="Weekly lecture",
        url="https://meet.example.com/weekly",
        starts_at=datetime(2026, 11, 12, 19, 0, tzinfo=UTC),
        theme="Lecture",
    )
    directory.schedules[schedule.id] = schedule
    return schedule


@pytest.fixture
def archive_schedule(directory: FakeDirectory) -> Schedule:
    schedule = Schedule(
        id="sched-archive",
        name="Recorded kickoff",
        starts_at=datetime(2026, 10, 1, 19, 0, tzinfo=UTC),
        is_archive=True,
    )
    directory.schedules[schedule.id] = schedule
    return schedule


def sign_in(client: AsyncClient, email: str) -> str:
    """Put a valid session cookie for ``email`` on the client."""
    token = get_token_codec().generate(email)
    client.cookies.set(SESSION_COOKIE, token)
    return token


@pytest.fixture
def authenticated_client(client: AsyncClient, student: Student) -> AsyncClient:
    """Client carrying a session for ``student``."""
    sign_in(client, student.email)
    return client
