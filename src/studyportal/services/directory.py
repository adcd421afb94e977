"""Student directory backed by Notion databases.

Notion is the system of record: instructors edit students, tasks, submissions
and schedules there directly. This module only reads those pages and writes
the handful of fields the portal owns (password hash, last viewed time, task
completion, submissions, reservations).
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx

from studyportal.models import Schedule, Student, Submission, Task
from studyportal.services.resilience import (
    CircuitOpenError,
    TransientError,
    notion_circuit,
    with_resilience,
)

logger = logging.getLogger(__name__)

NOTION_PAGE_SIZE = 100

# Property names as they appear in the Notion workspace
STUDENT_PROPS = {
    "name": "名前",
    "email": "メールアドレス",
    "personal_page": "個人ページ",
    "progress": "進捗",
    "last_viewed_at": "最終閲覧時間",
    "password_hash": "パスワード",
    "is_retired": "退会",
}
TASK_PROPS = {
    "name": "名前",
    "assigned_to": "誰タスク",
    "completed": "完了",
}
SUBMISSION_PROPS = {
    "name": "名前",
    "personal_page": "個人ページ",
    "url": "URL",
}
SCHEDULE_PROPS = {
    "name": "名前",
    "url": "URL",
    "password": "パスワード",
    "instructor": "講師",
    "starts_at": "実施日",
    "theme": "講義テーマ",
    "is_archive": "アーカイブ",
    "completed": "完了",
    "reserved_by": "予約者",
}


class DirectoryError(Exception):
    """The directory could not be read or written."""

    pass


@dataclass
class DatabaseIds:
    """Notion database IDs for each record type."""

    students: str
    tasks: str
    submissions: str
    schedules: str


class StudentDirectory(ABC):
    """Read/write access to the records the portal works with."""

    @abstractmethod
    async def get_student_by_email(self, email: str) -> Student | None:
        """Return the student with exactly this email, or None."""
        pass

    @abstractmethod
    async def save_password_hash(self, student_id: str, password_hash: str) -> None:
        pass

    @abstractmethod
    async def update_last_viewed_at(self, student_id: str) -> None:
        pass

    @abstractmethod
    async def get_tasks(self, personal_page: str) -> list[Task]:
        pass

    @abstractmethod
    async def get_task(self, task_id: str) -> Task | None:
        pass

    @abstractmethod
    async def update_task_status(self, task_id: str, completed: bool) -> None:
        pass

    @abstractmethod
    async def get_submissions(self, personal_page: str) -> list[Submission]:
        """Return submissions for a personal page, newest first."""
        pass

    @abstractmethod
    async def add_submission(self, personal_page: str, name: str, url: str) -> None:
        pass

    @abstractmethod
    async def get_schedules(self) -> list[Schedule]:
        """Return schedules that are not completed, oldest first."""
        pass

    @abstractmethod
    async def get_schedule(self, schedule_id: str) -> Schedule | None:
        pass

    @abstractmethod
    async def reserve_schedule(self, schedule_id: str, email: str) -> None:
        pass

    @abstractmethod
    async def get_reserved_schedules(self, email: str) -> list[Schedule]:
        pass

    @abstractmethod
    async def ping(self) -> None:
        """Raise DirectoryError if the directory is unreachable."""
        pass

    async def close(self) -> None:  # noqa: B027
        """Release any held connections."""


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        if len(value) == 10:
            return datetime.fromisoformat(value).replace(tzinfo=UTC)
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable Notion date: {value!r}")
        return None


def get_property_value(properties: dict[str, Any], name: str, kind: str) -> Any:
    """Extract a plain value from a Notion property of the given kind."""
    prop = properties.get(name)
    if not prop:
        return None

    if kind in ("title", "rich_text"):
        parts = prop.get(kind) or []
        return "".join(p.get("plain_text", "") for p in parts)
    if kind == "email":
        return prop.get("email") or ""
    if kind == "checkbox":
        return bool(prop.get("checkbox"))
    if kind == "date":
        date = prop.get("date") or {}
        return _parse_datetime(date.get("start"))
    if kind == "select":
        select = prop.get("select") or {}
        return select.get("name")
    if kind == "url":
        return prop.get("url")
    return None


def _text(value: str) -> list[dict[str, Any]]:
    return [{"text": {"content": value}}]


def _student_from_page(page: dict[str, Any]) -> Student:
    props = page.get("properties", {})
    return Student(
        id=page["id"],
        name=get_property_value(props, STUDENT_PROPS["name"], "title") or "",
        email=get_property_value(props, STUDENT_PROPS["email"], "email") or "",
        personal_page=get_property_value(props, STUDENT_PROPS["personal_page"], "rich_text") or "",
        progress=get_property_value(props, STUDENT_PROPS["progress"], "rich_text") or "",
        last_viewed_at=get_property_value(props, STUDENT_PROPS["last_viewed_at"], "date"),
        password_hash=get_property_value(props, STUDENT_PROPS["password_hash"], "rich_text") or None,
        # Workspaces without a retired column treat everyone as active
        is_retired=bool(get_property_value(props, STUDENT_PROPS["is_retired"], "checkbox")),
    )


def _task_from_page(page: dict[str, Any]) -> Task:
    props = page.get("properties", {})
    return Task(
        id=page["id"],
        name=get_property_value(props, TASK_PROPS["name"], "title") or "",
        assigned_to=get_property_value(props, TASK_PROPS["assigned_to"], "rich_text") or "",
        completed=bool(get_property_value(props, TASK_PROPS["completed"], "checkbox")),
    )


def _submission_from_page(page: dict[str, Any]) -> Submission:
    props = page.get("properties", {})
    return Submission(
        id=page["id"],
        name=get_property_value(props, SUBMISSION_PROPS["name"], "title") or "",
        personal_page=get_property_value(props, SUBMISSION_PROPS["personal_page"], "rich_text")
        or "",
        url=get_property_value(props, SUBMISSION_PROPS["url"], "url"),
        submitted_at=_parse_datetime(page.get("created_time")),
    )


def _schedule_from_page(page: dict[str, Any]) -> Schedule:
    props = page.get("properties", {})
    return Schedule(
        id=page["id"],
        name=get_property_value(props, SCHEDULE_PROPS["name"], "title") or "",
        url=get_property_value(props, SCHEDULE_PROPS["url"], "url"),
        password=get_property_value(props, SCHEDULE_PROPS["password"], "rich_text") or None,
        instructor=get_property_value(props, SCHEDULE_PROPS["instructor"], "rich_text") or None,
        starts_at=get_property_value(props, SCHEDULE_PROPS["starts_at"], "date"),
        theme=get_property_value(props, SCHEDULE_PROPS["theme"], "select"),
        is_archive=bool(get_property_value(props, SCHEDULE_PROPS["is_archive"], "checkbox")),
        completed=bool(get_property_value(props, SCHEDULE_PROPS["completed"], "checkbox")),
        reserved_by=get_property_value(props, SCHEDULE_PROPS["reserved_by"], "email") or None,
    )


class NotionDirectory(StudentDirectory):
    """StudentDirectory implementation on the Notion REST API."""

    def __init__(
        self,
        api_key: str,
        databases: DatabaseIds,
        base_url: str = "https://api.notion.com/v1",
        notion_version: str = "2022-06-28",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.databases = databases
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Notion-Version": notion_version,
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    async def close(self) -> None:
        await self._client.aclose()

    @with_resilience(circuit_breaker=notion_circuit)
    async def _send(self, method: str, path: str, payload: dict[str, Any] | None) -> dict[str, Any]:
        response = await self._client.request(method, path, json=payload)
        if response.status_code == 429 or response.status_code >= 500:
            raise TransientError(f"Notion {method} {path} returned {response.status_code}")
        if response.status_code >= 400:
            raise DirectoryError(
                f"Notion {method} {path} failed: {response.status_code} - {response.text}"
            )
        return response.json()

    async def _request(
        self, method: str, path: str, payload: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        try:
            return await self._send(method, path, payload)
        except DirectoryError:
            raise
        except (TransientError, CircuitOpenError, httpx.HTTPError) as e:
            raise DirectoryError(f"Notion {method} {path} unavailable: {e}") from e

    async def _query(
        self,
        database_id: str,
        filter: dict[str, Any] | None = None,
        sorts: list[dict[str, Any]] | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Query a database, following pagination cursors."""
        results: list[dict[str, Any]] = []
        cursor: str | None = None

        while True:
            body: dict[str, Any] = {"page_size": min(limit or NOTION_PAGE_SIZE, NOTION_PAGE_SIZE)}
            if filter:
                body["filter"] = filter
            if sorts:
                body["sorts"] = sorts
            if cursor:
                body["start_cursor"] = cursor

            data = await self._request("POST", f"/databases/{database_id}/query", body)
            results.extend(data.get("results", []))

            if limit is not None and len(results) >= limit:
                return results[:limit]
            if not data.get("has_more"):
                return results
            cursor = data.get("next_cursor")

    async def _update_page(self, page_id: str, properties: dict[str, Any]) -> None:
        await self._request("PATCH", f"/pages/{page_id}", {"properties": properties})

    async def _get_page(self, page_id: str) -> dict[str, Any] | None:
        try:
            return await self._request("GET", f"/pages/{page_id}")
        except DirectoryError as e:
            logger.info(f"Page {page_id} not readable: {e}")
            return None

    async def get_student_by_email(self, email: str) -> Student | None:
        pages = await self._query(
            self.databases.students,
            filter={"property": STUDENT_PROPS["email"], "email": {"equals": email}},
            limit=1,
        )
        if not pages:
            logger.debug(f"No student found for {email}")
            return None
        return _student_from_page(pages[0])

    async def save_password_hash(self, student_id: str, password_hash: str) -> None:
        await self._update_page(
            student_id, {STUDENT_PROPS["password_hash"]: {"rich_text": _text(password_hash)}}
        )

    async def update_last_viewed_at(self, student_id: str) -> None:
        now = datetime.now(UTC).isoformat()
        await self._update_page(
            student_id, {STUDENT_PROPS["last_viewed_at"]: {"date": {"start": now}}}
        )

    async def get_tasks(self, personal_page: str) -> list[Task]:
        pages = await self._query(
            self.databases.tasks,
            filter={"property": TASK_PROPS["assigned_to"], "rich_text": {"equals": personal_page}},
        )
        return [_task_from_page(page) for page in pages]

    async def get_task(self, task_id: str) -> Task | None:
        page = await self._get_page(task_id)
        return _task_from_page(page) if page else None

    async def update_task_status(self, task_id: str, completed: bool) -> None:
        await self._update_page(task_id, {TASK_PROPS["completed"]: {"checkbox": completed}})

    async def get_submissions(self, personal_page: str) -> list[Submission]:
        pages = await self._query(
            self.databases.submissions,
            filter={
                "property": SUBMISSION_PROPS["personal_page"],
                "rich_text": {"equals": personal_page},
            },
            sorts=[{"timestamp": "created_time", "direction": "descending"}],
        )
        return [_submission_from_page(page) for page in pages]

    async def add_submission(self, personal_page: str, name: str, url: str) -> None:
        await self._request(
            "POST",
            "/pages",
            {
                "parent": {"database_id": self.databases.submissions},
                "properties": {
                    SUBMISSION_PROPS["name"]: {"title": _text(name)},
                    SUBMISSION_PROPS["url"]: {"url": url},
                    SUBMISSION_PROPS["personal_page"]: {"rich_text": _text(personal_page)},
                },
            },
        )

    async def get_schedules(self) -> list[Schedule]:
        pages = await self._query(
            self.databases.schedules,
            filter={"property": SCHEDULE_PROPS["completed"], "checkbox": {"equals": False}},
            sorts=[{"property": SCHEDULE_PROPS["starts_at"], "direction": "ascending"}],
        )
        return [_schedule_from_page(page) for page in pages]

    async def get_schedule(self, schedule_id: str) -> Schedule | None:
        page = await self._get_page(schedule_id)
        return _schedule_from_page(page) if page else None

    async def reserve_schedule(self, schedule_id: str, email: str) -> None:
        await self._update_page(schedule_id, {SCHEDULE_PROPS["reserved_by"]: {"email": email}})

    async def get_reserved_schedules(self, email: str) -> list[Schedule]:
        pages = await self._query(
            self.databases.schedules,
            filter={"property": SCHEDULE_PROPS["reserved_by"], "email": {"equals": email}},
            sorts=[{"property": SCHEDULE_PROPS["starts_at"], "direction": "ascending"}],
        )
        return [_schedule_from_page(page) for page in pages]

    async def ping(self) -> None:
        await self._request("GET", "/users/me")
