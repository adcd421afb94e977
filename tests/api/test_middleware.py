"""Middleware tests: request IDs and the redirect guard."""

import pytest
from httpx import AsyncClient

from studyportal.models import Student
from studyportal.services.session import REDIRECT_COUNT_COOKIE, SESSION_COOKIE


def set_cookies(response) -> list[str]:
    return response.headers.get_list("set-cookie")


def cookie_value(response, name: str) -> str | None:
    for cookie in set_cookies(response):
        if cookie.startswith(f"{name}="):
            return cookie.split(";", 1)[0].split("=", 1)[1]
    return None


@pytest.mark.asyncio
async def test_request_id_generated(client: AsyncClient):
    response = await client.get("/api/health")
    assert response.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_request_id_propagated(client: AsyncClient):
    response = await client.get("/api/health", headers={"X-Request-ID": "abc-123"})
    assert response.headers["X-Request-ID"] == "abc-123"


class TestRedirectGuard:
    @pytest.mark.asyncio
    async def test_dashboard_without_cookie(self, client: AsyncClient):
        response = await client.get("/dashboard/task")

        assert response.status_code == 307
        assert response.headers["location"] == "/login"
        assert cookie_value(response, REDIRECT_COUNT_COOKIE) == "1"

    @pytest.mark.asyncio
    async def test_counter_increments(self, client: AsyncClient):
        client.cookies.set(REDIRECT_COUNT_COOKIE, "1")
        response = await client.get("/dashboard")

        assert response.headers["location"] == "/login"
        assert cookie_value(response, REDIRECT_COUNT_COOKIE) == "2"

    @pytest.mark.asyncio
    async def test_login_with_cookie_goes_to_dashboard(self, authenticated_client: AsyncClient):
        response = await authenticated_client.get("/login")

        assert response.status_code == 307
        assert response.headers["location"] == "/dashboard/schedule"

    @pytest.mark.asyncio
    async def test_root_with_cookie_goes_to_dashboard(self, authenticated_client: AsyncClient):
        response = await authenticated_client.get("/")
        assert response.headers["location"] == "/dashboard/schedule"

    @pytest.mark.asyncio
    async def test_loop_forces_logout(self, authenticated_client: AsyncClient):
        authenticated_client.cookies.set(REDIRECT_COUNT_COOKIE, "3")
        response = await authenticated_client.get("/login")

        assert response.status_code == 307
        assert response.headers["location"] == "/login?forced_logout=true"
        cookies = set_cookies(response)
        assert any(c.startswith(f"{SESSION_COOKIE}=") and "Max-Age=0" in c for c in cookies)
        assert any(c.startswith(f"{REDIRECT_COUNT_COOKIE}=") and "Max-Age=0" in c for c in cookies)

    @pytest.mark.asyncio
    async def test_pass_resets_counter(self, authenticated_client: AsyncClient):
        authenticated_client.cookies.set(REDIRECT_COUNT_COOKIE, "2")
        response = await authenticated_client.get("/dashboard/schedule")

        assert response.status_code == 200
        cookies = set_cookies(response)
        assert any(c.startswith(f"{REDIRECT_COUNT_COOKIE}=") and "Max-Age=0" in c for c in cookies)

    @pytest.mark.asyncio
    async def test_pass_without_counter_sets_nothing(self, authenticated_client: AsyncClient):
        response = await authenticated_client.get("/dashboard/schedule")

        assert response.status_code == 200
        assert cookie_value(response, REDIRECT_COUNT_COOKIE) is None

    @pytest.mark.asyncio
    async def test_api_paths_are_not_guarded(self, client: AsyncClient):
        client.cookies.set(REDIRECT_COUNT_COOKIE, "5")
        response = await client.get("/api/health")

        assert response.status_code == 200
        assert cookie_value(response, REDIRECT_COUNT_COOKIE) is None

    @pytest.mark.asyncio
    async def test_stale_cookie_is_cleared_by_page(self, client: AsyncClient, student: Student):
        """A cookie the guard accepts but the page cannot verify is removed."""
        client.cookies.set(SESSION_COOKIE, "stale-token")
        response = await client.get("/dashboard/schedule")

        assert response.status_code == 307
        assert response.headers["location"] == "/login?session_invalid=true"
        cookies = set_cookies(response)
        assert any(c.startswith(f"{SESSION_COOKIE}=") and "Max-Age=0" in c for c in cookies)
