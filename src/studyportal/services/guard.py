"""Request-time redirect guard.

The guard only looks at whether a session cookie is present, not whether it
is valid; pages verify the session themselves. That mismatch can bounce a
browser between the login page and the dashboard, so every guard redirect
bumps a counter and enough consecutive redirects wipe the session.
"""

from dataclasses import dataclass
from enum import Enum

LOGIN_PATH = "/login"
DASHBOARD_LANDING = "/dashboard/schedule"
PROTECTED_PREFIX = "/dashboard"
LOGIN_ENTRY_PATHS = frozenset({"/", LOGIN_PATH})
DEFAULT_LOOP_THRESHOLD = 3


class GuardAction(str, Enum):
    PASS = "pass"
    REDIRECT = "redirect"
    FORCE_LOGOUT = "force_logout"


@dataclass(frozen=True)
class GuardDecision:
    action: GuardAction
    count: int
    location: str | None = None


def is_protected(path: str) -> bool:
    return path == PROTECTED_PREFIX or path.startswith(PROTECTED_PREFIX + "/")


def is_login_entry(path: str) -> bool:
    return path in LOGIN_ENTRY_PATHS


def is_guarded(path: str) -> bool:
    """Paths the guard makes decisions for; everything else is left alone."""
    return is_protected(path) or is_login_entry(path)


def decide(
    path: str,
    has_session_cookie: bool,
    prior_count: int,
    threshold: int = DEFAULT_LOOP_THRESHOLD,
) -> GuardDecision:
    """Decide what to do with a navigation to ``path``.

    Returns the action together with the counter value to store.
    """
    if prior_count >= threshold:
        return GuardDecision(GuardAction.FORCE_LOGOUT, count=0, location=LOGIN_PATH)

    if is_protected(path) and not has_session_cookie:
        return GuardDecision(GuardAction.REDIRECT, count=prior_count + 1, location=LOGIN_PATH)

    if is_login_entry(path) and has_session_cookie:
        return GuardDecision(
            GuardAction.REDIRECT, count=prior_count + 1, location=DASHBOARD_LANDING
        )

    return GuardDecision(GuardAction.PASS, count=0)
