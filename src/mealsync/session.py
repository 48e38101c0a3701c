"""
MealSync - Explicit user session.

Every repository and coordinator call receives the resolved session
as a parameter instead of reading an ambient "current user".
"""

from dataclasses import dataclass

from mealsync.errors import NotAuthenticated


@dataclass(frozen=True)
class UserSession:
    """Resolved identity of the signed-in user."""

    user_id: str
    access_token: str | None = None


def require_session(session: UserSession | None) -> UserSession:
    """Return the session or fail fast with NotAuthenticated."""
    if session is None or not session.user_id:
        raise NotAuthenticated()
    return session
