from __future__ import annotations

from dataclasses import dataclass

from flask import g, session

from flowbuilder.errors import AuthRequiredError
from flowbuilder.infrastructure.auth_repository import AuthRepository
from flowbuilder.policies import normalize_role


@dataclass(frozen=True)
class RequestContext:
    """Who is acting: built once per request and passed to every service call."""

    user_id: int
    company_id: int
    role: str
    name: str = ""
    company_type: str = "client"


SESSION_USER_KEY = "user_id"


def load_request_context(db, repository: AuthRepository | None = None) -> RequestContext | None:
    raw_user_id = session.get(SESSION_USER_KEY)
    try:
        user_id = int(raw_user_id or 0)
    except (TypeError, ValueError):
        user_id = 0
    if user_id <= 0:
        return None

    user = (repository or AuthRepository()).find_session_user(db, user_id)
    if not user:
        # Stale session: the user was deleted.
        session.pop(SESSION_USER_KEY, None)
        return None
    return RequestContext(
        user_id=int(user["id"]),
        company_id=int(user["company_id"]),
        role=normalize_role(user["role_name"], default="buyer"),
        name=user["name"],
        company_type=user["company_type"],
    )


def current_context(required: bool = True) -> RequestContext | None:
    ctx = getattr(g, "request_context", None)
    if ctx is None and required:
        raise AuthRequiredError()
    return ctx
