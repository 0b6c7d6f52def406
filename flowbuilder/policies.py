from __future__ import annotations

from typing import Iterable, Set

from flowbuilder.errors import PermissionError as AppPermissionError


VALID_ROLES: Set[str] = {"admin", "buyer", "supplier"}
BUYER_ROLES = ("admin", "buyer")


def normalize_role(role: str | None, default: str = "buyer") -> str:
    normalized = str(role or "").strip().lower()
    if normalized in VALID_ROLES:
        return normalized
    return default if default in VALID_ROLES else ""


def normalize_allowed_roles(roles: Iterable[str]) -> Set[str]:
    allowed: Set[str] = set()
    for role in roles:
        normalized = normalize_role(role, default="")
        if normalized:
            allowed.add(normalized)
    return allowed


def has_any_role(role: str | None, allowed_roles: Iterable[str]) -> bool:
    normalized_role = normalize_role(role, default="")
    allowed = normalize_allowed_roles(allowed_roles)
    return not allowed or normalized_role in allowed


def require_roles(ctx, *allowed_roles: str) -> str:
    if has_any_role(ctx.role, allowed_roles):
        return ctx.role
    raise AppPermissionError(payload={"required_roles": sorted(normalize_allowed_roles(allowed_roles))})
