# src/mr_later/auth/auth_models.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..core.wire import parse_ts_or_none

PROFILES_TABLE = "profiles"


@dataclass(frozen=True, slots=True)
class User:
    id: str
    email: str | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> User:
        return cls(id=str(data["id"]), email=data.get("email"))


@dataclass(frozen=True, slots=True)
class Session:
    """Opaque credential bound to one identity. Stores only read session.user."""

    access_token: str
    refresh_token: str | None
    user: User
    expires_at: int | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> Session:
        expires_at = data.get("expires_at")
        return cls(
            access_token=str(data["access_token"]),
            refresh_token=data.get("refresh_token"),
            user=User.from_json(data["user"]),
            expires_at=int(expires_at) if expires_at is not None else None,
        )


@dataclass(frozen=True, slots=True)
class SignUpResult:
    user: User
    # None when the backend requires email confirmation first.
    session: Session | None


@dataclass(slots=True)
class Profile:
    id: str
    name: str | None = None
    email: str | None = None
    avatar_url: str | None = None
    plan: str = "free"
    stripe_customer_id: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Profile:
        return cls(
            id=str(row["id"]),
            name=row.get("name"),
            email=row.get("email"),
            avatar_url=row.get("avatar_url"),
            plan=row.get("plan") or "free",
            stripe_customer_id=row.get("stripe_customer_id"),
            created_at=parse_ts_or_none(row.get("created_at")),
        )


# Profile columns a client may change.
PROFILE_EDITABLE_FIELDS = frozenset({"name", "email", "avatar_url"})
