# src/mr_later/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the stores.

The stores depend on Protocols instead of concrete implementations.
This keeps the hosted backend swappable and makes testing easier
(tests run against in-memory fakes, see tests/fakes.py).
"""

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

Row = dict[str, Any]
# One JSON row as returned by the data gateway.

FilterOp = Literal["eq", "cs"]


@dataclass(frozen=True, slots=True)
class Filter:
    """
    Row predicate.

    - eq: column equals value
    - cs: array column contains every element of value
    """

    column: str
    op: FilterOp
    value: Any

    @staticmethod
    def eq(column: str, value: Any) -> Filter:
        return Filter(column, "eq", value)

    @staticmethod
    def contains(column: str, values: Sequence[Any]) -> Filter:
        return Filter(column, "cs", list(values))


@dataclass(frozen=True, slots=True)
class Order:
    column: str
    ascending: bool = True


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """
    Change-feed notification.

    Stores treat it as an invalidation signal only; the payload is informational.
    """

    table: str
    kind: str = "*"
    payload: Row = field(default_factory=dict)


ChangeHandler = Callable[[ChangeEvent], Awaitable[None]]
Unsubscribe = Callable[[], Awaitable[None]]


class DataGateway(Protocol):
    """Request/response access to hosted tables."""

    async def select(
            self,
            table: str,
            *,
            filters: Sequence[Filter] = (),
            order: Order | None = None,
            limit: int | None = None,
    ) -> list[Row]: ...

    async def select_one(self, table: str, *, filters: Sequence[Filter]) -> Row: ...

    async def insert(self, table: str, row: Row) -> Row: ...

    async def update(self, table: str, row_id: str, changes: Row) -> None: ...

    async def delete(self, table: str, row_id: str) -> None: ...


class ChangeFeed(Protocol):
    """Push notifications of table changes (optionally filtered)."""

    async def subscribe(
            self,
            table: str,
            *,
            filter: Filter | None,
            on_event: ChangeHandler,
    ) -> Any: ...

    async def unsubscribe(self, handle: Any) -> None: ...


AuthEvent = Literal["SIGNED_IN", "SIGNED_OUT", "TOKEN_REFRESHED", "USER_UPDATED"]
AuthListener = Callable[[str, Any], Awaitable[None]]
# (event, Session | None)


class IdentityProvider(Protocol):
    """Hosted identity sub-API. Session/User types live in auth/auth_models.py."""

    async def get_session(self) -> Any | None: ...

    async def sign_in_with_password(self, email: str, password: str) -> Any: ...

    async def sign_in_with_oauth(self, provider: str, redirect_to: str) -> str: ...

    async def sign_in_with_otp(self, email: str, redirect_to: str) -> None: ...

    async def verify_otp(self, email: str, token: str) -> Any: ...

    async def sign_up(self, email: str, password: str) -> Any: ...

    async def sign_out(self) -> None: ...

    async def reset_password_for_email(self, email: str, redirect_to: str | None = None) -> None: ...

    async def set_session_from_url(self, url: str) -> Any: ...

    def on_auth_state_change(self, callback: AuthListener) -> Callable[[], None]: ...


class SecretStore(Protocol):
    """Small private key/value store (cached credential, flags)."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class UnlockPrompt(Protocol):
    """Device-level check (biometric on phones) guarding cached credentials."""

    async def confirm(self, message: str) -> bool: ...
