# src/mr_later/gateway/supabase_rest.py

"""
HTTP adapters for the hosted backend.

- SupabaseAuth: identity sub-API (GoTrue under /auth/v1), keeps the current
  session in memory and the refresh token in the SecretStore.
- PostgrestGateway: table access (PostgREST under /rest/v1), authorized with
  the current access token when signed in, else with the anon key.

Both share one httpx.AsyncClient. Every non-2xx response becomes a GatewayError
(AuthenticationError for the identity endpoints) carrying the backend message.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Sequence
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit

import httpx

from ..auth.auth_models import Session, SignUpResult, User
from ..core.ports import AuthListener, Filter, Order, Row, SecretStore
from ..errors import AuthenticationError, GatewayError

logger = logging.getLogger(__name__)

REFRESH_TOKEN_KEY = "refresh_token"
# Refresh a little before the access token actually expires.
EXPIRY_MARGIN_SECONDS = 30


def create_http_client(
        base_url: str,
        anon_key: str | None,
        *,
        timeout_seconds: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    if not base_url or not base_url.strip():
        raise RuntimeError("Backend URL is not set. Set MRLATER_SUPABASE_URL in your .env.")
    if not anon_key or not anon_key.strip():
        raise RuntimeError("Backend key is not set. Set MRLATER_SUPABASE_ANON_KEY in your .env.")

    return httpx.AsyncClient(
        base_url=base_url.rstrip("/"),
        headers={"apikey": anon_key},
        timeout=httpx.Timeout(timeout_seconds, connect=min(5.0, timeout_seconds)),
        transport=transport,
    )


def _error_text(resp: httpx.Response) -> tuple[str, str | None]:
    """Pick the most useful message from a PostgREST/GoTrue error body."""
    try:
        body = resp.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        for key in ("msg", "message", "error_description", "error"):
            val = body.get(key)
            if isinstance(val, str) and val.strip():
                code = body.get("code") or body.get("error_code")
                return val, str(code) if code is not None else None

    text = resp.text.strip()
    return (text or f"HTTP {resp.status_code}"), None


def _raise_for_status(resp: httpx.Response, *, auth: bool = False) -> None:
    if resp.is_success:
        return
    message, code = _error_text(resp)
    exc_type = AuthenticationError if auth else GatewayError
    raise exc_type(message, status=resp.status_code, code=code)


async def _send(client: httpx.AsyncClient, method: str, url: str, *, auth: bool = False, **kwargs: Any) -> httpx.Response:
    try:
        resp = await client.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        exc_type = AuthenticationError if auth else GatewayError
        raise exc_type(f"Network error: {e.__class__.__name__}: {e}") from e
    _raise_for_status(resp, auth=auth)
    return resp


class SupabaseAuth:
    """GoTrue client implementing the IdentityProvider port."""

    def __init__(self, client: httpx.AsyncClient, *, secrets: SecretStore | None = None) -> None:
        self._client = client
        self._secrets = secrets
        self._session: Session | None = None
        self._listeners: list[AuthListener] = []

    @property
    def access_token(self) -> str | None:
        return self._session.access_token if self._session else None

    # ---- listeners ----

    def on_auth_state_change(self, callback: AuthListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _remove

    async def _emit(self, event: str, session: Session | None) -> None:
        for cb in list(self._listeners):
            try:
                await cb(event, session)
            except Exception:
                logger.exception("Auth listener failed on %s", event)

    async def _set_session(self, session: Session | None, event: str) -> None:
        self._session = session
        if self._secrets is not None:
            if session is not None and session.refresh_token:
                self._secrets.set(REFRESH_TOKEN_KEY, session.refresh_token)
            elif session is None:
                self._secrets.delete(REFRESH_TOKEN_KEY)
        await self._emit(event, session)

    # ---- helpers ----

    def _bearer(self, token: str | None = None) -> dict[str, str]:
        token = token or self.access_token
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _post(self, path: str, payload: dict[str, Any], *, params: dict[str, str] | None = None,
                    headers: dict[str, str] | None = None) -> Any:
        resp = await _send(
            self._client,
            "POST",
            f"/auth/v1{path}",
            auth=True,
            json=payload,
            params=params,
            headers=headers,
        )
        if not resp.content:
            return {}
        return resp.json()

    async def _refresh(self, refresh_token: str) -> Session:
        data = await self._post("/token", {"refresh_token": refresh_token}, params={"grant_type": "refresh_token"})
        return Session.from_json(data)

    @staticmethod
    def _expired(session: Session) -> bool:
        if session.expires_at is None:
            return False
        return session.expires_at - EXPIRY_MARGIN_SECONDS <= time.time()

    # ---- IdentityProvider ----

    async def get_session(self) -> Session | None:
        """
        Current session, refreshed if close to expiry.

        Falls back to the refresh token persisted by a previous run.
        A rejected refresh token is forgotten and yields None.
        """
        session = self._session
        refresh_token = session.refresh_token if session else None
        if refresh_token is None and self._secrets is not None:
            refresh_token = self._secrets.get(REFRESH_TOKEN_KEY)

        if session is not None and not self._expired(session):
            return session
        if not refresh_token:
            return None

        try:
            restored = await self._refresh(refresh_token)
        except AuthenticationError as e:
            logger.info("Stored session rejected (%s); signing out locally.", e.message)
            await self._set_session(None, "SIGNED_OUT")
            return None

        await self._set_session(restored, "TOKEN_REFRESHED")
        return restored

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        data = await self._post("/token", {"email": email, "password": password}, params={"grant_type": "password"})
        session = Session.from_json(data)
        await self._set_session(session, "SIGNED_IN")
        return session

    async def sign_in_with_oauth(self, provider: str, redirect_to: str) -> str:
        query = urlencode({"provider": provider, "redirect_to": redirect_to})
        base = str(self._client.base_url).rstrip("/")
        return f"{base}/auth/v1/authorize?{query}"

    async def sign_in_with_otp(self, email: str, redirect_to: str) -> None:
        await self._post("/otp", {"email": email, "create_user": True}, params={"redirect_to": redirect_to})

    async def verify_otp(self, email: str, token: str) -> Session:
        data = await self._post("/verify", {"type": "email", "email": email, "token": token})
        session = Session.from_json(data)
        await self._set_session(session, "SIGNED_IN")
        return session

    async def sign_up(self, email: str, password: str) -> SignUpResult:
        data = await self._post("/signup", {"email": email, "password": password})

        if data.get("access_token"):
            session = Session.from_json(data)
            await self._set_session(session, "SIGNED_IN")
            return SignUpResult(user=session.user, session=session)

        # Email confirmation pending: the body is the user itself (or wraps it).
        user_json = data.get("user") if isinstance(data.get("user"), dict) else data
        if not user_json.get("id"):
            raise AuthenticationError("Sign-up response did not include a user")
        return SignUpResult(user=User.from_json(user_json), session=None)

    async def sign_out(self) -> None:
        token = self.access_token
        try:
            if token:
                await self._post("/logout", {}, headers=self._bearer(token))
        finally:
            await self._set_session(None, "SIGNED_OUT")

    async def reset_password_for_email(self, email: str, redirect_to: str | None = None) -> None:
        params = {"redirect_to": redirect_to} if redirect_to else None
        await self._post("/recover", {"email": email}, params=params)

    async def set_session_from_url(self, url: str) -> Session:
        """Finish an OAuth/magic-link redirect: tokens arrive in the URL fragment."""
        parts = urlsplit(url)
        values = dict(parse_qsl(parts.query))
        values.update(parse_qsl(parts.fragment))

        if values.get("error_description") or values.get("error"):
            raise AuthenticationError(values.get("error_description") or values["error"])

        access_token = values.get("access_token")
        if not access_token:
            raise AuthenticationError("Redirect URL carries no access token")

        resp = await _send(self._client, "GET", "/auth/v1/user", auth=True, headers=self._bearer(access_token))
        user = User.from_json(resp.json())

        expires_at = values.get("expires_at")
        if expires_at is None and values.get("expires_in"):
            expires_at = str(int(time.time()) + int(values["expires_in"]))

        session = Session(
            access_token=access_token,
            refresh_token=values.get("refresh_token"),
            user=user,
            expires_at=int(expires_at) if expires_at else None,
        )
        await self._set_session(session, "SIGNED_IN")
        return session


def _pg_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _pg_array(values: Sequence[Any]) -> str:
    # Postgres array literal with every element quoted.
    return "{" + ",".join(json.dumps(str(v)) for v in values) + "}"


def _filter_params(filters: Sequence[Filter]) -> list[tuple[str, str]]:
    params: list[tuple[str, str]] = []
    for f in filters:
        if f.op == "eq":
            params.append((f.column, f"eq.{_pg_value(f.value)}"))
        elif f.op == "cs":
            params.append((f.column, f"cs.{_pg_array(f.value)}"))
        else:
            raise ValueError(f"Unsupported filter op: {f.op}")
    return params


class PostgrestGateway:
    """PostgREST client implementing the DataGateway port."""

    def __init__(self, client: httpx.AsyncClient, auth: SupabaseAuth, *, id_column: str = "id") -> None:
        self._client = client
        self._auth = auth
        self._id_column = id_column

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        token = self._auth.access_token or self._client.headers.get("apikey")
        headers = {"Authorization": f"Bearer {token}"}
        if extra:
            headers.update(extra)
        return headers

    async def select(
            self,
            table: str,
            *,
            filters: Sequence[Filter] = (),
            order: Order | None = None,
            limit: int | None = None,
    ) -> list[Row]:
        params: list[tuple[str, str]] = [("select", "*"), *_filter_params(filters)]
        if order is not None:
            params.append(("order", f"{order.column}.{'asc' if order.ascending else 'desc'}"))
        if limit is not None:
            params.append(("limit", str(int(limit))))

        resp = await _send(self._client, "GET", f"/rest/v1/{table}", params=params, headers=self._headers())
        rows = resp.json()
        return rows if isinstance(rows, list) else []

    async def select_one(self, table: str, *, filters: Sequence[Filter]) -> Row:
        params = [("select", "*"), *_filter_params(filters)]
        resp = await _send(
            self._client,
            "GET",
            f"/rest/v1/{table}",
            params=params,
            headers=self._headers({"Accept": "application/vnd.pgrst.object+json"}),
        )
        return resp.json()

    async def insert(self, table: str, row: Row) -> Row:
        resp = await _send(
            self._client,
            "POST",
            f"/rest/v1/{table}",
            json=row,
            headers=self._headers({"Prefer": "return=representation"}),
        )
        created = resp.json()
        if isinstance(created, list):
            if not created:
                raise GatewayError(f"Insert into {table} returned no row", status=resp.status_code)
            return created[0]
        return created

    async def update(self, table: str, row_id: str, changes: Row) -> None:
        resp = await _send(
            self._client,
            "PATCH",
            f"/rest/v1/{table}",
            params=[(self._id_column, f"eq.{row_id}")],
            json=changes,
            headers=self._headers({"Prefer": "return=representation"}),
        )
        # Row policies hide other users' rows, so "not yours" also lands here.
        if not resp.json():
            raise GatewayError(f"No {table} row matched id={row_id}", status=404)

    async def delete(self, table: str, row_id: str) -> None:
        await _send(
            self._client,
            "DELETE",
            f"/rest/v1/{table}",
            params=[(self._id_column, f"eq.{row_id}")],
            headers=self._headers(),
        )
