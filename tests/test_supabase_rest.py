# tests/test_supabase_rest.py

from __future__ import annotations

import json
import time
from collections.abc import Callable

import httpx
import pytest

from mr_later.auth.auth_store import AuthStore
from mr_later.core.ports import Filter, Order
from mr_later.errors import AuthenticationError, GatewayError
from mr_later.gateway.supabase_rest import (
    REFRESH_TOKEN_KEY,
    PostgrestGateway,
    SupabaseAuth,
    create_http_client,
)

from .conftest import ALICE
from .fakes import MemorySecretStore

BASE_URL = "https://proj.example.co"
ANON_KEY = "anon-key"

Handler = Callable[[httpx.Request], httpx.Response]


class Routes:
    """Tiny (method, path) -> handler router for httpx.MockTransport."""

    def __init__(self) -> None:
        self.handlers: dict[tuple[str, str], Handler] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, handler: Handler) -> None:
        self.handlers[(method, path)] = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.handlers.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"message": f"no route {request.method} {request.url.path}"})
        return handler(request)

    def last(self, method: str, path: str) -> httpx.Request:
        return [r for r in self.requests if r.method == method and r.url.path == path][-1]


def _session_json(token: str = "access-1", refresh: str = "refresh-1") -> dict:
    return {
        "access_token": token,
        "refresh_token": refresh,
        "expires_at": int(time.time()) + 3600,
        "user": {"id": ALICE, "email": "alice@example.com"},
    }


@pytest.fixture()
def routes() -> Routes:
    return Routes()


@pytest.fixture()
async def http(routes: Routes):
    client = create_http_client(BASE_URL, ANON_KEY, transport=httpx.MockTransport(routes))
    yield client
    await client.aclose()


@pytest.fixture()
def secret_store() -> MemorySecretStore:
    return MemorySecretStore()


@pytest.fixture()
def supa_auth(http, secret_store) -> SupabaseAuth:
    return SupabaseAuth(http, secrets=secret_store)


@pytest.fixture()
def gateway(http, supa_auth) -> PostgrestGateway:
    return PostgrestGateway(http, supa_auth)


@pytest.mark.parametrize("url,key", [("", ANON_KEY), (BASE_URL, None), (BASE_URL, "  ")])
def test_client_requires_url_and_key(url, key) -> None:
    with pytest.raises(RuntimeError):
        create_http_client(url, key)


# ---- PostgREST ----


@pytest.mark.asyncio
async def test_select_encodes_filters_order_and_limit(gateway, routes) -> None:
    routes.add("GET", "/rest/v1/challenges", lambda r: httpx.Response(200, json=[{"id": "c1"}]))

    rows = await gateway.select(
        "challenges",
        filters=[Filter.eq("id", "c1"), Filter.contains("participants", [ALICE])],
        order=Order("start_date", ascending=False),
        limit=5,
    )

    assert rows == [{"id": "c1"}]
    req = routes.last("GET", "/rest/v1/challenges")
    assert req.url.params["id"] == "eq.c1"
    assert req.url.params["participants"] == 'cs.{"user-alice"}'
    assert req.url.params["order"] == "start_date.desc"
    assert req.url.params["limit"] == "5"
    assert req.headers["apikey"] == ANON_KEY
    # Signed out: anon key doubles as the bearer token.
    assert req.headers["authorization"] == f"Bearer {ANON_KEY}"


@pytest.mark.asyncio
async def test_select_one_asks_for_a_single_object(gateway, routes) -> None:
    routes.add("GET", "/rest/v1/profiles", lambda r: httpx.Response(200, json={"id": ALICE}))

    row = await gateway.select_one("profiles", filters=[Filter.eq("id", ALICE)])

    assert row == {"id": ALICE}
    assert routes.last("GET", "/rest/v1/profiles").headers["accept"] == "application/vnd.pgrst.object+json"


@pytest.mark.asyncio
async def test_insert_returns_representation(gateway, routes) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        return httpx.Response(201, json=[{**body, "id": "t1"}])

    routes.add("POST", "/rest/v1/tasks", handler)

    created = await gateway.insert("tasks", {"title": "x"})

    assert created == {"title": "x", "id": "t1"}
    assert routes.last("POST", "/rest/v1/tasks").headers["prefer"] == "return=representation"


@pytest.mark.asyncio
async def test_update_with_no_matching_row_raises(gateway, routes) -> None:
    routes.add("PATCH", "/rest/v1/tasks", lambda r: httpx.Response(200, json=[]))

    with pytest.raises(GatewayError) as info:
        await gateway.update("tasks", "ghost", {"title": "x"})

    assert info.value.status == 404
    assert routes.last("PATCH", "/rest/v1/tasks").url.params["id"] == "eq.ghost"


@pytest.mark.asyncio
async def test_delete_targets_row_by_id(gateway, routes) -> None:
    routes.add("DELETE", "/rest/v1/tasks", lambda r: httpx.Response(204))

    await gateway.delete("tasks", "t1")

    assert routes.last("DELETE", "/rest/v1/tasks").url.params["id"] == "eq.t1"


@pytest.mark.asyncio
async def test_error_body_becomes_gateway_error(gateway, routes) -> None:
    routes.add(
        "GET",
        "/rest/v1/tasks",
        lambda r: httpx.Response(401, json={"code": "PGRST301", "message": "JWT expired"}),
    )

    with pytest.raises(GatewayError) as info:
        await gateway.select("tasks")

    assert info.value.message == "JWT expired"
    assert info.value.status == 401
    assert info.value.code == "PGRST301"


@pytest.mark.asyncio
async def test_network_failure_becomes_gateway_error(secret_store) -> None:
    def boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with create_http_client(BASE_URL, ANON_KEY, transport=httpx.MockTransport(boom)) as client:
        gateway = PostgrestGateway(client, SupabaseAuth(client, secrets=secret_store))
        with pytest.raises(GatewayError, match="Network error"):
            await gateway.select("tasks")


# ---- GoTrue ----


@pytest.mark.asyncio
async def test_password_sign_in_stores_session_and_notifies(supa_auth, gateway, routes, secret_store) -> None:
    routes.add("POST", "/auth/v1/token", lambda r: httpx.Response(200, json=_session_json()))
    routes.add("GET", "/rest/v1/tasks", lambda r: httpx.Response(200, json=[]))
    events: list[tuple[str, str | None]] = []

    async def listener(event, session):
        events.append((event, session.user.id if session else None))

    supa_auth.on_auth_state_change(listener)

    session = await supa_auth.sign_in_with_password("alice@example.com", "pw")

    assert session.user.id == ALICE
    req = routes.last("POST", "/auth/v1/token")
    assert req.url.params["grant_type"] == "password"
    assert json.loads(req.content) == {"email": "alice@example.com", "password": "pw"}
    assert secret_store.get(REFRESH_TOKEN_KEY) == "refresh-1"
    assert events == [("SIGNED_IN", ALICE)]

    # The data gateway now authorizes as the user.
    await gateway.select("tasks")
    assert routes.last("GET", "/rest/v1/tasks").headers["authorization"] == "Bearer access-1"


@pytest.mark.asyncio
async def test_bad_credentials_raise_authentication_error(supa_auth, routes) -> None:
    routes.add(
        "POST",
        "/auth/v1/token",
        lambda r: httpx.Response(400, json={"error": "invalid_grant", "error_description": "Invalid login credentials"}),
    )

    with pytest.raises(AuthenticationError, match="Invalid login credentials"):
        await supa_auth.sign_in_with_password("alice@example.com", "nope")


@pytest.mark.asyncio
async def test_get_session_restores_from_stored_refresh_token(supa_auth, routes, secret_store) -> None:
    secret_store.set(REFRESH_TOKEN_KEY, "refresh-old")
    routes.add("POST", "/auth/v1/token", lambda r: httpx.Response(200, json=_session_json("access-2", "refresh-2")))

    session = await supa_auth.get_session()

    assert session is not None and session.access_token == "access-2"
    req = routes.last("POST", "/auth/v1/token")
    assert req.url.params["grant_type"] == "refresh_token"
    assert json.loads(req.content) == {"refresh_token": "refresh-old"}
    assert secret_store.get(REFRESH_TOKEN_KEY) == "refresh-2"


@pytest.mark.asyncio
async def test_rejected_refresh_token_is_forgotten(supa_auth, routes, secret_store) -> None:
    secret_store.set(REFRESH_TOKEN_KEY, "revoked")
    routes.add("POST", "/auth/v1/token", lambda r: httpx.Response(400, json={"msg": "Invalid Refresh Token"}))

    assert await supa_auth.get_session() is None
    assert secret_store.get(REFRESH_TOKEN_KEY) is None


@pytest.mark.asyncio
async def test_get_session_without_anything_stored_makes_no_request(supa_auth, routes) -> None:
    assert await supa_auth.get_session() is None
    assert routes.requests == []


@pytest.mark.asyncio
async def test_sign_up_pending_confirmation_returns_user_without_session(supa_auth, routes) -> None:
    routes.add("POST", "/auth/v1/signup", lambda r: httpx.Response(200, json={"id": "user-new", "email": "n@x.io"}))

    result = await supa_auth.sign_up("n@x.io", "pw")

    assert result.user.id == "user-new"
    assert result.session is None
    assert supa_auth.access_token is None


@pytest.mark.asyncio
async def test_sign_up_with_immediate_session(supa_auth, routes) -> None:
    routes.add("POST", "/auth/v1/signup", lambda r: httpx.Response(200, json=_session_json()))

    result = await supa_auth.sign_up("alice@example.com", "pw")

    assert result.session is not None
    assert supa_auth.access_token == "access-1"


@pytest.mark.asyncio
async def test_oauth_url_and_redirect_completion(supa_auth, routes) -> None:
    url = await supa_auth.sign_in_with_oauth("google", "mrlater://login")
    assert url == f"{BASE_URL}/auth/v1/authorize?provider=google&redirect_to=mrlater%3A%2F%2Flogin"

    routes.add("GET", "/auth/v1/user", lambda r: httpx.Response(200, json={"id": ALICE, "email": "a@x.io"}))
    session = await supa_auth.set_session_from_url(
        "mrlater://login#access_token=tok&refresh_token=ref&expires_in=3600&token_type=bearer"
    )

    assert session.user.id == ALICE
    assert session.refresh_token == "ref"
    assert routes.last("GET", "/auth/v1/user").headers["authorization"] == "Bearer tok"


@pytest.mark.asyncio
async def test_redirect_with_error_is_rejected(supa_auth) -> None:
    with pytest.raises(AuthenticationError, match="denied"):
        await supa_auth.set_session_from_url("mrlater://login#error=access_denied&error_description=denied")


@pytest.mark.asyncio
async def test_sign_out_clears_session_even_when_server_fails(supa_auth, routes, secret_store) -> None:
    routes.add("POST", "/auth/v1/token", lambda r: httpx.Response(200, json=_session_json()))
    routes.add("POST", "/auth/v1/logout", lambda r: httpx.Response(500, json={"msg": "boom"}))
    await supa_auth.sign_in_with_password("alice@example.com", "pw")

    with pytest.raises(AuthenticationError):
        await supa_auth.sign_out()

    assert supa_auth.access_token is None
    assert secret_store.get(REFRESH_TOKEN_KEY) is None


@pytest.mark.asyncio
async def test_sign_up_through_http_adapters_leaves_no_error(supa_auth, gateway, routes) -> None:
    profiles: list[dict] = []

    def read_profile(request: httpx.Request) -> httpx.Response:
        if not profiles:
            return httpx.Response(406, json={"code": "PGRST116", "message": "JSON object requested, multiple (or no) rows returned"})
        return httpx.Response(200, json=profiles[0])

    def create_profile(request: httpx.Request) -> httpx.Response:
        profiles.append(json.loads(request.content))
        return httpx.Response(201, json=profiles)

    routes.add("POST", "/auth/v1/signup", lambda r: httpx.Response(200, json=_session_json()))
    routes.add("GET", "/rest/v1/profiles", read_profile)
    routes.add("POST", "/rest/v1/profiles", create_profile)

    store = AuthStore(supa_auth, gateway, open_browser=lambda url: None)
    await store.initialize()
    await store.sign_up("alice@example.com", "pw", "Alice")

    assert store.user_id == ALICE
    assert store.profile is not None and store.profile.name == "Alice"
    assert store.error is None
