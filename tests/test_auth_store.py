# tests/test_auth_store.py

from __future__ import annotations

import pytest

from mr_later.auth.auth_models import PROFILES_TABLE
from mr_later.errors import AuthenticationError, GatewayError, SignUpIncompleteError

from .conftest import ALICE


@pytest.fixture()
def alice(identity, backend):
    user = identity.register("alice@example.com", "s3cret", user_id=ALICE)
    backend.seed(PROFILES_TABLE, {"id": ALICE, "name": "Alice", "email": "alice@example.com", "plan": "pro"})
    return user


@pytest.mark.asyncio
async def test_sign_in_loads_profile_for_same_user(auth_store, alice) -> None:
    await auth_store.sign_in("alice@example.com", "s3cret")

    assert auth_store.user_id == ALICE
    assert auth_store.session is not None
    assert auth_store.profile is not None
    assert auth_store.profile.id == ALICE
    assert auth_store.profile.plan == "pro"
    assert auth_store.error is None
    assert auth_store.is_loading is False


@pytest.mark.asyncio
async def test_sign_in_bad_password_records_and_raises(auth_store, alice) -> None:
    with pytest.raises(AuthenticationError):
        await auth_store.sign_in("alice@example.com", "wrong")

    assert auth_store.error == "Invalid login credentials"
    assert auth_store.user is None
    assert auth_store.is_loading is False


@pytest.mark.asyncio
async def test_missing_profile_keeps_user_signed_in(auth_store, identity) -> None:
    identity.register("nop@example.com", "pw", user_id="user-noprofile")

    await auth_store.sign_in("nop@example.com", "pw")

    assert auth_store.user_id == "user-noprofile"
    assert auth_store.profile is None
    assert auth_store.error


@pytest.mark.asyncio
async def test_sign_up_creates_identity_and_profile(auth_store, backend) -> None:
    await auth_store.sign_up("new@example.com", "pw", "Newbie")

    uid = auth_store.user_id
    assert uid is not None
    rows = [r for r in backend.tables[PROFILES_TABLE] if r["id"] == uid]
    assert rows and rows[0]["name"] == "Newbie"
    assert rows[0]["avatar_url"] is None
    assert auth_store.profile.name == "Newbie"


@pytest.mark.asyncio
async def test_sign_up_profile_failure_reports_orphaned_identity(auth_store, identity, backend) -> None:
    backend.fail_next("insert", PROFILES_TABLE, GatewayError("duplicate key", status=409))

    with pytest.raises(SignUpIncompleteError) as info:
        await auth_store.sign_up("new@example.com", "pw", "Newbie")

    created = identity.accounts["new@example.com"][1]
    assert info.value.user_id == created.id
    assert info.value.status == 409
    assert auth_store.error == "duplicate key"
    # Identity is not rolled back.
    assert "new@example.com" in identity.accounts


@pytest.mark.asyncio
async def test_sign_out_fails_open(auth_store, identity, alice) -> None:
    await auth_store.sign_in("alice@example.com", "s3cret")
    identity.sign_out_error = GatewayError("network down")

    await auth_store.sign_out()

    assert auth_store.user is None
    assert auth_store.session is None
    assert auth_store.profile is None
    assert auth_store.error == "network down"


@pytest.mark.asyncio
async def test_initialize_restores_session_and_installs_listener_once(auth_store, identity, alice) -> None:
    identity.session = identity.session_for(alice)

    await auth_store.initialize()
    await auth_store.initialize()

    assert auth_store.user_id == ALICE
    assert auth_store.profile.name == "Alice"
    assert len(identity.listeners) == 1


@pytest.mark.asyncio
async def test_pushed_session_changes_update_identity(auth_store, identity, alice) -> None:
    await auth_store.initialize()
    assert auth_store.user is None

    await identity.emit("SIGNED_IN", identity.session_for(alice))
    assert auth_store.user_id == ALICE
    assert auth_store.profile is not None

    await identity.emit("SIGNED_OUT", None)
    assert auth_store.user is None
    assert auth_store.profile is None


@pytest.mark.asyncio
async def test_identity_listeners_fire_only_on_change(auth_store, identity, alice) -> None:
    seen: list[str | None] = []

    async def listener(user_id):
        seen.append(user_id)

    auth_store.add_identity_listener(listener)
    await auth_store.initialize()

    await identity.emit("SIGNED_IN", identity.session_for(alice))
    await identity.emit("TOKEN_REFRESHED", identity.session_for(alice))
    await auth_store.sign_out()

    assert seen == [ALICE, None]


@pytest.mark.asyncio
async def test_google_sign_in_opens_browser_and_completes_via_redirect(
        auth_store, identity, opened_urls, alice
) -> None:
    await auth_store.initialize()

    await auth_store.sign_in_with_google()

    assert len(opened_urls) == 1
    assert "provider=google" in opened_urls[0]
    assert auth_store.user is None

    identity.oauth_session = identity.session_for(alice)
    await auth_store.complete_oauth("mrlater://login#access_token=abc")
    assert auth_store.user_id == ALICE


@pytest.mark.asyncio
async def test_otp_flow(auth_store, identity, alice) -> None:
    await auth_store.sign_in_with_otp("alice@example.com")
    assert auth_store.user is None

    with pytest.raises(AuthenticationError):
        await auth_store.verify_otp("alice@example.com", "000000")

    await auth_store.verify_otp("alice@example.com", "123456")
    assert auth_store.user_id == ALICE


@pytest.mark.asyncio
async def test_reset_password_records_and_raises(auth_store, identity) -> None:
    await auth_store.reset_password("alice@example.com")
    assert auth_store.error is None

    with pytest.raises(AuthenticationError):
        await auth_store.reset_password("not-an-email")
    assert "invalid format" in auth_store.error


@pytest.mark.asyncio
async def test_update_profile_merges_locally(auth_store, backend, alice) -> None:
    await auth_store.sign_in("alice@example.com", "s3cret")

    assert await auth_store.update_profile({"name": "Alice B."}) is True

    assert auth_store.profile.name == "Alice B."
    assert auth_store.profile.plan == "pro"
    assert backend.tables[PROFILES_TABLE][0]["name"] == "Alice B."


@pytest.mark.asyncio
async def test_update_profile_rejects_server_owned_fields(auth_store, backend, alice) -> None:
    await auth_store.sign_in("alice@example.com", "s3cret")

    assert await auth_store.update_profile({"plan": "pro"}) is False
    assert "plan" in auth_store.error
    assert ("update", PROFILES_TABLE) not in backend.calls


@pytest.mark.asyncio
async def test_update_profile_without_user_is_false(auth_store, backend) -> None:
    assert await auth_store.update_profile({"name": "x"}) is False
    assert backend.calls == []


@pytest.mark.asyncio
async def test_sign_up_with_listener_installed_ends_without_error(auth_store, identity, backend) -> None:
    await auth_store.initialize()

    # The provider announces the session before the profile row exists.
    await auth_store.sign_up("new@example.com", "pw", "Newbie")

    assert auth_store.error is None
    assert auth_store.profile is not None
    assert auth_store.profile.name == "Newbie"
    assert auth_store.profile.id == auth_store.user_id


@pytest.mark.asyncio
async def test_sign_in_with_listener_installed_loads_profile_once(auth_store, backend, alice) -> None:
    await auth_store.initialize()

    await auth_store.sign_in("alice@example.com", "s3cret")

    assert auth_store.profile.id == ALICE
    assert backend.calls.count(("select_one", PROFILES_TABLE)) == 1


@pytest.mark.asyncio
async def test_switching_identity_drops_previous_profile(auth_store, identity, alice) -> None:
    await auth_store.initialize()
    await auth_store.sign_in("alice@example.com", "s3cret")
    assert auth_store.profile.id == ALICE

    stranger = identity.register("eve@example.com", "pw", user_id="user-eve")
    await identity.emit("SIGNED_IN", identity.session_for(stranger))

    assert auth_store.user_id == "user-eve"
    # No profile row for eve: nothing from alice may linger.
    assert auth_store.profile is None
