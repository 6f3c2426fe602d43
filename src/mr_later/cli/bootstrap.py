# src/mr_later/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete adapters (HTTP gateway, realtime feed, secret file) into AppState,
- closes network resources on shutdown.
"""

from __future__ import annotations

import contextlib
import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx

from ..auth.auth_store import AuthStore
from ..auth.secure_login import SecureLogin
from ..billing.payments import PaymentClient
from ..challenges.challenge_store import ChallengeStore
from ..config import get_settings
from ..core.secrets import FileSecretStore
from ..core.state import AppState
from ..gateway.realtime_feed import RealtimeChangeFeed
from ..gateway.supabase_rest import PostgrestGateway, SupabaseAuth, create_http_client
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.secrets_path.parent.mkdir(parents=True, exist_ok=True)


def _resolve_tz(name: str):
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r; falling back to UTC.", name)
        return ZoneInfo("UTC")


def create_initial_state(*, settings=None, transport: httpx.AsyncBaseTransport | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    http = create_http_client(
        settings.supabase_url,
        settings.supabase_anon_key,
        timeout_seconds=settings.http_timeout_seconds,
        transport=transport,
    )
    secrets = FileSecretStore(settings.secrets_path)
    identity = SupabaseAuth(http, secrets=secrets)
    gateway = PostgrestGateway(http, identity)
    feed = RealtimeChangeFeed(settings.supabase_url, settings.supabase_anon_key)
    tz = _resolve_tz(settings.timezone)

    auth = AuthStore(identity, gateway, redirect_url=settings.oauth_redirect_url)
    state = AppState(
        settings=settings,
        gateway=gateway,
        feed=feed,
        auth=auth,
        tasks=TaskStore(gateway, feed, tz=tz),
        challenges=ChallengeStore(gateway, feed),
        secure_login=SecureLogin(secrets, auth),
        payments=PaymentClient(http, access_token=lambda: identity.access_token),
        tz=tz,
        http=http,
    )
    state.wire()
    return state


async def shutdown_state(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        await state.close_subscriptions()
    except Exception:
        logger.exception("Failed to close subscriptions.")

    close_feed = getattr(state.feed, "close", None)
    if close_feed is not None:
        try:
            await close_feed()
        except Exception:
            logger.debug("Realtime close failed.", exc_info=True)

    if state.http is not None:
        with contextlib.suppress(Exception):
            await state.http.aclose()
