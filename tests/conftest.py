# tests/conftest.py

from __future__ import annotations

from datetime import UTC
from pathlib import Path
from types import SimpleNamespace

import pytest

from mr_later.auth.auth_store import AuthStore
from mr_later.auth.secure_login import SecureLogin
from mr_later.challenges.challenge_store import ChallengeStore
from mr_later.core.state import AppState
from mr_later.tasks.task_store import TaskStore

from .fakes import FakeBackend, FakeIdentity, MemorySecretStore

ALICE = "user-alice"
BOB = "user-bob"


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the CLI commands.

    A SimpleNamespace keeps tests independent from the environment and .env files.
    """
    return SimpleNamespace(
        app_name="Mr. Later",
        data_dir=tmp_path,
        timezone="UTC",
        leaderboard_limit=50,
        oauth_redirect_url="mrlater://login",
    )


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def identity() -> FakeIdentity:
    return FakeIdentity()


@pytest.fixture()
def secrets() -> MemorySecretStore:
    return MemorySecretStore()


@pytest.fixture()
def opened_urls() -> list[str]:
    return []


@pytest.fixture()
def task_store(backend: FakeBackend) -> TaskStore:
    return TaskStore(backend, backend)


@pytest.fixture()
def challenge_store(backend: FakeBackend) -> ChallengeStore:
    return ChallengeStore(backend, backend)


@pytest.fixture()
def auth_store(identity: FakeIdentity, backend: FakeBackend, opened_urls: list[str]) -> AuthStore:
    return AuthStore(identity, backend, open_browser=opened_urls.append)


@pytest.fixture()
def state(
        settings: SimpleNamespace,
        backend: FakeBackend,
        auth_store: AuthStore,
        task_store: TaskStore,
        challenge_store: ChallengeStore,
        secrets: MemorySecretStore,
) -> AppState:
    """
    AppState wired with in-memory fakes.

    The stores are the real ones; only the backend and identity provider are faked.
    """
    app = AppState(
        settings=settings,
        gateway=backend,
        feed=backend,
        auth=auth_store,
        tasks=task_store,
        challenges=challenge_store,
        secure_login=SecureLogin(secrets, auth_store),
        payments=None,
        tz=UTC,
    )
    app.wire()
    return app
