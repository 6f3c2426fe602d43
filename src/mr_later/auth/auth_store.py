# src/mr_later/auth/auth_store.py

"""
Auth store: the single source of truth for "who is signed in".

The identity provider pushes asynchronous session changes (token refresh,
OAuth/OTP completion, remote sign-out) through the listener installed by
initialize(); interactive sign-in paths also set the session directly.

Failure policy:
- every operation records the last error message in `error`
- sign_in / sign_up / reset_password also re-raise for inline feedback
- sign_out clears local identity even when remote invalidation fails
"""

from __future__ import annotations

import logging
import webbrowser
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any

from ..core.ports import DataGateway, Filter, IdentityProvider
from ..errors import SignUpIncompleteError, ValidationError, error_message
from .auth_models import PROFILE_EDITABLE_FIELDS, PROFILES_TABLE, Profile, Session, User

logger = logging.getLogger(__name__)

IdentityListener = Callable[[str | None], Awaitable[None]]
BrowserOpener = Callable[[str], Any]


class AuthStore:
    def __init__(
            self,
            identity: IdentityProvider,
            gateway: DataGateway,
            *,
            redirect_url: str = "mrlater://login",
            open_browser: BrowserOpener = webbrowser.open,
    ) -> None:
        self._identity = identity
        self._gateway = gateway
        self._redirect_url = redirect_url
        self._open_browser = open_browser

        self._listener_installed = False
        self._identity_listeners: list[IdentityListener] = []

        self.session: Session | None = None
        self.user: User | None = None
        self.profile: Profile | None = None
        self.is_loading = False
        self.error: str | None = None

    @property
    def user_id(self) -> str | None:
        return self.user.id if self.user else None

    def _record(self, exc: BaseException, op: str) -> None:
        self.error = error_message(exc)
        logger.warning("AuthStore.%s failed: %s", op, self.error)

    # ---- identity change fan-out ----

    def add_identity_listener(self, listener: IdentityListener) -> None:
        """Register an async callback fired with the new user id (None on sign-out)."""
        self._identity_listeners.append(listener)

    async def _set_identity(self, session: Session | None, user: User | None) -> None:
        before = self.user_id
        self.session = session
        self.user = user
        if user is None or (self.profile is not None and self.profile.id != user.id):
            self.profile = None

        after = self.user_id
        if before == after:
            return

        logger.info("Identity changed: %s -> %s", before, after)
        for listener in list(self._identity_listeners):
            try:
                await listener(after)
            except Exception:
                logger.exception("Identity listener failed")

    async def _adopt_session(self, session: Session) -> None:
        """
        Take a session returned by a direct sign-in call.

        The provider usually emits the same session to the listener first, which
        already loaded the profile; it is fetched here only when still missing.
        """
        await self._set_identity(session, session.user)
        profile = self.profile
        if profile is None or profile.id != session.user.id:
            await self.fetch_profile()

    async def _on_auth_state_change(self, event: str, session: Session | None) -> None:
        logger.debug("Auth state change: %s", event)
        if session is not None:
            await self._set_identity(session, session.user)
            await self.fetch_profile()
        else:
            await self._set_identity(None, None)

    # ---- lifecycle ----

    async def initialize(self) -> None:
        """
        Restore a persisted session (if any) and install the session-change listener.

        Safe to call more than once: the listener is installed only the first time.
        """
        try:
            self.is_loading = True
            self.error = None

            session = await self._identity.get_session()
            if session is not None:
                await self._adopt_session(session)

            if not self._listener_installed:
                self._identity.on_auth_state_change(self._on_auth_state_change)
                self._listener_installed = True
        except Exception as e:
            self._record(e, "initialize")
        finally:
            self.is_loading = False

    # ---- sign in / up / out ----

    async def sign_in(self, email: str, password: str) -> None:
        try:
            self.is_loading = True
            self.error = None

            session = await self._identity.sign_in_with_password(email, password)
            await self._adopt_session(session)
        except Exception as e:
            self._record(e, "sign_in")
            raise
        finally:
            self.is_loading = False

    async def sign_in_with_google(self) -> None:
        """
        Start the browser-based OAuth exchange and return immediately.

        The session shows up later through the auth-state listener.
        """
        try:
            self.is_loading = True
            self.error = None

            url = await self._identity.sign_in_with_oauth("google", self._redirect_url)
            if url:
                self._open_browser(url)
        except Exception as e:
            self._record(e, "sign_in_with_google")
            raise
        finally:
            self.is_loading = False

    async def complete_oauth(self, redirect_url: str) -> None:
        """Hand the OAuth redirect (with its token fragment) back to the identity provider."""
        try:
            self.error = None
            await self._identity.set_session_from_url(redirect_url)
        except Exception as e:
            self._record(e, "complete_oauth")
            raise

    async def sign_in_with_otp(self, email: str) -> None:
        try:
            self.is_loading = True
            self.error = None
            await self._identity.sign_in_with_otp(email, self._redirect_url)
        except Exception as e:
            self._record(e, "sign_in_with_otp")
            raise
        finally:
            self.is_loading = False

    async def verify_otp(self, email: str, token: str) -> None:
        try:
            self.is_loading = True
            self.error = None

            session = await self._identity.verify_otp(email, token)
            await self._adopt_session(session)
        except Exception as e:
            self._record(e, "verify_otp")
            raise
        finally:
            self.is_loading = False

    async def sign_up(self, email: str, password: str, name: str) -> None:
        """
        Create the identity, then its profile row.

        If the profile insert fails the identity already exists at the gateway;
        SignUpIncompleteError reports it and nothing is rolled back.
        """
        try:
            self.is_loading = True
            self.error = None

            result = await self._identity.sign_up(email, password)
            try:
                await self._gateway.insert(
                    PROFILES_TABLE,
                    {"id": result.user.id, "name": name, "email": email, "avatar_url": None},
                )
            except Exception as e:
                raise SignUpIncompleteError(
                    error_message(e),
                    user_id=result.user.id,
                    status=getattr(e, "status", None),
                ) from e

            # A listener-driven profile load may have run before the row existed.
            self.error = None
            if result.session is not None:
                await self._adopt_session(result.session)
            else:
                logger.info("Sign-up for %s awaits email confirmation", email)
        except Exception as e:
            self._record(e, "sign_up")
            raise
        finally:
            self.is_loading = False

    async def sign_out(self) -> None:
        try:
            self.is_loading = True
            self.error = None
            await self._identity.sign_out()
        except Exception as e:
            # Fails open: a remote session may outlive the local one.
            self._record(e, "sign_out")
        finally:
            await self._set_identity(None, None)
            self.is_loading = False

    async def reset_password(self, email: str) -> None:
        try:
            self.is_loading = True
            self.error = None
            await self._identity.reset_password_for_email(email, self._redirect_url)
        except Exception as e:
            self._record(e, "reset_password")
            raise
        finally:
            self.is_loading = False

    # ---- profile ----

    async def fetch_profile(self) -> None:
        user = self.user
        if user is None:
            return

        try:
            row = await self._gateway.select_one(PROFILES_TABLE, filters=[Filter.eq("id", user.id)])
            self.profile = Profile.from_row(row)
        except Exception as e:
            self._record(e, "fetch_profile")

    async def update_profile(self, changes: dict[str, Any]) -> bool:
        """
        Partially update the profile and merge the changes locally (no refetch).

        Returns False without a signed-in user or a loaded profile.
        """
        user, profile = self.user, self.profile
        if user is None or profile is None:
            return False

        try:
            self.is_loading = True
            self.error = None

            unknown = set(changes) - PROFILE_EDITABLE_FIELDS
            if unknown:
                raise ValidationError(f"Unknown profile fields: {', '.join(sorted(unknown))}")

            await self._gateway.update(PROFILES_TABLE, user.id, dict(changes))
            self.profile = replace(profile, **changes)
            return True
        except Exception as e:
            self._record(e, "update_profile")
            return False
        finally:
            self.is_loading = False
