# src/mr_later/auth/secure_login.py

from __future__ import annotations

import json
import logging
from enum import StrEnum

from ..core.ports import SecretStore, UnlockPrompt
from ..errors import ValidationError
from .auth_store import AuthStore

logger = logging.getLogger(__name__)

CREDENTIAL_KEY = "credential"
ONBOARDING_KEY = "onboarding_seen"
PREFERRED_METHOD_KEY = "preferred_login_method"


class LoginMethod(StrEnum):
    PASSWORD = "password"
    BIOMETRIC = "biometric"
    GOOGLE = "google"
    OTP = "otp"


class UnlockResult(StrEnum):
    SIGNED_IN = "signed_in"
    NO_CREDENTIALS = "no_credentials"
    CANCELLED = "cancelled"


class SecureLogin:
    """
    Device-local conveniences around sign-in.

    - a cached email/password pair, released only after the unlock prompt succeeds
    - the onboarding-seen flag
    - the preferred secure-login method
    """

    def __init__(self, secrets: SecretStore, auth: AuthStore) -> None:
        self._secrets = secrets
        self._auth = auth

    # ---- cached credential ----

    def remember_credentials(self, email: str, password: str) -> None:
        self._secrets.set(CREDENTIAL_KEY, json.dumps({"email": email, "password": password}))

    def has_credentials(self) -> bool:
        return self._load_credentials() is not None

    def forget(self) -> None:
        self._secrets.delete(CREDENTIAL_KEY)

    def _load_credentials(self) -> tuple[str, str] | None:
        raw = self._secrets.get(CREDENTIAL_KEY)
        if not raw:
            return None
        try:
            data = json.loads(raw)
            email, password = data["email"], data["password"]
        except (ValueError, KeyError, TypeError):
            logger.warning("Cached credential is unreadable; ignoring it.")
            return None
        if not email or not password:
            return None
        return str(email), str(password)

    async def unlock(self, prompt: UnlockPrompt) -> UnlockResult:
        """
        Sign in with the cached credential after a device check.

        Sign-in errors propagate (the AuthStore has already recorded them).
        """
        creds = self._load_credentials()
        if creds is None:
            return UnlockResult.NO_CREDENTIALS

        if not await prompt.confirm("Unlock Mr. Later"):
            return UnlockResult.CANCELLED

        email, password = creds
        await self._auth.sign_in(email, password)
        return UnlockResult.SIGNED_IN

    # ---- flags ----

    @property
    def onboarding_seen(self) -> bool:
        return self._secrets.get(ONBOARDING_KEY) == "true"

    def mark_onboarding_seen(self) -> None:
        self._secrets.set(ONBOARDING_KEY, "true")

    @property
    def preferred_method(self) -> LoginMethod | None:
        raw = self._secrets.get(PREFERRED_METHOD_KEY)
        try:
            return LoginMethod(raw) if raw else None
        except ValueError:
            return None

    def set_preferred_method(self, method: str) -> None:
        try:
            value = LoginMethod(method)
        except ValueError as e:
            raise ValidationError(f"Unknown login method: {method!r}") from e
        self._secrets.set(PREFERRED_METHOD_KEY, value.value)
