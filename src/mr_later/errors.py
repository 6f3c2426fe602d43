# src/mr_later/errors.py

"""
Exception hierarchy shared by stores and adapters.

- ValidationError: a required field or enum value was rejected before any remote call.
- GatewayError: the backend (data, identity, edge functions) reported a failure.
- AuthenticationError: identity-specific GatewayError (bad credentials, expired token, ...).
- SignUpIncompleteError: identity was created but its profile row was not.
"""

from __future__ import annotations


class MrLaterError(Exception):
    """Base class for all errors raised by this package."""


class ValidationError(MrLaterError):
    pass


class GatewayError(MrLaterError):
    def __init__(self, message: str, *, status: int | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code


class AuthenticationError(GatewayError):
    pass


class SignUpIncompleteError(GatewayError):
    """
    Partial failure of sign-up: the identity exists at the gateway, the profile does not.

    There is no rollback; user_id names the orphaned identity.
    """

    def __init__(self, message: str, *, user_id: str, status: int | None = None) -> None:
        super().__init__(message, status=status)
        self.user_id = user_id


def error_message(exc: BaseException) -> str:
    msg = getattr(exc, "message", None)
    if isinstance(msg, str) and msg.strip():
        return msg
    return str(exc).strip() or exc.__class__.__name__
