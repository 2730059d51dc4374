from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class AuthErrorKind(str, Enum):
    CONNECTION_FAILED = "connection_failed"
    INVALID_CREDENTIALS = "invalid_credentials"
    USER_NOT_FOUND = "user_not_found"
    ADMIN_CHECK_FAILED = "admin_check_failed"
    PROVISIONING_DISABLED = "provisioning_disabled"
    NOT_SUPPORTED = "not_supported"
    MISCONFIGURED = "misconfigured"


_INVALID_LOGIN = "Invalid username or password."

# What an end user gets to see. Details go to the operator log only.
USER_MESSAGES: dict[AuthErrorKind, str] = {
    AuthErrorKind.CONNECTION_FAILED: "The directory server is unavailable. Try again later.",
    AuthErrorKind.INVALID_CREDENTIALS: _INVALID_LOGIN,
    AuthErrorKind.USER_NOT_FOUND: _INVALID_LOGIN,
    AuthErrorKind.ADMIN_CHECK_FAILED: "Login could not be completed.",
    AuthErrorKind.PROVISIONING_DISABLED: "No local account exists for this user.",
    AuthErrorKind.NOT_SUPPORTED: "This operation is not supported.",
    AuthErrorKind.MISCONFIGURED: "Directory authentication is not configured correctly.",
}


class AuthError(Exception):
    """Failure of a directory operation, classified by ``kind``.

    ``detail`` is operator-facing and may name DNs or filters; it must never
    contain a password.
    """

    def __init__(self, kind: AuthErrorKind, detail: str = "") -> None:
        super().__init__(detail or kind.value)
        self.kind = kind
        self.detail = detail

    @property
    def user_message(self) -> str:
        return USER_MESSAGES[self.kind]


@dataclass
class AuthResult:
    """Outcome of a provider operation."""

    success: bool
    username: str | None = None
    is_admin: bool = False
    error: AuthErrorKind | None = None
    payload: Any = None

    @property
    def message(self) -> str:
        if self.error is None:
            return ""
        return USER_MESSAGES[self.error]

    @classmethod
    def failed(cls, kind: AuthErrorKind) -> "AuthResult":
        return cls(success=False, error=kind)
