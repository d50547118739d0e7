"""Error taxonomy shared by every access-control service.

Services either return a result object carrying an :class:`ErrorKind`
(authentication, share validation) or raise :class:`PortalError`. The HTTP
layer turns both into responses through :data:`HTTP_STATUS` and
:func:`public_message`; nothing else leaks out of the services.
"""
from __future__ import annotations

import enum

from fastapi import status


class ErrorKind(str, enum.Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_EXPIRED = "account_expired"
    RATE_LIMITED = "rate_limited"
    CODE_EXHAUSTED = "code_exhausted"
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    DEACTIVATED = "deactivated"
    ALREADY_EXPIRED = "already_expired"
    DOWNLOAD_LIMIT_REACHED = "download_limit_reached"
    PASSWORD_REQUIRED = "password_required"
    INVALID_PASSWORD = "invalid_password"
    QUOTA_EXCEEDED = "quota_exceeded"
    STORAGE_FAILURE = "storage_failure"


# Kinds reported to clients as a plain login failure, so lockouts and expired
# accounts look the same as a wrong password.
AUTH_FAILURE_KINDS = frozenset(
    {
        ErrorKind.INVALID_CREDENTIALS,
        ErrorKind.ACCOUNT_EXPIRED,
        ErrorKind.RATE_LIMITED,
        ErrorKind.CODE_EXHAUSTED,
    }
)

GENERIC_LOGIN_MESSAGE = "Invalid username or password."
GENERIC_CODE_MESSAGE = "Invalid access code."

_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.INVALID_CREDENTIALS: GENERIC_LOGIN_MESSAGE,
    ErrorKind.ACCOUNT_EXPIRED: GENERIC_LOGIN_MESSAGE,
    ErrorKind.RATE_LIMITED: GENERIC_LOGIN_MESSAGE,
    ErrorKind.CODE_EXHAUSTED: GENERIC_CODE_MESSAGE,
    ErrorKind.PERMISSION_DENIED: "Permission denied.",
    ErrorKind.NOT_FOUND: "Not found.",
    ErrorKind.DEACTIVATED: "This share link has been deactivated.",
    ErrorKind.ALREADY_EXPIRED: "This share link has expired.",
    ErrorKind.DOWNLOAD_LIMIT_REACHED: "This share link has reached its download limit.",
    ErrorKind.PASSWORD_REQUIRED: "password_required",
    ErrorKind.INVALID_PASSWORD: "Invalid password.",
    ErrorKind.QUOTA_EXCEEDED: "Upload would exceed your quota limit.",
    ErrorKind.STORAGE_FAILURE: "Storage failure.",
}

HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.ACCOUNT_EXPIRED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.RATE_LIMITED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.CODE_EXHAUSTED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.DEACTIVATED: status.HTTP_410_GONE,
    ErrorKind.ALREADY_EXPIRED: status.HTTP_410_GONE,
    ErrorKind.DOWNLOAD_LIMIT_REACHED: status.HTTP_410_GONE,
    ErrorKind.PASSWORD_REQUIRED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.INVALID_PASSWORD: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.QUOTA_EXCEEDED: status.HTTP_403_FORBIDDEN,
    ErrorKind.STORAGE_FAILURE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def public_message(kind: ErrorKind) -> str:
    return _MESSAGES[kind]


class PortalError(Exception):
    """A failure with a known :class:`ErrorKind`.

    ``message`` overrides the public message for kinds that are not secret
    (e.g. "File not found."). Authentication kinds always use the generic text.
    """

    def __init__(self, kind: ErrorKind, message: str | None = None) -> None:
        if kind in AUTH_FAILURE_KINDS:
            message = None
        self.kind = kind
        self.message = message or public_message(kind)
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return HTTP_STATUS[self.kind]
