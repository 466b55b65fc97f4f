"""Typed error taxonomy shared by every mailroom component.

Transport failures from the IMAP and SMTP clients are never surfaced
raw; :func:`classify_transport_error` folds them into one of the kinds
below so callers can pick a response without parsing error strings.
"""

from __future__ import annotations

import imaplib
from enum import Enum
from typing import Any

import aiosmtplib


class ErrorKind(str, Enum):
    UNAUTHORIZED = "Unauthorized"
    INVALID_INPUT = "InvalidInput"
    FOLDER_NOT_FOUND = "FolderNotFound"
    DRAFT_NOT_FOUND = "DraftNotFound"
    CONNECTION_LOST = "ConnectionLost"
    TIMEOUT = "Timeout"
    RECONCILIATION_PARTIAL_FAILURE = "ReconciliationPartialFailure"
    UPSTREAM_FAILURE = "UpstreamFailure"


class MailroomError(Exception):
    """Base class for all per-operation failures."""

    kind: ErrorKind = ErrorKind.UPSTREAM_FAILURE
    http_status: int = 500
    user_message: str = "Mail operation failed"

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.user_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details,
        }


class Unauthorized(MailroomError):
    kind = ErrorKind.UNAUTHORIZED
    http_status = 403
    user_message = "Unauthorized sender."


class InvalidInput(MailroomError):
    kind = ErrorKind.INVALID_INPUT
    http_status = 400
    user_message = "Missing required field."


class FolderNotFound(MailroomError):
    kind = ErrorKind.FOLDER_NOT_FOUND
    http_status = 404
    user_message = "Folder not found."


class DraftNotFound(MailroomError):
    kind = ErrorKind.DRAFT_NOT_FOUND
    http_status = 404
    user_message = "Draft not found."


class ConnectionLost(MailroomError):
    kind = ErrorKind.CONNECTION_LOST
    http_status = 503
    user_message = "Connection to the mail server was lost."


class Timeout(MailroomError):
    kind = ErrorKind.TIMEOUT
    http_status = 504
    user_message = "Mail server did not respond in time."


class ReconciliationPartialFailure(MailroomError):
    """The old draft was expunged but its replacement was not submitted."""

    kind = ErrorKind.RECONCILIATION_PARTIAL_FAILURE
    http_status = 500
    user_message = "Draft was removed but could not be recreated."


class UpstreamFailure(MailroomError):
    kind = ErrorKind.UPSTREAM_FAILURE
    http_status = 502
    user_message = "Mail server rejected the request."


# Order matters: IMAP4.abort subclasses IMAP4.error, and the aiosmtplib
# connection errors subclass SMTPException.
_CONNECTION_ERRORS: tuple[type[BaseException], ...] = (
    imaplib.IMAP4.abort,
    aiosmtplib.SMTPServerDisconnected,
    aiosmtplib.SMTPConnectError,
    EOFError,
    ConnectionError,
    OSError,
)

TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (
    TimeoutError,
    *_CONNECTION_ERRORS,
    imaplib.IMAP4.error,
    aiosmtplib.SMTPException,
)


def classify_transport_error(exc: BaseException) -> MailroomError:
    """Map a raw transport exception onto the typed taxonomy."""
    if isinstance(exc, MailroomError):
        return exc
    detail = {"error": str(exc) or type(exc).__name__}
    if isinstance(exc, TimeoutError):
        return Timeout(details=detail)
    if isinstance(exc, aiosmtplib.SMTPTimeoutError):
        return Timeout(details=detail)
    if isinstance(exc, _CONNECTION_ERRORS):
        return ConnectionLost(details=detail)
    return UpstreamFailure(details=detail)


def is_connection_failure(error: MailroomError) -> bool:
    """True for the kinds that invalidate a live session."""
    return error.kind in (ErrorKind.CONNECTION_LOST, ErrorKind.TIMEOUT)
