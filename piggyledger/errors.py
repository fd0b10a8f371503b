"""Mini README: Error taxonomy shared by the ledger server and its clients.

Structure:
    * ErrorKind - enum naming the four failure categories.
    * LedgerError - base exception carrying its ``kind``.
    * InvalidArgument / Unreachable / MalformedResponse / TransportFailure.

None of these are retried automatically. The sync client converts every one
of them into a status message; the web layer maps ``InvalidArgument`` to an
HTTP 400 response.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Enumerate failure categories surfaced to callers."""

    INVALID_ARGUMENT = "invalid_argument"
    UNREACHABLE = "unreachable"
    MALFORMED_RESPONSE = "malformed_response"
    TRANSPORT_FAILURE = "transport_failure"


class LedgerError(Exception):
    """Base class for ledger failures."""

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidArgument(LedgerError, ValueError):
    """Missing or malformed device identifier or amount."""

    kind = ErrorKind.INVALID_ARGUMENT


class Unreachable(LedgerError):
    """The connectivity signal reports offline; nothing was sent."""

    kind = ErrorKind.UNREACHABLE


class MalformedResponse(LedgerError):
    """A response arrived but lacked the expected numeric field."""

    kind = ErrorKind.MALFORMED_RESPONSE


class TransportFailure(LedgerError):
    """The request failed at the network or HTTP layer."""

    kind = ErrorKind.TRANSPORT_FAILURE

    def __init__(self, message: str, status_code: int = 0) -> None:
        super().__init__(message)
        self.status_code = status_code
