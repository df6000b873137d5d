"""Error taxonomy shared by the fetcher, the publish pipeline and the webhook gatekeeper.

Every error carries a kind, a human-readable message, optional structured
context and the HTTP status code a webhook caller should see for it.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    REMOTE_UNAVAILABLE = "remote_unavailable"
    REMOTE_NOT_FOUND = "remote_not_found"
    REMOTE_UNAUTHORIZED = "remote_unauthorized"
    VALIDATION_FAILED = "validation_failed"
    AUTHENTICATION_FAILED = "authentication_failed"
    NOT_CONFIGURED = "not_configured"
    STORE_OPERATION_FAILED = "store_operation_failed"
    UNSUPPORTED_EVENT = "unsupported_event"


class SyncError(Exception):
    """Base class for all tagged errors."""

    kind: ErrorKind
    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
        **context: Any,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.kind.value
        if status_code is not None:
            self.status_code = status_code
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "status": self.status_code,
            **({"context": self.context} if self.context else {}),
        }


class RemoteUnavailable(SyncError):
    """Transport or network failure talking to the remote repository host."""

    kind = ErrorKind.REMOTE_UNAVAILABLE
    status_code = 503


class RemoteNotFound(SyncError):
    """The remote API reports no tree (or no file) for the given reference."""

    kind = ErrorKind.REMOTE_NOT_FOUND
    status_code = 502


class RemoteUnauthorized(SyncError):
    """The remote API rejected our credentials."""

    kind = ErrorKind.REMOTE_UNAUTHORIZED
    status_code = 502


class ValidationFailed(SyncError):
    kind = ErrorKind.VALIDATION_FAILED
    status_code = 400


class AuthenticationFailed(SyncError):
    kind = ErrorKind.AUTHENTICATION_FAILED
    status_code = 401


class NotConfigured(SyncError):
    kind = ErrorKind.NOT_CONFIGURED
    status_code = 422


class StoreOperationFailed(SyncError):
    kind = ErrorKind.STORE_OPERATION_FAILED
    status_code = 500


class TaxonomyUnknown(StoreOperationFailed):
    """The content store does not recognize a taxonomy name. Degrades to a skip, never a failure."""


class UnsupportedEvent(SyncError):
    kind = ErrorKind.UNSUPPORTED_EVENT
    status_code = 501
