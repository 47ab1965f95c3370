"""Error taxonomy for the settings store.

Every failure raised by the store is a :class:`StoreError` subclass. Errors
cross the client/server boundary as ``{"kind": ..., "message": ...}``
payloads and are rebuilt into the same class on the client side.
"""

from __future__ import annotations

from typing import Optional


class StoreError(Exception):
    """Base class for all settings store failures."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_payload(self) -> dict:
        """Serialize for transport across the process boundary."""
        message = str(self)
        if self.cause is not None and str(self.cause) not in message:
            message = f"{message}: {self.cause}"
        return {"kind": self.kind, "message": message}


class InvalidArgument(StoreError):
    """Raised when a required argument is missing or malformed."""


class InvalidKey(StoreError):
    """Raised when the encryption key contains characters outside [0-9A-Za-z]."""


class AlreadyInitialized(StoreError):
    """Raised when initialize() is called while a handle is open."""


class NotInitialized(StoreError):
    """Raised when an operation needs a handle and none is open."""


class QueryCompilationError(StoreError):
    """Raised when a query cannot be compiled against the open handle."""


class StorageOpenError(StoreError):
    """Raised when opening, keying or migrating the database fails."""


class StorageError(StoreError):
    """Raised when the driver or filesystem fails outside of open."""


class NoFilePathKnown(StoreError):
    """Raised by remove_db() when initialize() never ran."""


class UnknownOperation(StoreError):
    """Raised when a forwarded call names an operation the server does not expose."""


class ShutdownInProgress(StoreError):
    """Raised when a call is issued after shutdown has started."""


class RemoteError(StoreError):
    """Raised when the remote side failed in a way it could not classify."""


_ERROR_TYPES: dict[str, type[StoreError]] = {
    cls.__name__: cls
    for cls in (
        InvalidArgument,
        InvalidKey,
        AlreadyInitialized,
        NotInitialized,
        QueryCompilationError,
        StorageOpenError,
        StorageError,
        NoFilePathKnown,
        UnknownOperation,
        ShutdownInProgress,
        RemoteError,
    )
}


def error_from_payload(payload: dict) -> StoreError:
    """Rebuild a StoreError from its transport payload.

    Unknown kinds come back as :class:`RemoteError` so the caller still gets
    a StoreError with the original message.
    """
    kind = payload.get("kind", "")
    message = payload.get("message") or kind or "Unknown remote failure"
    error_type = _ERROR_TYPES.get(kind, RemoteError)
    return error_type(message)
