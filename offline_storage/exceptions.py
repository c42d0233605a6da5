"""
Custom exceptions for offline storage.

All components raise these exceptions so callers can handle
codec, persistence and sync failures consistently.
"""

from __future__ import annotations

from typing import Any


class OfflineStorageError(Exception):
    """Base exception for all offline storage errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# =============================================================================
# Codec errors
# =============================================================================


class CodecError(OfflineStorageError):
    """Base exception for obfuscation codec misuse or failures."""


class InvalidKeyError(CodecError):
    """Raised when the codec secret is missing or too short."""

    def __init__(self, min_length: int):
        super().__init__(
            f"Secret key must be at least {min_length} characters long",
            {"min_length": min_length},
        )
        self.min_length = min_length


class NotInitializedError(CodecError):
    """Raised when encode/decode is called before the codec has a secret."""

    def __init__(self) -> None:
        super().__init__("Codec not initialized. Call initialize(secret) first")


class DecodeError(CodecError):
    """Raised when obfuscated text cannot be decoded back to a value."""

    def __init__(self, reason: str, cause: Exception | None = None):
        details = {"reason": reason}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Failed to decode value: {reason}", details)
        self.reason = reason
        self.cause = cause


# =============================================================================
# Persistence errors
# =============================================================================


class StorageIOError(OfflineStorageError):
    """Raised when a backing medium I/O operation fails."""

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause


class PersistError(OfflineStorageError):
    """Raised when a record cannot be written to the backing medium."""

    def __init__(self, key: str, cause: Exception | None = None):
        details = {"key": key}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Failed to store data for key: {key}", details)
        self.key = key
        self.cause = cause


class RemoveError(OfflineStorageError):
    """Raised when a record cannot be removed from the backing medium."""

    def __init__(self, key: str, cause: Exception | None = None):
        details = {"key": key}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Failed to remove data for key: {key}", details)
        self.key = key
        self.cause = cause


class ClearError(OfflineStorageError):
    """Raised when the backing medium cannot be cleared."""

    def __init__(self, cause: Exception | None = None):
        details = {}
        if cause:
            details["cause"] = str(cause)
        super().__init__("Failed to clear storage", details)
        self.cause = cause


# =============================================================================
# Sync errors
# =============================================================================


class SinkError(OfflineStorageError):
    """Raised when the external sink rejects a queued entry during a drain."""

    def __init__(self, key: str, operation: str, cause: Exception | None = None):
        details: dict[str, Any] = {"key": key, "operation": operation}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Sink rejected {operation} for key: {key}", details)
        self.key = key
        self.operation = operation
        self.cause = cause


class StorageConnectionError(OfflineStorageError):
    """Raised when connection to a remote sink fails.

    Note: Named StorageConnectionError to avoid shadowing the builtin ConnectionError.
    """

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Connection failed to {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause


# =============================================================================
# Configuration errors
# =============================================================================


class ValidationError(OfflineStorageError):
    """Raised when configuration data has the wrong type or value."""

    def __init__(self, field: str, reason: str, value: Any = None):
        details: dict[str, Any] = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = repr(value)
        super().__init__(f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value
