"""
Custom exceptions for study data synchronization.

Stores raise these exceptions so the reconciliation engine can
convert every failure into sync status instead of crashing callers.
"""


class StudySyncError(Exception):
    """Base exception for all study sync errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class LocalStoreError(StudySyncError):
    """Raised when a durable local store operation fails."""

    def __init__(self, operation: str, key: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if key:
            details["key"] = key
        if cause:
            details["cause"] = str(cause)
        message = f"Local store error during {operation}"
        if key:
            message += f": {key}"
        super().__init__(message, details)
        self.operation = operation
        self.key = key
        self.cause = cause


class RemoteStoreError(StudySyncError):
    """Base class for failures reported by a remote account store."""


class NetworkError(RemoteStoreError):
    """Raised when the remote account store cannot be reached or fails."""

    def __init__(
        self, operation: str, identity: str | None = None, cause: Exception | None = None
    ):
        details = {"operation": operation}
        if identity:
            details["identity"] = identity
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Remote store unavailable during {operation}", details)
        self.operation = operation
        self.identity = identity
        self.cause = cause


class AuthError(RemoteStoreError):
    """Raised when the remote account store rejects our credentials."""

    def __init__(self, identity: str | None = None, reason: str | None = None):
        details = {}
        if identity:
            details["identity"] = identity
        if reason:
            details["reason"] = reason
        message = "Remote store authentication failed"
        if identity:
            message += f" for {identity}"
        super().__init__(message, details)
        self.identity = identity
        self.reason = reason


class RemoteReadError(StudySyncError):
    """Raised when the initial remote read for an identity fails."""

    def __init__(self, identity: str, cause: Exception | None = None):
        details = {"identity": identity}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Failed to read remote document for {identity}", details)
        self.identity = identity
        self.cause = cause


class RemoteWriteError(StudySyncError):
    """Raised when pushing a snapshot to the remote store fails."""

    def __init__(self, identity: str, sequence: int, cause: Exception | None = None):
        details: dict = {"identity": identity, "sequence": sequence}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Failed to write remote document for {identity}", details)
        self.identity = identity
        self.sequence = sequence
        self.cause = cause


class StaleCompletionDiscarded(StudySyncError):
    """A network completion arrived for an identity that is no longer active."""

    def __init__(self, identity: str | None, generation: int):
        super().__init__(
            f"Discarded stale completion for {identity} (generation {generation})",
            {"identity": identity, "generation": generation},
        )
        self.identity = identity
        self.generation = generation


class ValidationError(StudySyncError):
    """Raised when snapshot data or a partial update is invalid."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value
