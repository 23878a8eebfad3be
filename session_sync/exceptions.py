"""
Custom exceptions for session synchronization.

All stores and sync paths raise these exceptions so callers can
tell identity, codec, and I/O problems apart.
"""


class SessionSyncError(Exception):
    """Base exception for all session sync errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SessionNotLinkedError(SessionSyncError):
    """Raised when a session has no owning user identity."""

    def __init__(self, session_id: str):
        super().__init__(
            f"Session not linked to a user: {session_id}", {"session_id": session_id}
        )
        self.session_id = session_id


class UserNotFoundError(SessionSyncError):
    """Raised when a user has no local record on this device."""

    def __init__(self, user_id: str):
        super().__init__(f"User not found in local store: {user_id}", {"user_id": user_id})
        self.user_id = user_id


class SessionNotFoundError(SessionSyncError):
    """Raised when a session is not found."""

    def __init__(self, session_id: str, user_id: str | None = None):
        details = {"session_id": session_id}
        if user_id:
            details["user_id"] = user_id
        super().__init__(f"Session not found: {session_id}", details)
        self.session_id = session_id
        self.user_id = user_id


class SnapshotEncodeError(SessionSyncError):
    """Raised when a session cannot be packed into a portable snapshot."""

    def __init__(self, session_id: str, cause: Exception | None = None):
        details = {"session_id": session_id}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Failed to encode snapshot for session {session_id}", details)
        self.session_id = session_id
        self.cause = cause


class SnapshotDecodeError(SessionSyncError):
    """Raised when a history blob is structurally corrupt."""

    def __init__(self, reason: str, session_id: str | None = None):
        details = {"reason": reason}
        if session_id:
            details["session_id"] = session_id
        message = f"Failed to decode snapshot: {reason}"
        if session_id:
            message = f"Failed to decode snapshot for session {session_id}: {reason}"
        super().__init__(message, details)
        self.reason = reason
        self.session_id = session_id


class RemoteStoreError(SessionSyncError):
    """Raised when a remote store operation fails permanently."""

    def __init__(self, operation: str, cause: Exception | None = None):
        details = {"operation": operation}
        if cause:
            details["cause"] = str(cause)
        message = f"Remote store error during {operation}"
        if cause:
            message += f": {cause}"
        super().__init__(message, details)
        self.operation = operation
        self.cause = cause


class TransientStoreError(RemoteStoreError):
    """Raised when a remote operation failed but may succeed if retried.

    Covers network unreachable, timeouts, throttling and server-side
    unavailability.
    """


class AuthenticationError(SessionSyncError):
    """Raised when authentication to remote storage fails."""

    def __init__(self, endpoint: str, reason: str | None = None):
        details = {"endpoint": endpoint}
        if reason:
            details["reason"] = reason
        super().__init__(f"Authentication failed for {endpoint}", details)
        self.endpoint = endpoint
        self.reason = reason


class StorageConnectionError(SessionSyncError):
    """Raised when connection to remote storage fails.

    Note: Named StorageConnectionError to avoid shadowing the builtin ConnectionError.
    """

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Connection failed to {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause


class StorageIOError(SessionSyncError):
    """Raised when a local storage I/O operation fails."""

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


class SyncError(SessionSyncError):
    """Raised when a synchronization pass fails as a whole."""

    def __init__(self, message: str, user_id: str | None = None, cause: Exception | None = None):
        details: dict = {}
        if user_id:
            details["user_id"] = user_id
        if cause:
            details["cause"] = str(cause)
        super().__init__(message, details)
        self.user_id = user_id
        self.cause = cause


class ValidationError(SessionSyncError):
    """Raised when data validation fails."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value
