"""
Sync engine configuration.

Configuration can be provided directly or via environment variables:

Environment Variables:
    SESSION_SYNC_DEVICE_ID: Identifier of this device (default: random uuid)
    SESSION_SYNC_APP_VERSION: Application version written into snapshots
    SESSION_SYNC_LOCAL_PATH: Directory for the local session store
    SESSION_SYNC_MAX_RETRIES: Upload attempts before giving up (default: 3)
    SESSION_SYNC_RETRY_DELAY: Seconds between upload attempts (default: 2.0)
    SESSION_SYNC_CONFLICT_TOLERANCE: Server timestamp tie window in seconds (default: 5.0)
    SESSION_SYNC_BACKGROUND_TIMEOUT: Seconds to wait for the background batch (default: 25.0)
    SESSION_SYNC_LOG_LEVEL: Emit JSON logs to stdout at this level (default: leave logging alone)
"""

from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from .exceptions import ValidationError

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 2.0  # seconds
DEFAULT_CONFLICT_TOLERANCE = 5.0  # seconds
DEFAULT_BACKGROUND_TIMEOUT = 25.0  # seconds
DEFAULT_APP_VERSION = "1.0.0"


def _default_local_path() -> Path:
    return Path.home() / ".session_sync"


@dataclass
class SyncConfig:
    """Configuration for the sync engine.

    Attributes:
        device_id: Opaque identifier of this device, recorded in snapshots
        app_version: Application version recorded in snapshots
        local_path: Base directory of the local session store
        max_retries: Maximum upload attempts for transient failures
        retry_delay: Fixed delay between upload attempts (seconds)
        conflict_tolerance: Window within which two server timestamps are equal (seconds)
        background_upload_timeout: Upper bound for the app-background batch upload (seconds)
        log_level: Level for structured JSON logging, or None to leave logging unconfigured
    """

    device_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    app_version: str = DEFAULT_APP_VERSION
    local_path: Path = field(default_factory=_default_local_path)

    # Retry settings
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY

    # Conflict policy
    conflict_tolerance: float = DEFAULT_CONFLICT_TOLERANCE

    # Lifecycle
    background_upload_timeout: float = DEFAULT_BACKGROUND_TIMEOUT

    # Logging
    log_level: str | None = None

    def __post_init__(self) -> None:
        self.local_path = Path(self.local_path)
        if self.max_retries < 1:
            raise ValidationError("max_retries", "must be at least 1", str(self.max_retries))
        if self.retry_delay < 0:
            raise ValidationError("retry_delay", "must not be negative", str(self.retry_delay))
        if self.conflict_tolerance < 0:
            raise ValidationError(
                "conflict_tolerance", "must not be negative", str(self.conflict_tolerance)
            )
        if self.log_level is not None and not isinstance(
            logging.getLevelName(self.log_level.upper()), int
        ):
            raise ValidationError("log_level", "unknown logging level", self.log_level)

    @classmethod
    def from_environment(cls) -> SyncConfig:
        """Create configuration from environment variables.

        Returns:
            SyncConfig populated from environment variables

        Raises:
            ValidationError: If a numeric variable cannot be parsed
        """
        kwargs: dict = {}

        device_id = os.environ.get("SESSION_SYNC_DEVICE_ID")
        if device_id:
            kwargs["device_id"] = device_id

        app_version = os.environ.get("SESSION_SYNC_APP_VERSION")
        if app_version:
            kwargs["app_version"] = app_version

        local_path = os.environ.get("SESSION_SYNC_LOCAL_PATH")
        if local_path:
            kwargs["local_path"] = Path(local_path).expanduser()

        kwargs["max_retries"] = _env_number(
            "SESSION_SYNC_MAX_RETRIES", DEFAULT_MAX_RETRIES, int
        )
        kwargs["retry_delay"] = _env_number(
            "SESSION_SYNC_RETRY_DELAY", DEFAULT_RETRY_DELAY, float
        )
        kwargs["conflict_tolerance"] = _env_number(
            "SESSION_SYNC_CONFLICT_TOLERANCE", DEFAULT_CONFLICT_TOLERANCE, float
        )
        kwargs["background_upload_timeout"] = _env_number(
            "SESSION_SYNC_BACKGROUND_TIMEOUT", DEFAULT_BACKGROUND_TIMEOUT, float
        )

        log_level = os.environ.get("SESSION_SYNC_LOG_LEVEL")
        if log_level:
            kwargs["log_level"] = log_level

        return cls(**kwargs)


def _env_number(name: str, default, cast):
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ValidationError(name, "not a valid number", raw) from e
