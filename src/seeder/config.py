"""Configuration management with validation.

Limits are enforced at configuration load time so the operator never starts
with a requeue schedule or cache lifetime it cannot honor.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_REQUEUE_INCOMPLETE_SECONDS = 10 * 60
MIN_REQUEUE_INCOMPLETE_SECONDS = 60
MAX_REQUEUE_INCOMPLETE_SECONDS = 24 * 3600

DEFAULT_REQUEUE_COMPLETE_SECONDS = 24 * 3600
MIN_REQUEUE_COMPLETE_SECONDS = 600
MAX_REQUEUE_COMPLETE_SECONDS = 7 * 24 * 3600

DEFAULT_POLL_INTERVAL_SECONDS = 30
MIN_POLL_INTERVAL_SECONDS = 5
MAX_POLL_INTERVAL_SECONDS = 3600

DEFAULT_REMOTE_CALL_TIMEOUT_SECONDS = 60
MAX_REMOTE_CALL_TIMEOUT_SECONDS = 600

DEFAULT_CACHE_EXPIRATION_SECONDS = 7 * 24 * 3600
MIN_CACHE_EXPIRATION_SECONDS = 60
DEFAULT_CACHE_CLEANUP_INTERVAL_SECONDS = 30 * 60

DEFAULT_MAX_CONCURRENT_RECONCILES = 1
MAX_CONCURRENT_RECONCILES = 32

# Security constraints - enforced limits to prevent abuse
MAX_SEED_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max seed document

# Input validation patterns
VALID_API_FACTORY_PATTERN = r"^[A-Za-z_][\w.]*:[A-Za-z_]\w*$"


@dataclass(frozen=True)
class Config:
    """Operator configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.
    """

    # Desired-state store
    specs_dir: Path = field(default_factory=lambda: Path("/seeds"))
    status_dir: Path = field(default_factory=lambda: Path("/status"))

    # Requeue contract
    requeue_incomplete_seconds: int = DEFAULT_REQUEUE_INCOMPLETE_SECONDS
    requeue_complete_seconds: int = DEFAULT_REQUEUE_COMPLETE_SECONDS
    poll_interval_seconds: int = DEFAULT_POLL_INTERVAL_SECONDS

    # Remote API session
    remote_call_timeout_seconds: int = DEFAULT_REMOTE_CALL_TIMEOUT_SECONDS
    cache_expiration_seconds: int = DEFAULT_CACHE_EXPIRATION_SECONDS
    cache_cleanup_interval_seconds: int = DEFAULT_CACHE_CLEANUP_INTERVAL_SECONDS
    api_factory: str | None = None
    region_name: str | None = None

    # Scheduling
    max_concurrent_reconciles: int = DEFAULT_MAX_CONCURRENT_RECONCILES

    # Logging
    json_logging: bool = True

    def __post_init__(self) -> None:
        """Validate configuration after initialization.

        SECURITY: All inputs are validated at the boundary (fail-fast).
        """
        errors: list[str] = []

        # Path validation
        if not self.specs_dir.exists():
            errors.append(f"Specs directory does not exist: {self.specs_dir}")

        if not self.status_dir.exists():
            errors.append(f"Status directory does not exist: {self.status_dir}")

        # Timing validation
        if not (
            MIN_REQUEUE_INCOMPLETE_SECONDS
            <= self.requeue_incomplete_seconds
            <= MAX_REQUEUE_INCOMPLETE_SECONDS
        ):
            errors.append(
                f"SEEDER_REQUEUE_INCOMPLETE must be between {MIN_REQUEUE_INCOMPLETE_SECONDS} "
                f"and {MAX_REQUEUE_INCOMPLETE_SECONDS} seconds"
            )

        if not (
            MIN_REQUEUE_COMPLETE_SECONDS
            <= self.requeue_complete_seconds
            <= MAX_REQUEUE_COMPLETE_SECONDS
        ):
            errors.append(
                f"SEEDER_REQUEUE_COMPLETE must be between {MIN_REQUEUE_COMPLETE_SECONDS} "
                f"and {MAX_REQUEUE_COMPLETE_SECONDS} seconds"
            )
        elif self.requeue_complete_seconds < self.requeue_incomplete_seconds:
            errors.append("SEEDER_REQUEUE_COMPLETE must not be shorter than SEEDER_REQUEUE_INCOMPLETE")

        if not (MIN_POLL_INTERVAL_SECONDS <= self.poll_interval_seconds <= MAX_POLL_INTERVAL_SECONDS):
            errors.append(
                f"SEEDER_POLL_INTERVAL must be between {MIN_POLL_INTERVAL_SECONDS} "
                f"and {MAX_POLL_INTERVAL_SECONDS} seconds"
            )

        if not (1 <= self.remote_call_timeout_seconds <= MAX_REMOTE_CALL_TIMEOUT_SECONDS):
            errors.append(
                f"SEEDER_REMOTE_TIMEOUT must be between 1 and {MAX_REMOTE_CALL_TIMEOUT_SECONDS} seconds"
            )

        # Cache validation
        if self.cache_expiration_seconds < MIN_CACHE_EXPIRATION_SECONDS:
            errors.append(
                f"SEEDER_CACHE_EXPIRATION must be at least {MIN_CACHE_EXPIRATION_SECONDS} seconds"
            )

        if self.cache_cleanup_interval_seconds < 1:
            errors.append("SEEDER_CACHE_CLEANUP_INTERVAL must be at least 1 second")

        # Scheduling validation
        if not (1 <= self.max_concurrent_reconciles <= MAX_CONCURRENT_RECONCILES):
            errors.append(
                f"SEEDER_MAX_CONCURRENT_RECONCILES must be between 1 and {MAX_CONCURRENT_RECONCILES}"
            )

        if self.api_factory and not re.fullmatch(VALID_API_FACTORY_PATTERN, self.api_factory):
            errors.append(f"SEEDER_API_FACTORY must be 'module:callable': {self.api_factory}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            SEEDER_SPECS_DIR: Directory of seed documents (default: /seeds)
            SEEDER_STATUS_DIR: Directory of persisted seed status (default: /status)
            SEEDER_REQUEUE_INCOMPLETE: Requeue after a partial failure (default: 600)
            SEEDER_REQUEUE_COMPLETE: Requeue after a complete pass (default: 86400)
            SEEDER_POLL_INTERVAL: Seconds between store scans (default: 30)
            SEEDER_REMOTE_TIMEOUT: Deadline for each remote call (default: 60)
            SEEDER_CACHE_EXPIRATION: Identifier cache TTL (default: 604800)
            SEEDER_CACHE_CLEANUP_INTERVAL: Cache sweep interval (default: 1800)
            SEEDER_MAX_CONCURRENT_RECONCILES: Documents reconciled in parallel (default: 1)
            SEEDER_API_FACTORY: "module:callable" returning the remote API client
            OS_REGION_NAME: Region handed to the API factory
            SEEDER_JSON_LOGGING: Emit JSON logs (default: true)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        return cls(
            specs_dir=Path(os.environ.get("SEEDER_SPECS_DIR", "/seeds")),
            status_dir=Path(os.environ.get("SEEDER_STATUS_DIR", "/status")),
            requeue_incomplete_seconds=get_int(
                "SEEDER_REQUEUE_INCOMPLETE", DEFAULT_REQUEUE_INCOMPLETE_SECONDS
            ),
            requeue_complete_seconds=get_int(
                "SEEDER_REQUEUE_COMPLETE", DEFAULT_REQUEUE_COMPLETE_SECONDS
            ),
            poll_interval_seconds=get_int("SEEDER_POLL_INTERVAL", DEFAULT_POLL_INTERVAL_SECONDS),
            remote_call_timeout_seconds=get_int(
                "SEEDER_REMOTE_TIMEOUT", DEFAULT_REMOTE_CALL_TIMEOUT_SECONDS
            ),
            cache_expiration_seconds=get_int(
                "SEEDER_CACHE_EXPIRATION", DEFAULT_CACHE_EXPIRATION_SECONDS
            ),
            cache_cleanup_interval_seconds=get_int(
                "SEEDER_CACHE_CLEANUP_INTERVAL", DEFAULT_CACHE_CLEANUP_INTERVAL_SECONDS
            ),
            api_factory=os.environ.get("SEEDER_API_FACTORY") or None,
            region_name=os.environ.get("OS_REGION_NAME") or None,
            max_concurrent_reconciles=get_int(
                "SEEDER_MAX_CONCURRENT_RECONCILES", DEFAULT_MAX_CONCURRENT_RECONCILES
            ),
            json_logging=get_bool("SEEDER_JSON_LOGGING", True),
        )
