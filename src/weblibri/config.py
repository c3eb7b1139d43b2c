"""Client configuration loaded from environment variables.

`{root}` is the status/list API base and `{app_prefix}` the base for
reader and download links; both normally come from the page the server
renders, so for local use they are read from the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from weblibri.errors import WeblibriError

DEFAULT_API_ROOT = "http://localhost:8000/api"
DEFAULT_INITIAL_DELAY_MS = 1000.0
DEFAULT_BACKOFF_FACTOR = 1.5


class ConfigValidationError(WeblibriError):
    """Raised when a configuration value is out of its valid range."""

    def __init__(self, key: str, value: object, message: str) -> None:
        self.key = key
        self.value = value
        super().__init__(f"Invalid configuration {key}={value!r}: {message}")


@dataclass(frozen=True, slots=True)
class ClientConfig:
    """Immutable client configuration.

    Attributes:
        api_root: Base of the status and list endpoints, without trailing slash.
        app_prefix: Base of reader and download links, without trailing slash.
        initial_delay_ms: Wait before the first follow-up poll.
        backoff_factor: Multiplier applied to the wait after every not-ready poll.
        request_timeout_sec: Per-request timeout; ``None`` waits indefinitely.
        log_level: Level name passed to ``logging.basicConfig`` by the front end.
    """

    api_root: str = DEFAULT_API_ROOT
    app_prefix: str = ""
    initial_delay_ms: float = DEFAULT_INITIAL_DELAY_MS
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR
    request_timeout_sec: float | None = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> ClientConfig:
        """Load and validate configuration from ``WEBLIBRI_*`` variables.

        Raises:
            ConfigValidationError: If a value is out of range.
            ValueError: If a numeric variable cannot be parsed.
        """
        timeout = os.getenv("WEBLIBRI_REQUEST_TIMEOUT_SEC", "").strip()
        config = cls(
            api_root=os.getenv("WEBLIBRI_API_ROOT", DEFAULT_API_ROOT).rstrip("/"),
            app_prefix=os.getenv("WEBLIBRI_APP_PREFIX", "").rstrip("/"),
            initial_delay_ms=float(os.getenv("WEBLIBRI_INITIAL_DELAY_MS", "1000")),
            backoff_factor=float(os.getenv("WEBLIBRI_BACKOFF_FACTOR", "1.5")),
            request_timeout_sec=float(timeout) if timeout else None,
            log_level=os.getenv("WEBLIBRI_LOG_LEVEL", "INFO").upper(),
        )
        _validate(config)
        return config


def _validate(config: ClientConfig) -> None:
    if not config.api_root:
        raise ConfigValidationError("WEBLIBRI_API_ROOT", config.api_root, "must not be empty")

    if config.initial_delay_ms <= 0:
        raise ConfigValidationError(
            "WEBLIBRI_INITIAL_DELAY_MS",
            config.initial_delay_ms,
            "must be > 0 (milliseconds)",
        )

    # a factor below 1 would shrink the delay between polls
    if config.backoff_factor < 1.0:
        raise ConfigValidationError(
            "WEBLIBRI_BACKOFF_FACTOR",
            config.backoff_factor,
            "must be >= 1",
        )

    if config.request_timeout_sec is not None and config.request_timeout_sec <= 0:
        raise ConfigValidationError(
            "WEBLIBRI_REQUEST_TIMEOUT_SEC",
            config.request_timeout_sec,
            "must be > 0 (seconds) or unset",
        )
