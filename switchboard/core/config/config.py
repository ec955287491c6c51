"""Runtime configuration for the switchboard.

All values are loaded once, at startup, from environment variables using the
schema-based loader. The resulting object is immutable and is passed to the
components that need it; there is no module-level singleton.
"""

from dataclasses import dataclass
from pathlib import Path

from switchboard.core.config.schema import ConfigSchema
from switchboard.core.config.validation import load_env_var


@dataclass(frozen=True)
class Config:
    """Immutable configuration snapshot.

    Attributes:
        host: Address the HTTP server binds to
        port: Port the HTTP server binds to
        log_level: Root logging level
        default_provider: Preferred default provider id ("" = automatic)
        settings_file: Path of the persisted provider settings
        max_concurrent_requests: Admission bound of the orchestrator
        request_timeout_ms: Default upstream request timeout
        retry_enabled: Whether transient failures are retried
        retry_attempts: Maximum attempts per request when retrying
        retry_base_delay_ms: Base delay of the exponential backoff
        stream_buffer_size: Per-consumer chunk buffer of streaming requests
        history_max_messages: Messages kept per conversation
        request_history_limit: Completed request records kept for analytics
        health_check_interval_seconds: Background probe interval (0 = disabled)
        health_check_timeout_ms: Timeout used by connection tests
    """

    host: str
    port: int
    log_level: str
    default_provider: str
    settings_file: str
    max_concurrent_requests: int
    request_timeout_ms: int
    retry_enabled: bool
    retry_attempts: int
    retry_base_delay_ms: int
    stream_buffer_size: int
    history_max_messages: int
    request_history_limit: int
    health_check_interval_seconds: float
    health_check_timeout_ms: int

    @classmethod
    def load(cls) -> "Config":
        """Load configuration using schema-based validation.

        Raises:
            ConfigValueError: If any environment variable fails validation
        """
        return cls(
            host=load_env_var(ConfigSchema.HOST),
            port=load_env_var(ConfigSchema.PORT),
            log_level=load_env_var(ConfigSchema.LOG_LEVEL).split()[0].upper(),
            default_provider=load_env_var(ConfigSchema.SWB_DEFAULT_PROVIDER).strip().lower(),
            settings_file=load_env_var(ConfigSchema.SWB_SETTINGS_FILE),
            max_concurrent_requests=load_env_var(ConfigSchema.SWB_MAX_CONCURRENT_REQUESTS),
            request_timeout_ms=load_env_var(ConfigSchema.SWB_REQUEST_TIMEOUT_MS),
            retry_enabled=load_env_var(ConfigSchema.SWB_RETRY_ENABLED),
            retry_attempts=load_env_var(ConfigSchema.SWB_RETRY_ATTEMPTS),
            retry_base_delay_ms=load_env_var(ConfigSchema.SWB_RETRY_BASE_DELAY_MS),
            stream_buffer_size=load_env_var(ConfigSchema.SWB_STREAM_BUFFER_SIZE),
            history_max_messages=load_env_var(ConfigSchema.SWB_HISTORY_MAX_MESSAGES),
            request_history_limit=load_env_var(ConfigSchema.SWB_REQUEST_HISTORY_LIMIT),
            health_check_interval_seconds=load_env_var(
                ConfigSchema.SWB_HEALTH_CHECK_INTERVAL_SECONDS
            ),
            health_check_timeout_ms=load_env_var(ConfigSchema.SWB_HEALTH_CHECK_TIMEOUT_MS),
        )

    @property
    def settings_path(self) -> Path:
        return Path(self.settings_file).expanduser()

    def summary(self) -> dict[str, object]:
        """Non-sensitive view of the configuration for status reports."""
        return {
            "max_concurrent_requests": self.max_concurrent_requests,
            "request_timeout_ms": self.request_timeout_ms,
            "retry_enabled": self.retry_enabled,
            "retry_attempts": self.retry_attempts,
            "health_check_interval_seconds": self.health_check_interval_seconds,
            "history_max_messages": self.history_max_messages,
        }
