"""Declarative schema for environment variable configuration.

This module provides a single source of truth for all environment variables,
including automatic type coercion, validation, and documentation generation.

The schema-based approach provides:
- Single definition point for all config options
- Automatic type coercion (str -> int/float/bool)
- Validation with clear error messages
- Self-documenting configuration
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class EnvVarSpec:
    """Specification for a single environment variable.

    Attributes:
        name: Environment variable name (e.g., "PORT", "LOG_LEVEL")
        default: Default value if env var not set
        type_hint: Type for validation (int, str, float, bool)
        description: Human-readable description for docs
        validator: Optional custom validation function
        coerce: Optional function to convert string to target type
    """

    name: str
    default: Any
    type_hint: type
    description: str
    validator: Callable[[Any], bool] | None = None
    coerce: Callable[[str], Any] | None = None


class ConfigSchema:
    """Registry of all configuration environment variables."""

    # === Server Settings ===

    HOST = EnvVarSpec(
        name="HOST",
        default="0.0.0.0",
        type_hint=str,
        description="Server host address to bind to",
    )

    PORT = EnvVarSpec(
        name="PORT",
        default=8085,
        type_hint=int,
        description="Server port number",
        validator=lambda x: 1 <= x <= 65535,
    )

    LOG_LEVEL = EnvVarSpec(
        name="LOG_LEVEL",
        default="INFO",
        type_hint=str,
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        validator=lambda x: x.split()[0].upper() in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
    )

    # === Provider Settings ===

    SWB_DEFAULT_PROVIDER = EnvVarSpec(
        name="SWB_DEFAULT_PROVIDER",
        default="",
        type_hint=str,
        description="Preferred default provider (empty = first configured in preferred order)",
    )

    SWB_SETTINGS_FILE = EnvVarSpec(
        name="SWB_SETTINGS_FILE",
        default="~/.config/switchboard/settings.json",
        type_hint=str,
        description="JSON file holding persisted (sanitized) provider settings",
    )

    # === Orchestrator Settings ===

    SWB_MAX_CONCURRENT_REQUESTS = EnvVarSpec(
        name="SWB_MAX_CONCURRENT_REQUESTS",
        default=3,
        type_hint=int,
        description="Maximum number of requests executing at the same time",
        validator=lambda x: x >= 1,
    )

    SWB_REQUEST_TIMEOUT_MS = EnvVarSpec(
        name="SWB_REQUEST_TIMEOUT_MS",
        default=60000,
        type_hint=int,
        description="Default upstream request timeout in milliseconds",
        validator=lambda x: x > 0,
    )

    SWB_RETRY_ENABLED = EnvVarSpec(
        name="SWB_RETRY_ENABLED",
        default=False,
        type_hint=bool,
        description="Retry requests that failed with a timeout or network error",
    )

    SWB_RETRY_ATTEMPTS = EnvVarSpec(
        name="SWB_RETRY_ATTEMPTS",
        default=3,
        type_hint=int,
        description="Maximum attempts per request when retry is enabled",
        validator=lambda x: x >= 1,
    )

    SWB_RETRY_BASE_DELAY_MS = EnvVarSpec(
        name="SWB_RETRY_BASE_DELAY_MS",
        default=1000,
        type_hint=int,
        description="Base delay for exponential retry backoff in milliseconds",
        validator=lambda x: x >= 0,
    )

    SWB_STREAM_BUFFER_SIZE = EnvVarSpec(
        name="SWB_STREAM_BUFFER_SIZE",
        default=64,
        type_hint=int,
        description="Chunks buffered per streaming consumer before the producer waits",
        validator=lambda x: x >= 1,
    )

    SWB_HISTORY_MAX_MESSAGES = EnvVarSpec(
        name="SWB_HISTORY_MAX_MESSAGES",
        default=50,
        type_hint=int,
        description="Messages kept per conversation",
        validator=lambda x: x >= 2,
    )

    SWB_REQUEST_HISTORY_LIMIT = EnvVarSpec(
        name="SWB_REQUEST_HISTORY_LIMIT",
        default=1000,
        type_hint=int,
        description="Completed request records kept for analytics",
        validator=lambda x: x >= 1,
    )

    # === Health Monitor Settings ===

    SWB_HEALTH_CHECK_INTERVAL_SECONDS = EnvVarSpec(
        name="SWB_HEALTH_CHECK_INTERVAL_SECONDS",
        default=0,
        type_hint=float,
        description="Interval between background health probes (0 = disabled)",
        validator=lambda x: x >= 0,
    )

    SWB_HEALTH_CHECK_TIMEOUT_MS = EnvVarSpec(
        name="SWB_HEALTH_CHECK_TIMEOUT_MS",
        default=10000,
        type_hint=int,
        description="Timeout for connection tests and health probes in milliseconds",
        validator=lambda x: x > 0,
    )

    @classmethod
    def all_specs(cls) -> dict[str, EnvVarSpec]:
        """Get all environment variable specifications.

        Returns:
            Dictionary mapping spec names to EnvVarSpec objects
        """
        return {
            name: getattr(cls, name)
            for name in dir(cls)
            if isinstance(getattr(cls, name), EnvVarSpec)
        }

    @classmethod
    def get_spec(cls, name: str) -> EnvVarSpec | None:
        """Get specification for a specific env var by name."""
        for spec in cls.all_specs().values():
            if spec.name == name:
                return spec
        return None

    @classmethod
    def generate_markdown_docs(cls) -> str:
        """Generate Markdown documentation for all environment variables."""
        lines = ["# Configuration Options\n\n"]
        lines.extend(
            [
                "This document is auto-generated from `ConfigSchema`.\n\n",
                "## Environment Variables\n\n",
            ]
        )

        specs = cls.all_specs()
        for _name, spec in sorted(specs.items()):
            default_repr = f"`{spec.default}`" if spec.default is not None else "None"
            lines.extend(
                [
                    f"### `{spec.name}`\n\n",
                    f"- **Type**: `{spec.type_hint.__name__}`\n",
                    f"- **Default**: {default_repr}\n",
                    f"- **Description**: {spec.description}\n\n",
                ]
            )

        return "\n".join(lines)
