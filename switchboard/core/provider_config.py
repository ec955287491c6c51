import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from switchboard.core.errors import ConfigurationError

SENSITIVE_FIELDS = ("api_key", "secret_key", "token", "password", "organization")
SENSITIVE_HEADER_MARKERS = ("auth", "key", "token", "secret")


@dataclass(frozen=True)
class ProviderConfig:
    """Configuration for a specific provider"""

    name: str
    base_url: str
    default_model: str
    api_key: str = ""
    api_version: str | None = None
    organization: str | None = None
    timeout_ms: int = 60000
    retry_attempts: int = 3
    custom_headers: dict[str, str] = field(default_factory=dict)

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    def __post_init__(self) -> None:
        """Validate configuration after initialization"""
        if not self.name:
            raise ConfigurationError("Provider name is required")
        if not self.base_url:
            raise ConfigurationError(f"Base URL is required for provider '{self.name}'")
        if self.timeout_ms <= 0:
            raise ConfigurationError(f"Timeout must be positive for provider '{self.name}'")
        if self.retry_attempts < 0:
            raise ConfigurationError(
                f"Retry attempts must not be negative for provider '{self.name}'"
            )


CONFIG_FIELDS = frozenset(f.name for f in dataclasses.fields(ProviderConfig))

_COERCIONS = {
    "timeout_ms": int,
    "retry_attempts": int,
}


def merge_config(base: ProviderConfig, overrides: Mapping[str, Any] | None) -> ProviderConfig:
    """Overlay overrides on base, key by key.

    A key whose value is None keeps the base value. Unknown keys are rejected
    so typos surface instead of being ignored.

    Raises:
        ConfigurationError: On unknown keys or values of the wrong type.
    """
    if not overrides:
        return base

    unknown = sorted(set(overrides) - CONFIG_FIELDS)
    if unknown:
        raise ConfigurationError(
            f"Unknown configuration key(s) for provider '{base.name}': {', '.join(unknown)}"
        )

    changes: dict[str, Any] = {}
    for key, value in overrides.items():
        if value is None:
            continue
        coerce = _COERCIONS.get(key)
        if coerce is not None:
            try:
                value = coerce(value)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(
                    f"Invalid value for '{key}' on provider '{base.name}': {value!r}"
                ) from e
        elif key == "custom_headers":
            if not isinstance(value, Mapping):
                raise ConfigurationError(f"'custom_headers' must be a mapping for '{base.name}'")
            value = {str(k): str(v) for k, v in value.items()}
        else:
            value = str(value)
        changes[key] = value

    return dataclasses.replace(base, **changes)


def _is_sensitive_header(name: str) -> bool:
    lowered = name.lower()
    return any(marker in lowered for marker in SENSITIVE_HEADER_MARKERS)


def sanitize_config(config: ProviderConfig | Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of config that is safe to log, export, or emit.

    Sensitive fields are removed entirely; whether a credential is present is
    reported through has_api_key.
    """
    data = dataclasses.asdict(config) if isinstance(config, ProviderConfig) else dict(config)
    has_api_key = bool(data.get("api_key")) or bool(data.get("has_api_key"))

    sanitized = {key: value for key, value in data.items() if key not in SENSITIVE_FIELDS}
    headers = sanitized.get("custom_headers")
    if isinstance(headers, Mapping):
        sanitized["custom_headers"] = {
            name: value for name, value in headers.items() if not _is_sensitive_header(name)
        }
    sanitized["has_api_key"] = has_api_key
    return sanitized
