"""Loading and validating environment variables declared in ConfigSchema."""

import os
from typing import Any

from switchboard.core.config.schema import ConfigSchema, EnvVarSpec

_TRUTHY = frozenset({"true", "1", "yes", "on"})


class ConfigValueError(Exception):
    """An environment variable could not be coerced or failed its validator.

    Attributes:
        env_var: The environment variable name
        value: The raw string that was rejected
        message: What is wrong with it
    """

    def __init__(self, env_var: str, value: str, message: str) -> None:
        self.env_var = env_var
        self.value = value
        self.message = message
        super().__init__(f"{env_var}={value}: {message}")


def _coerce(spec: EnvVarSpec, raw_value: str) -> Any:
    if spec.coerce is not None:
        return spec.coerce(raw_value)
    if spec.type_hint is bool:
        return raw_value.strip().lower() in _TRUTHY
    if spec.type_hint in (int, float):
        return spec.type_hint(raw_value.strip())
    return raw_value


def load_env_var(spec: EnvVarSpec) -> Any:
    """Return the coerced value of spec's variable, or its default when unset.

    Raises:
        ConfigValueError: The value cannot be converted or the validator rejects it
    """
    raw_value = os.environ.get(spec.name)
    if raw_value is None:
        return spec.default

    try:
        value = _coerce(spec, raw_value)
    except (ValueError, TypeError) as e:
        raise ConfigValueError(
            spec.name, raw_value, f"expected {spec.type_hint.__name__} ({e})"
        ) from e

    if spec.validator is None:
        return value
    try:
        accepted = spec.validator(value)
    except TypeError as e:
        raise ConfigValueError(spec.name, raw_value, f"validator error: {e}") from e
    if not accepted:
        raise ConfigValueError(spec.name, raw_value, f"not a valid value for: {spec.description}")
    return value


def validate_all() -> list[ConfigValueError]:
    """Check every declared variable and collect all errors instead of stopping at the first."""
    errors: list[ConfigValueError] = []
    for spec in ConfigSchema.all_specs().values():
        try:
            load_env_var(spec)
        except ConfigValueError as e:
            errors.append(e)
    return errors
