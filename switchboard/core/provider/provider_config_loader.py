"""Provider configuration loading from the environment and the settings store."""

import logging
import os
from collections.abc import Mapping
from typing import Any

from switchboard.core.provider_config import SENSITIVE_FIELDS
from switchboard.core.settings_store import SettingsStore

SETTINGS_KEY_PREFIX = "providers."


def settings_key(provider_id: str) -> str:
    return f"{SETTINGS_KEY_PREFIX}{provider_id}"


class ProviderConfigLoader:
    """Builds per-provider config overrides.

    Responsibilities:
    - Read persisted (sanitized) settings for each provider
    - Overlay {PROVIDER}_API_KEY, {PROVIDER}_BASE_URL and friends from the environment
    - Parse provider-specific headers from {PROVIDER}_CUSTOM_HEADER_* variables

    Environment values win over persisted settings.
    """

    ENV_FIELDS = {
        "API_KEY": "api_key",
        "BASE_URL": "base_url",
        "API_VERSION": "api_version",
        "DEFAULT_MODEL": "default_model",
        "ORGANIZATION": "organization",
        "TIMEOUT_MS": "timeout_ms",
    }

    def __init__(self, store: SettingsStore | None = None) -> None:
        self._store = store
        self._logger = logging.getLogger(__name__)

    def get_custom_headers(self, provider_prefix: str) -> dict[str, str]:
        """Extract provider-specific custom headers from environment.

        PROVIDER_CUSTOM_HEADER_X_TRACE_ID becomes the header X-Trace-Id.
        """
        custom_headers = {}
        marker = f"{provider_prefix.upper()}_CUSTOM_HEADER_"
        for env_key, env_value in os.environ.items():
            if env_key.startswith(marker):
                header_name = env_key[len(marker) :]
                if header_name:
                    header_name = "-".join(part.capitalize() for part in header_name.split("_"))
                    custom_headers[header_name] = env_value
        return custom_headers

    def load_env_overrides(self, provider_id: str) -> dict[str, Any]:
        prefix = provider_id.upper()
        overrides: dict[str, Any] = {}
        for suffix, field_name in self.ENV_FIELDS.items():
            value = os.environ.get(f"{prefix}_{suffix}")
            if value is not None and value.strip():
                overrides[field_name] = value.strip()
        headers = self.get_custom_headers(prefix)
        if headers:
            overrides["custom_headers"] = headers
        return overrides

    def load_persisted(self, provider_id: str) -> dict[str, Any]:
        if self._store is None:
            return {}
        stored = self._store.get(settings_key(provider_id)) or {}
        if not isinstance(stored, Mapping):
            self._logger.warning(f"Ignoring malformed stored settings for '{provider_id}'")
            return {}
        # Persisted settings are sanitized; drop anything that slipped through
        return {
            key: value
            for key, value in stored.items()
            if key != "has_api_key" and key not in SENSITIVE_FIELDS
        }

    def load(self, provider_id: str) -> dict[str, Any]:
        """Merged overrides for one provider (persisted, then environment)."""
        overrides = self.load_persisted(provider_id)
        env_overrides = self.load_env_overrides(provider_id)
        if "custom_headers" in overrides and "custom_headers" in env_overrides:
            env_overrides["custom_headers"] = {
                **overrides["custom_headers"],
                **env_overrides["custom_headers"],
            }
        overrides.update(env_overrides)
        if env_overrides:
            self._logger.debug(
                f"Environment overrides for '{provider_id}': "
                f"{sorted(k for k in env_overrides if k not in SENSITIVE_FIELDS)}"
            )
        return overrides

    def save(self, provider_id: str, sanitized: Mapping[str, Any]) -> None:
        if self._store is None:
            return
        self._store.set(
            settings_key(provider_id),
            {
                key: value
                for key, value in sanitized.items()
                if key != "has_api_key" and key not in SENSITIVE_FIELDS
            },
        )
