"""High-level provider management on top of the registry."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from switchboard.clients.base import ModelInfo
from switchboard.core.errors import ConfigurationError, NoRouteError, UnknownProviderError
from switchboard.core.events import Events
from switchboard.core.provider.catalog import register_builtin_providers
from switchboard.core.provider.default_selector import DefaultProviderSelector
from switchboard.core.provider.provider_config_loader import ProviderConfigLoader
from switchboard.core.provider.provider_registry import InitializationResult, ProviderRegistry
from switchboard.core.provider_config import CONFIG_FIELDS
from switchboard.core.settings_store import SettingsStore

logger = logging.getLogger(__name__)


class ProviderManager:
    """Manages the built-in providers, their configuration and model lists.

    Responsibilities:
    - Register the built-in providers and apply persisted/env configuration
    - Initialize every provider and pick the default one
    - Reconfigure a provider at runtime and persist the sanitized result
    - Keep the per-provider model lists used for model selection
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        store: SettingsStore | None = None,
        default_provider: str = "",
        request_timeout_ms: int | None = None,
        probe_timeout_ms: int = 10000,
    ) -> None:
        self.registry = registry
        self.loader = ProviderConfigLoader(store)
        self._selector = DefaultProviderSelector(default_provider)
        self._request_timeout_ms = request_timeout_ms
        self._probe_timeout_ms = probe_timeout_ms
        self._models: dict[str, list[ModelInfo]] = {}
        self._loaded = False

    def load_provider_configs(self) -> None:
        """Register built-in providers and apply stored and environment overrides."""
        if self._loaded:
            return
        register_builtin_providers(
            self.registry,
            request_timeout_ms=self._request_timeout_ms,
            probe_timeout_ms=self._probe_timeout_ms,
        )
        for provider in self.registry.get_registered_providers():
            provider_id = provider["id"]
            overrides = self.loader.load(provider_id)
            if not overrides:
                continue
            try:
                self.registry.configure(provider_id, overrides)
            except ConfigurationError as e:
                logger.error(f"Ignoring invalid configuration for '{provider_id}': {e.message}")
        self._loaded = True

    async def initialize(self) -> InitializationResult:
        """Load configuration, initialize every provider and choose the default."""
        self.load_provider_configs()
        result = await self.registry.initialize_all()
        for provider_id, error in result.failed.items():
            logger.warning(f"Provider '{provider_id}' unavailable: {error}")

        usable = [p for p in self.registry.live_provider_ids() if self.registry.is_usable(p)]
        try:
            self.registry.set_default_provider(self._selector.select(usable))
        except NoRouteError as e:
            logger.warning(e.message)

        await self.refresh_models()
        return result

    @property
    def default_provider(self) -> str | None:
        return self.registry.get_default_provider()

    def switch_provider(self, provider_id: str) -> None:
        if not self.registry.is_registered(provider_id):
            raise UnknownProviderError(provider_id)
        if not self.registry.is_usable(provider_id):
            raise ConfigurationError(
                f"Provider '{provider_id}' is not configured", provider_id=provider_id
            )
        self.registry.set_default_provider(provider_id)
        logger.info(f"Switched default provider to '{provider_id}'")

    async def configure_provider(self, provider_id: str, overrides: Mapping[str, Any]) -> dict[str, Any]:
        """Apply overrides on top of the current config and rebuild the instance.

        The sanitized config is persisted only after the new instance
        initialized successfully. Returns the sanitized config.
        """
        current = self.registry.get_config(provider_id)
        merged = {name: getattr(current, name) for name in CONFIG_FIELDS}
        merged.update({key: value for key, value in overrides.items() if value is not None})
        self.registry.configure(provider_id, merged)
        await self.registry.create_instance(provider_id)

        sanitized = self.registry.describe_config(provider_id)
        self.loader.save(provider_id, sanitized)
        await self.refresh_models(provider_id)
        if self.registry.get_default_provider() is None and self.registry.is_usable(provider_id):
            self.registry.set_default_provider(provider_id)
        return sanitized

    async def refresh_models(self, provider_id: str | None = None) -> dict[str, list[ModelInfo]]:
        """Re-fetch model lists from live providers.

        A provider that lists nothing still offers its default model.
        """
        provider_ids = [provider_id] if provider_id else self.registry.live_provider_ids()
        for pid in provider_ids:
            client = self.registry.get_client(pid)
            if client is None:
                self._models.pop(pid, None)
                continue
            models = await client.list_models()
            if not models:
                models = [ModelInfo(id=client.default_model, provider_id=pid)]
            self._models[pid] = models
            logger.debug(f"Loaded {len(models)} model(s) for '{pid}'")

        self.registry.events.publish(
            Events.MODELS_UPDATED,
            {"providers": {pid: len(models) for pid, models in self._models.items()}},
        )
        return dict(self._models)

    @property
    def available_models(self) -> list[ModelInfo]:
        """Models of every usable provider, default provider first."""
        default = self.registry.get_default_provider()
        ordered = sorted(self._models, key=lambda pid: pid != default)
        return [
            model
            for pid in ordered
            if self.registry.is_usable(pid)
            for model in self._models[pid]
        ]

    def resolve_model(self, model_id: str) -> str | None:
        """Provider id offering model_id, preferring the default provider."""
        for model in self.available_models:
            if model.id == model_id:
                return model.provider_id
        return None

    def select_model(self, model_ref: str) -> ModelInfo:
        """Resolve ``model`` or ``provider:model`` to a usable provider's model.

        The text before a colon is treated as a provider id only when such a
        provider is registered; otherwise the whole reference is a model id.

        Raises:
            ConfigurationError: The provider exists but is not configured.
            NoRouteError: No usable provider offers the model.
        """
        provider_id, separator, model_id = model_ref.partition(":")
        # Ids such as "qwen2.5:7b" carry a colon without naming a provider
        if separator and model_id and self.registry.is_registered(provider_id):
            if self.registry.get_instance(provider_id) is None:
                raise NoRouteError(
                    f"Provider '{provider_id}' is not initialized", provider_id=provider_id
                )
            if not self.registry.is_usable(provider_id):
                raise ConfigurationError(
                    f"Provider '{provider_id}' is not configured", provider_id=provider_id
                )
            known = {model.id: model for model in self._models.get(provider_id, ())}
            selected = known.get(model_id) or ModelInfo(id=model_id, provider_id=provider_id)
        else:
            resolved = self.resolve_model(model_ref)
            if resolved is None:
                raise NoRouteError(f"Model '{model_ref}' is not offered by any configured provider")
            selected = next(
                m for m in self._models[resolved] if m.id == model_ref
            )

        logger.info(f"Selected model '{selected.qualified_id}'")
        self.registry.events.publish(Events.MODEL_SELECTED, selected.to_dict())
        return selected

    def get_models(self, provider_id: str) -> list[ModelInfo]:
        if not self.registry.is_registered(provider_id):
            raise UnknownProviderError(provider_id)
        return list(self._models.get(provider_id, ()))
