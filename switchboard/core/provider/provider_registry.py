"""Provider registry: registrations, configuration, live instances and routing.

The registry is the only owner of provider configs, live instances and health
records. Other components read them through its public methods and report
outcomes back through record_request/record_health.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from collections.abc import AsyncIterator, Callable, Iterable, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from switchboard.clients.base import ProviderClient, ProviderMetrics
from switchboard.core.errors import ConfigurationError, NoRouteError, UnknownProviderError
from switchboard.core.events import EventBus, Events
from switchboard.core.provider.health import HealthStatus
from switchboard.core.provider_config import (
    SENSITIVE_FIELDS,
    ProviderConfig,
    merge_config,
    sanitize_config,
)
from switchboard.streaming.chunks import Usage

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ProviderConfig], ProviderClient]


@dataclass(frozen=True)
class ProviderMetadata:
    name: str
    description: str = ""
    tags: tuple[str, ...] = ()
    support_level: str = "community"
    homepage: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "tags": list(self.tags),
            "support_level": self.support_level,
            "homepage": self.homepage,
        }


@dataclass(frozen=True)
class ProviderRegistration:
    provider_id: str
    factory: ClientFactory
    default_config: ProviderConfig
    metadata: ProviderMetadata
    registered_at: float = field(default_factory=time.time)


@dataclass
class ProviderInstance:
    """A live, initialized client bound to the config it was built from."""

    provider_id: str
    client: ProviderClient
    config: ProviderConfig
    metrics: ProviderMetrics = field(default_factory=ProviderMetrics)
    created_at: float = field(default_factory=time.time)
    active_requests: int = 0
    retired: bool = False


@dataclass(frozen=True)
class SelectionRequirements:
    capabilities: tuple[str, ...] = ()
    preferred_providers: tuple[str, ...] = ()
    exclude_providers: tuple[str, ...] = ()
    exclude_unhealthy: bool = False


@dataclass(frozen=True)
class InitializationResult:
    succeeded: tuple[str, ...]
    failed: dict[str, str]


class ProviderRegistry:
    """Central registry for provider types, configs and live instances."""

    def __init__(self, events: EventBus | None = None) -> None:
        self.events = events or EventBus()
        self._registrations: dict[str, ProviderRegistration] = {}
        self._configs: dict[str, ProviderConfig] = {}
        self._instances: dict[str, ProviderInstance] = {}
        self._health: dict[str, HealthStatus] = {}
        self._capability_index: dict[str, set[str]] = defaultdict(set)
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._retired: list[ProviderInstance] = []
        self._default_provider: str | None = None

    # === Registration ===

    def register(
        self,
        provider_id: str,
        factory: ClientFactory,
        default_config: ProviderConfig,
        metadata: ProviderMetadata | None = None,
    ) -> None:
        """Register a provider type.

        Re-registering an id replaces the registration and logs a warning; a
        live instance built from the old registration keeps running.
        """
        if provider_id in self._registrations:
            logger.warning(f"Provider '{provider_id}' is already registered; overwriting")
        self._registrations[provider_id] = ProviderRegistration(
            provider_id=provider_id,
            factory=factory,
            default_config=default_config,
            metadata=metadata or ProviderMetadata(name=default_config.name),
        )
        self._configs.setdefault(provider_id, default_config)
        self.events.publish(Events.PROVIDER_REGISTERED, {"provider_id": provider_id})

    async def unregister(self, provider_id: str) -> None:
        self._require_registered(provider_id)
        instance = self._instances.pop(provider_id, None)
        if instance is not None:
            await self._retire(instance)
        self._registrations.pop(provider_id)
        self._configs.pop(provider_id, None)
        self._health.pop(provider_id, None)
        self._rebuild_capability_index()
        if self._default_provider == provider_id:
            self._default_provider = None
        self.events.publish(Events.PROVIDER_UNREGISTERED, {"provider_id": provider_id})

    def is_registered(self, provider_id: str) -> bool:
        return provider_id in self._registrations

    def _require_registered(self, provider_id: str) -> ProviderRegistration:
        registration = self._registrations.get(provider_id)
        if registration is None:
            raise UnknownProviderError(provider_id)
        return registration

    # === Configuration ===

    def configure(self, provider_id: str, overrides: Mapping[str, Any] | None) -> ProviderConfig:
        """Merge overrides over the provider's default config.

        The live instance, if any, is not touched; call create_instance to
        rebuild it with the new config.
        """
        registration = self._require_registered(provider_id)
        merged = merge_config(registration.default_config, overrides)
        self._configs[provider_id] = merged
        self.events.publish(
            Events.PROVIDER_CONFIGURED,
            {"provider_id": provider_id, "config": sanitize_config(merged)},
        )
        logger.debug(f"Configured provider '{provider_id}': {sanitize_config(merged)}")
        return merged

    def get_config(self, provider_id: str) -> ProviderConfig:
        """Internal (unsanitized) config; never emit the result directly."""
        self._require_registered(provider_id)
        return self._configs[provider_id]

    def describe_config(self, provider_id: str) -> dict[str, Any]:
        return sanitize_config(self.get_config(provider_id))

    # === Instances ===

    async def create_instance(self, provider_id: str) -> ProviderInstance:
        """Build, initialize and publish a client from the current config.

        On failure the error is recorded in the provider's health, any
        previous instance is retired, and the error is re-raised.
        """
        registration = self._require_registered(provider_id)
        async with self._locks[provider_id]:
            config = self._configs[provider_id]
            client: ProviderClient | None = None
            try:
                client = registration.factory(config)
                await client.initialize()
            except Exception as e:
                message = getattr(e, "message", None) or str(e) or e.__class__.__name__
                logger.error(f"Failed to initialize provider '{provider_id}': {message}")
                if client is not None:
                    await client.aclose()
                self._record_health(provider_id, False, message)
                previous = self._instances.pop(provider_id, None)
                if previous is not None:
                    await self._retire(previous)
                    self._rebuild_capability_index()
                    if self._default_provider == provider_id:
                        self._default_provider = None
                self.events.publish(
                    Events.PROVIDER_ERROR, {"provider_id": provider_id, "error": message}
                )
                raise

            instance = ProviderInstance(provider_id=provider_id, client=client, config=config)
            previous = self._instances.get(provider_id)
            self._instances[provider_id] = instance
            self._rebuild_capability_index()
            self._record_health(provider_id, True)

        if previous is not None:
            await self._retire(previous)
        logger.info(f"✅ Provider '{provider_id}' initialized (model: {config.default_model})")
        self.events.publish(
            Events.PROVIDER_INITIALIZED,
            {
                "provider_id": provider_id,
                "configured": client.is_configured(),
                "capabilities": client.capabilities().to_dict(),
            },
        )
        return instance

    async def initialize_all(self) -> InitializationResult:
        """Create an instance for every registered provider concurrently."""
        provider_ids = list(self._registrations)
        outcomes = await asyncio.gather(
            *(self.create_instance(provider_id) for provider_id in provider_ids),
            return_exceptions=True,
        )
        succeeded: list[str] = []
        failed: dict[str, str] = {}
        for provider_id, outcome in zip(provider_ids, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                failed[provider_id] = getattr(outcome, "message", None) or str(outcome)
            else:
                succeeded.append(provider_id)
        return InitializationResult(succeeded=tuple(succeeded), failed=failed)

    def get_instance(self, provider_id: str) -> ProviderInstance | None:
        return self._instances.get(provider_id)

    def get_client(self, provider_id: str) -> ProviderClient | None:
        instance = self._instances.get(provider_id)
        return instance.client if instance else None

    def live_provider_ids(self) -> list[str]:
        return [provider_id for provider_id in self._registrations if provider_id in self._instances]

    def instances(self) -> list[ProviderInstance]:
        """Live instances in registration order."""
        return [self._instances[pid] for pid in self._registrations if pid in self._instances]

    def is_usable(self, provider_id: str) -> bool:
        """Live and configured (credential present where one is required)."""
        instance = self._instances.get(provider_id)
        return instance is not None and instance.client.is_configured()

    @asynccontextmanager
    async def lease(self, provider_id: str) -> AsyncIterator[ProviderInstance]:
        """Pin the current instance for the duration of one request.

        An instance replaced while leased is closed only after its last lease
        ends, so in-flight requests finish on the client they started with.
        """
        instance = self._instances.get(provider_id)
        if instance is None:
            raise NoRouteError(f"Provider '{provider_id}' has no live instance", provider_id=provider_id)
        instance.active_requests += 1
        try:
            yield instance
        finally:
            instance.active_requests -= 1
            if instance.retired and instance.active_requests == 0:
                await self._close(instance)

    async def _retire(self, instance: ProviderInstance) -> None:
        instance.retired = True
        if instance.active_requests == 0:
            await self._close(instance)
        else:
            self._retired.append(instance)

    async def _close(self, instance: ProviderInstance) -> None:
        if instance in self._retired:
            self._retired.remove(instance)
        await instance.client.aclose()

    # === Routing ===

    def _rebuild_capability_index(self) -> None:
        self._capability_index.clear()
        for provider_id, instance in self._instances.items():
            capabilities = instance.client.capabilities()
            for name in capabilities.flags() | set(capabilities.supported_formats):
                self._capability_index[name].add(provider_id)

    def find_providers_by_capability(self, capabilities: Iterable[str]) -> list[str]:
        """Live provider ids supporting every named capability, in registration order."""
        matching = set(self._instances)
        for name in capabilities:
            matching &= self._capability_index.get(name, set())
        return [provider_id for provider_id in self._registrations if provider_id in matching]

    def get_best_provider(self, requirements: SelectionRequirements | None = None) -> str | None:
        """Pick the best usable provider, or None when nothing qualifies.

        Candidates are live, configured and capable; excluded ids are dropped;
        when a preferred id survives the candidates narrow to the preferred
        ones. The survivors rank by success rate (high first), then by average
        response time (low first). There is no fallback to a provider outside
        these rules.
        """
        requirements = requirements or SelectionRequirements()
        candidates = [
            provider_id
            for provider_id in self.find_providers_by_capability(requirements.capabilities)
            if self._instances[provider_id].client.is_configured()
            and provider_id not in requirements.exclude_providers
        ]
        if requirements.exclude_unhealthy:
            candidates = [
                provider_id
                for provider_id in candidates
                if provider_id not in self._health or self._health[provider_id].connected
            ]

        preferred = [provider_id for provider_id in candidates if provider_id in requirements.preferred_providers]
        if preferred:
            candidates = preferred
        if not candidates:
            return None

        def rank(provider_id: str) -> tuple[float, float]:
            metrics = self._instances[provider_id].metrics
            return (-metrics.success_rate, metrics.avg_response_time_ms)

        return sorted(candidates, key=rank)[0]

    def set_default_provider(self, provider_id: str) -> None:
        self._require_registered(provider_id)
        if provider_id not in self._instances:
            raise ConfigurationError(
                f"Provider '{provider_id}' is not initialized", provider_id=provider_id
            )
        previous = self._default_provider
        self._default_provider = provider_id
        if previous != provider_id:
            self.events.publish(
                Events.PROVIDER_DEFAULT_CHANGED, {"provider_id": provider_id, "previous": previous}
            )

    def get_default_provider(self) -> str | None:
        return self._default_provider

    # === Health & metrics ===

    def _record_health(self, provider_id: str, connected: bool, error: str | None = None) -> HealthStatus:
        status = self._health.setdefault(provider_id, HealthStatus())
        if status.record(connected, error):
            level = logging.INFO if connected else logging.WARNING
            logger.log(
                level,
                f"Provider '{provider_id}' is now {'connected' if connected else 'disconnected'}"
                + (f": {error}" if error else ""),
            )
            self.events.publish(
                Events.PROVIDER_STATUS_CHANGED, {"provider_id": provider_id, **status.to_dict()}
            )
        return status

    def record_health(self, provider_id: str, connected: bool, error: str | None = None) -> HealthStatus:
        """Merge a connectivity observation into the provider's HealthStatus."""
        self._require_registered(provider_id)
        return self._record_health(provider_id, connected, error)

    def get_health(self, provider_id: str) -> HealthStatus | None:
        return self._health.get(provider_id)

    def health_map(self) -> dict[str, dict[str, Any]]:
        return {provider_id: status.to_dict() for provider_id, status in self._health.items()}

    def record_request(
        self,
        provider_id: str,
        duration_ms: float,
        success: bool,
        *,
        usage: Usage | None = None,
        model: str | None = None,
        error: str | None = None,
    ) -> None:
        instance = self._instances.get(provider_id)
        if instance is None:
            return
        cost = instance.client.calculate_cost(usage, model) if success else 0.0
        instance.metrics.record(duration_ms, success, usage=usage, cost=cost, error=error)

    # === Reporting ===

    def get_registered_providers(self) -> list[dict[str, Any]]:
        providers = []
        for provider_id, registration in self._registrations.items():
            instance = self._instances.get(provider_id)
            providers.append(
                {
                    "id": provider_id,
                    **registration.metadata.to_dict(),
                    "initialized": instance is not None,
                    "configured": instance.client.is_configured() if instance else False,
                    "is_default": provider_id == self._default_provider,
                    "capabilities": instance.client.capabilities().to_dict() if instance else None,
                    "metrics": instance.metrics.to_dict() if instance else None,
                    "config": sanitize_config(self._configs[provider_id]),
                }
            )
        return providers

    def get_stats(self) -> dict[str, Any]:
        return {
            "registered": len(self._registrations),
            "initialized": len(self._instances),
            "configured": sum(1 for i in self._instances.values() if i.client.is_configured()),
            "healthy": sum(1 for status in self._health.values() if status.connected),
            "default_provider": self._default_provider,
            "capabilities": {
                name: sorted(ids) for name, ids in sorted(self._capability_index.items())
            },
        }

    def export_config(self) -> dict[str, dict[str, Any]]:
        """Sanitized configuration of every registered provider."""
        return {provider_id: sanitize_config(config) for provider_id, config in self._configs.items()}

    def import_config(self, data: Mapping[str, Mapping[str, Any]]) -> list[str]:
        """Apply exported configuration; returns the provider ids updated.

        Unknown provider ids are skipped with a warning. Credentials are never
        part of an export, so a present credential is kept.
        """
        updated = []
        for provider_id, values in data.items():
            if provider_id not in self._registrations:
                logger.warning(f"Skipping configuration for unknown provider '{provider_id}'")
                continue
            overrides = {
                key: value
                for key, value in values.items()
                if key != "has_api_key" and key not in SENSITIVE_FIELDS
            }
            current = self._configs[provider_id]
            overrides["api_key"] = current.api_key
            overrides["organization"] = current.organization
            self.configure(provider_id, overrides)
            updated.append(provider_id)
        return updated

    async def aclose(self) -> None:
        instances = list(self._instances.values()) + list(self._retired)
        self._instances.clear()
        self._retired.clear()
        self._capability_index.clear()
        self._default_provider = None
        for instance in instances:
            await instance.client.aclose()
