"""Composition root wiring registry, orchestrator, manager and health monitor."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from switchboard.clients.base import ChunkCallback, ModelInfo
from switchboard.core.config import Config
from switchboard.core.events import EventBus
from switchboard.core.health_monitor import HealthMonitor
from switchboard.core.provider.provider_registry import InitializationResult, ProviderRegistry
from switchboard.core.provider_manager import ProviderManager
from switchboard.core.settings_store import FileSettingsStore, SettingsStore
from switchboard.orchestrator.history import ConversationHistory
from switchboard.orchestrator.request import RequestOptions
from switchboard.orchestrator.request_orchestrator import RequestOrchestrator
from switchboard.orchestrator.retry import RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Everything a host application needs, built from one Config."""

    config: Config
    events: EventBus
    registry: ProviderRegistry
    manager: ProviderManager
    orchestrator: RequestOrchestrator
    health_monitor: HealthMonitor

    async def start(self) -> InitializationResult:
        result = await self.manager.initialize()
        self.health_monitor.start()
        logger.info(
            f"Switchboard ready: {len(result.succeeded)} provider(s) live, "
            f"default '{self.registry.get_default_provider()}'"
        )
        return result

    async def submit(
        self,
        chat_id: str,
        message: str,
        options: RequestOptions | None = None,
        *,
        on_chunk: ChunkCallback | None = None,
    ) -> str:
        return await self.orchestrator.submit(chat_id, message, options, on_chunk=on_chunk)

    def select_model(self, model_ref: str) -> ModelInfo:
        """Pin subsequent unpinned requests to a model (``model`` or ``provider:model``)."""
        model = self.manager.select_model(model_ref)
        self.orchestrator.selected_model = (model.provider_id, model.id)
        return model

    def get_system_status(self) -> dict[str, Any]:
        orchestrator_status = self.orchestrator.get_status()
        return {
            "registry": self.registry.get_stats(),
            "providers": self.registry.get_registered_providers(),
            "health": self.registry.health_map(),
            "queue": orchestrator_status["queue"],
            "conversations": orchestrator_status["conversations"],
            "selected_model": orchestrator_status["selected_model"],
            "health_monitor": {
                "enabled": self.health_monitor.enabled,
                "running": self.health_monitor.running,
                "completed_rounds": self.health_monitor.completed_rounds,
                "skipped_ticks": self.health_monitor.skipped_ticks,
            },
            "config": self.config.summary(),
        }

    async def aclose(self) -> None:
        await self.health_monitor.stop()
        await self.orchestrator.aclose()
        await self.events.drain()
        await self.registry.aclose()


def build_runtime(config: Config | None = None, store: SettingsStore | None = None) -> Runtime:
    """Assemble a Runtime; call ``await runtime.start()`` before submitting."""
    config = config or Config.load()
    if store is None:
        store = FileSettingsStore(config.settings_path)

    events = EventBus()
    registry = ProviderRegistry(events)
    manager = ProviderManager(
        registry,
        store=store,
        default_provider=config.default_provider,
        request_timeout_ms=config.request_timeout_ms,
        probe_timeout_ms=config.health_check_timeout_ms,
    )
    orchestrator = RequestOrchestrator(
        registry,
        events=events,
        history=ConversationHistory(config.history_max_messages),
        max_concurrent=config.max_concurrent_requests,
        retry_policy=RetryPolicy(
            enabled=config.retry_enabled,
            max_attempts=config.retry_attempts,
            base_delay_ms=config.retry_base_delay_ms,
        ),
        stream_buffer_size=config.stream_buffer_size,
        request_history_limit=config.request_history_limit,
        model_resolver=manager.resolve_model,
    )
    return Runtime(
        config=config,
        events=events,
        registry=registry,
        manager=manager,
        orchestrator=orchestrator,
        health_monitor=HealthMonitor(registry, config.health_check_interval_seconds),
    )
