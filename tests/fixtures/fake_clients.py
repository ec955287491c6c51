"""Deterministic in-process provider clients for routing and orchestration tests."""

import asyncio
from collections.abc import AsyncIterator, Sequence

from switchboard.clients.base import (
    Capabilities,
    ChatMessage,
    CompletionOptions,
    CompletionResult,
    ConnectionResult,
    ModelInfo,
    ProviderClient,
)
from switchboard.core.errors import ConfigurationError
from switchboard.core.events import EventBus
from switchboard.core.provider.provider_registry import ProviderRegistry
from switchboard.core.provider_config import ProviderConfig
from switchboard.streaming.chunks import StreamChunk, Usage


class FakeClient(ProviderClient):
    """Scriptable client.

    ``failures`` is consumed one exception per call before any reply is
    produced. When ``gate`` is set, every call waits for it, which lets a
    test hold requests in flight.
    """

    display_name = "Fake"

    def __init__(
        self,
        config: ProviderConfig,
        *,
        provider_id: str = "fake",
        configured: bool = True,
        capabilities: Capabilities | None = None,
        reply: str = "ok",
        pieces: Sequence[str] | None = None,
        failures: list[Exception] | None = None,
        fail_after_chunks: Exception | None = None,
        gate: asyncio.Event | None = None,
        models: Sequence[str] = (),
        connected: bool = True,
        init_error: Exception | None = None,
    ) -> None:
        self.provider_id = provider_id
        self.config = config
        self.configured = configured
        self._capabilities = capabilities or Capabilities()
        self.reply = reply
        self.pieces = list(pieces) if pieces is not None else [reply]
        self.failures = failures if failures is not None else []
        self.fail_after_chunks = fail_after_chunks
        self.gate = gate
        self.models = list(models)
        self.connected = connected
        self.init_error = init_error
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.seen_messages: list[list[ChatMessage]] = []
        self.closed = False

    @property
    def default_model(self) -> str:
        return self.config.default_model

    async def initialize(self) -> None:
        if self.init_error is not None:
            raise self.init_error

    def is_configured(self) -> bool:
        return self.configured

    def capabilities(self) -> Capabilities:
        return self._capabilities

    async def list_models(self) -> list[ModelInfo]:
        return [ModelInfo(id=model, provider_id=self.provider_id) for model in self.models]

    async def _enter(self, messages: Sequence[ChatMessage]) -> None:
        if not self.configured:
            raise ConfigurationError("Fake key missing", provider_id=self.provider_id)
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.seen_messages.append(list(messages))
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            if self.failures:
                raise self.failures.pop(0)
        except BaseException:
            self.in_flight -= 1
            raise

    async def complete(
        self, messages: Sequence[ChatMessage], options: CompletionOptions
    ) -> CompletionResult:
        await self._enter(messages)
        self.in_flight -= 1
        return CompletionResult(
            text=self.reply,
            model=options.model or self.default_model,
            provider_id=self.provider_id,
            usage=Usage(prompt_tokens=3, completion_tokens=2, total_tokens=5),
            stop_reason="stop",
        )

    async def stream_completion(
        self, messages: Sequence[ChatMessage], options: CompletionOptions
    ) -> AsyncIterator[StreamChunk]:
        await self._enter(messages)
        try:
            text = ""
            for piece in self.pieces:
                text += piece
                yield StreamChunk(delta_text=piece, full_text=text)
                await asyncio.sleep(0)
            if self.fail_after_chunks is not None:
                raise self.fail_after_chunks
            yield StreamChunk(delta_text="", full_text=text, finished=True, stop_reason="stop")
        finally:
            self.in_flight -= 1

    async def test_connection(self) -> ConnectionResult:
        if self.connected:
            return ConnectionResult(connected=True, latency_ms=1.0, status_code=200)
        return ConnectionResult(connected=False, error="unreachable")

    def calculate_cost(self, usage: Usage | None, model: str | None) -> float:
        return 0.0 if usage is None else usage.total_tokens * 0.001

    async def aclose(self) -> None:
        self.closed = True


def fake_config(name: str = "fake", **overrides) -> ProviderConfig:
    values = {"name": name, "base_url": f"https://{name}.test", "default_model": f"{name}-model"}
    values.update(overrides)
    return ProviderConfig(**values)


def register_fake(registry: ProviderRegistry, provider_id: str, **client_kwargs) -> list[FakeClient]:
    """Register a fake provider; returns the list every built client is appended to."""
    built: list[FakeClient] = []

    def factory(config: ProviderConfig) -> FakeClient:
        client = FakeClient(config, provider_id=provider_id, **client_kwargs)
        built.append(client)
        return client

    registry.register(provider_id, factory, fake_config(provider_id))
    return built


async def live_registry(*specs: tuple[str, dict], events: EventBus | None = None):
    """Registry with every (provider_id, client_kwargs) spec registered and initialized."""
    registry = ProviderRegistry(events or EventBus())
    clients: dict[str, list[FakeClient]] = {}
    for provider_id, kwargs in specs:
        clients[provider_id] = register_fake(registry, provider_id, **kwargs)
    await registry.initialize_all()
    return registry, clients
