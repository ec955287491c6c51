"""LM Studio local server client.

LM Studio speaks the OpenAI wire format on localhost and needs no credential,
so it is always considered configured. Local inference is free.
"""

from __future__ import annotations

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
from switchboard.clients.http import HttpTransport, validate_endpoint
from switchboard.clients.openai_compatible import OpenAICompatibleAPI
from switchboard.core.provider_config import ProviderConfig
from switchboard.streaming.chunks import StreamChunk, Usage

LMSTUDIO_DEFAULT_CONFIG = ProviderConfig(
    name="LM Studio",
    base_url="http://localhost:1234/v1",
    default_model="google/gemma-3-4b",
    timeout_ms=30000,
)

LMSTUDIO_PROBE_TIMEOUT_MS = 5000


class LMStudioClient(ProviderClient):
    provider_id = "lmstudio"
    display_name = "LM Studio"

    def __init__(self, config: ProviderConfig, *, probe_timeout_ms: int = LMSTUDIO_PROBE_TIMEOUT_MS) -> None:
        self.config = config
        self._http = HttpTransport(
            provider_id=self.provider_id,
            base_url=config.base_url,
            headers={"Content-Type": "application/json", **config.custom_headers},
            timeout_ms=config.timeout_ms,
            probe_timeout_ms=min(probe_timeout_ms, LMSTUDIO_PROBE_TIMEOUT_MS),
        )
        self._api = OpenAICompatibleAPI(self._http, self.provider_id, include_stream_usage=False)

    @property
    def default_model(self) -> str:
        return self.config.default_model

    async def initialize(self) -> None:
        validate_endpoint(self.provider_id, self.config.base_url, self.config.default_model)

    def is_configured(self) -> bool:
        return True

    def capabilities(self) -> Capabilities:
        return Capabilities(
            streaming=True,
            function_calling=False,
            vision=False,
            reasoning=False,
            max_context_length=8192,
            supported_formats=("text",),
        )

    async def list_models(self) -> list[ModelInfo]:
        return await self._api.list_models()

    async def complete(
        self, messages: Sequence[ChatMessage], options: CompletionOptions
    ) -> CompletionResult:
        return await self._api.complete(messages, options, options.model or self.default_model)

    async def stream_completion(
        self, messages: Sequence[ChatMessage], options: CompletionOptions
    ) -> AsyncIterator[StreamChunk]:
        async for chunk in self._api.stream(messages, options, options.model or self.default_model):
            yield chunk

    async def test_connection(self) -> ConnectionResult:
        return await self._api.probe()

    def calculate_cost(self, usage: Usage | None, model: str | None) -> float:
        return 0.0

    async def aclose(self) -> None:
        await self._http.aclose()
