"""DeepSeek client (OpenAI-compatible wire format)."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence

from switchboard.clients.base import (
    Capabilities,
    ChatMessage,
    CompletionOptions,
    CompletionResult,
    ConnectionResult,
    ModelInfo,
    Pricing,
    ProviderClient,
    cost_from_pricing,
)
from switchboard.clients.http import HttpTransport, validate_endpoint
from switchboard.clients.openai_compatible import OpenAICompatibleAPI
from switchboard.core.errors import ConfigurationError
from switchboard.core.provider_config import ProviderConfig
from switchboard.streaming.chunks import StreamChunk, Usage

# USD per 1K tokens
DEEPSEEK_PRICING = {
    "deepseek-chat": Pricing(input=0.00014, output=0.00028),
    "deepseek-reasoner": Pricing(input=0.00055, output=0.0022),
}

DEEPSEEK_DEFAULT_CONFIG = ProviderConfig(
    name="DeepSeek",
    base_url="https://api.deepseek.com",
    default_model="deepseek-chat",
    timeout_ms=60000,
)

# Served when the models endpoint is unavailable
DEEPSEEK_FALLBACK_MODELS = ("deepseek-chat", "deepseek-reasoner")


class DeepSeekClient(ProviderClient):
    provider_id = "deepseek"
    display_name = "DeepSeek"

    def __init__(self, config: ProviderConfig, *, probe_timeout_ms: int = 10000) -> None:
        self.config = config
        headers = {"Content-Type": "application/json", **config.custom_headers}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        self._http = HttpTransport(
            provider_id=self.provider_id,
            base_url=config.base_url,
            headers=headers,
            timeout_ms=config.timeout_ms,
            probe_timeout_ms=probe_timeout_ms,
        )
        prefix = f"/{config.api_version}" if config.api_version else ""
        self._api = OpenAICompatibleAPI(self._http, self.provider_id, prefix=prefix)

    @property
    def default_model(self) -> str:
        return self.config.default_model

    async def initialize(self) -> None:
        validate_endpoint(self.provider_id, self.config.base_url, self.config.default_model)

    def is_configured(self) -> bool:
        return self.config.has_api_key

    def capabilities(self) -> Capabilities:
        return Capabilities(
            streaming=True,
            function_calling=True,
            vision=False,
            reasoning=True,
            max_context_length=64000,
            supported_formats=("text",),
        )

    def _fallback_models(self) -> list[ModelInfo]:
        return [ModelInfo(id=model_id, provider_id=self.provider_id) for model_id in DEEPSEEK_FALLBACK_MODELS]

    async def list_models(self) -> list[ModelInfo]:
        if not self.is_configured():
            return []
        models = await self._api.list_models(prefix_filter="deepseek")
        return models or self._fallback_models()

    async def complete(
        self, messages: Sequence[ChatMessage], options: CompletionOptions
    ) -> CompletionResult:
        self._require_credentials()
        return await self._api.complete(messages, options, options.model or self.default_model)

    async def stream_completion(
        self, messages: Sequence[ChatMessage], options: CompletionOptions
    ) -> AsyncIterator[StreamChunk]:
        self._require_credentials()
        async for chunk in self._api.stream(messages, options, options.model or self.default_model):
            yield chunk

    def _require_credentials(self) -> None:
        if not self.is_configured():
            raise ConfigurationError(
                "DeepSeek API key is required. Please configure it in settings.",
                provider_id=self.provider_id,
            )

    async def test_connection(self) -> ConnectionResult:
        if not self.is_configured():
            return ConnectionResult(connected=False, error="API key not configured")
        return await self._api.probe()

    def calculate_cost(self, usage: Usage | None, model: str | None) -> float:
        return cost_from_pricing(DEEPSEEK_PRICING, usage, model)

    async def aclose(self) -> None:
        await self._http.aclose()
