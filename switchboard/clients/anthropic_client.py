"""Anthropic Messages API client.

Talks to /v1/messages directly; system turns are lifted out of the message
list into the top-level ``system`` field as the Messages API requires.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Sequence
from typing import Any

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
from switchboard.core.errors import ConfigurationError, ProviderError, UpstreamHTTPError
from switchboard.core.logging import conversation_logger
from switchboard.core.provider_config import ProviderConfig
from switchboard.streaming.chunks import StreamChunk, Usage
from switchboard.streaming.normalizer import normalize_stream
from switchboard.streaming.typed_events import TypedEventParser

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096

# USD per 1K tokens
ANTHROPIC_PRICING = {
    "claude-3-5-sonnet-20241022": Pricing(input=0.003, output=0.015),
    "claude-3-5-haiku-20241022": Pricing(input=0.0008, output=0.004),
    "claude-3-opus-20240229": Pricing(input=0.015, output=0.075),
    "claude-3-sonnet-20240229": Pricing(input=0.003, output=0.015),
    "claude-3-haiku-20240307": Pricing(input=0.00025, output=0.00125),
}

ANTHROPIC_DEFAULT_CONFIG = ProviderConfig(
    name="Anthropic",
    base_url="https://api.anthropic.com",
    api_version="v1",
    default_model="claude-3-5-sonnet-20241022",
    timeout_ms=60000,
)


class AnthropicClient(ProviderClient):
    """Client for the Anthropic Messages API."""

    provider_id = "anthropic"
    display_name = "Anthropic"

    def __init__(self, config: ProviderConfig, *, probe_timeout_ms: int = 10000) -> None:
        """Initialize Anthropic client."""
        self.config = config

        headers = {
            "content-type": "application/json",
            "anthropic-version": ANTHROPIC_VERSION,
        }
        if config.api_key:
            headers["x-api-key"] = config.api_key
        headers.update(config.custom_headers)

        self._http = HttpTransport(
            provider_id=self.provider_id,
            base_url=config.base_url,
            headers=headers,
            timeout_ms=config.timeout_ms,
            probe_timeout_ms=probe_timeout_ms,
        )
        prefix = f"/{config.api_version}" if config.api_version else ""
        self._messages_path = f"{prefix}/messages"
        self._models_path = f"{prefix}/models"

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
            vision=True,
            reasoning=True,
            max_context_length=200000,
            supported_formats=("text", "image", "document"),
        )

    def _require_credentials(self) -> None:
        if not self.is_configured():
            raise ConfigurationError(
                "Anthropic API key is required. Please configure it in settings.",
                provider_id=self.provider_id,
            )

    def build_body(
        self,
        messages: Sequence[ChatMessage],
        options: CompletionOptions,
        model: str,
        *,
        stream: bool,
    ) -> dict[str, Any]:
        system_parts = [options.system_prompt] if options.system_prompt else []
        turns: list[dict[str, str]] = []
        for message in messages:
            if message.role == "system":
                system_parts.append(message.content)
            else:
                role = "assistant" if message.role == "assistant" else "user"
                turns.append({"role": role, "content": message.content})

        body: dict[str, Any] = {
            "model": model,
            "max_tokens": options.max_tokens or DEFAULT_MAX_TOKENS,
            "messages": turns,
            "stream": stream,
        }
        if system_parts:
            body["system"] = "\n\n".join(system_parts)
        if options.temperature is not None:
            body["temperature"] = options.temperature
        if options.top_p is not None:
            body["top_p"] = options.top_p
        if options.stop_sequences:
            body["stop_sequences"] = list(options.stop_sequences)
        return body

    async def list_models(self) -> list[ModelInfo]:
        if not self.is_configured():
            return []
        try:
            data = await self._http.get_json(self._models_path)
        except ProviderError as e:
            logger.warning(f"Failed to fetch Anthropic models: {e.message}")
            return []
        entries = data.get("data") if isinstance(data, dict) else None
        return [
            ModelInfo(
                id=entry["id"],
                provider_id=self.provider_id,
                display_name=entry.get("display_name") or entry["id"],
                context_length=200000,
            )
            for entry in entries or []
            if isinstance(entry, dict) and isinstance(entry.get("id"), str)
        ]

    async def complete(
        self, messages: Sequence[ChatMessage], options: CompletionOptions
    ) -> CompletionResult:
        self._require_credentials()
        model = options.model or self.default_model
        start_time = time.time()
        conversation_logger.debug(f"📤 ANTHROPIC REQUEST | Model: {model}")

        data = await self._http.post_json(
            self._messages_path, self.build_body(messages, options, model, stream=False), model=model
        )
        if not isinstance(data, dict) or not isinstance(data.get("content"), list):
            raise UpstreamHTTPError(
                "Malformed Anthropic response", status_code=502, provider_id=self.provider_id, model=model
            )

        duration_ms = (time.time() - start_time) * 1000
        conversation_logger.debug(f"📥 ANTHROPIC RESPONSE | Duration: {duration_ms:.0f}ms")

        text = "".join(
            block.get("text", "")
            for block in data["content"]
            if isinstance(block, dict) and block.get("type") == "text"
        )
        return CompletionResult(
            text=text,
            model=data.get("model") or model,
            provider_id=self.provider_id,
            usage=Usage.from_mapping(data.get("usage")),
            stop_reason=data.get("stop_reason"),
        )

    async def stream_completion(
        self, messages: Sequence[ChatMessage], options: CompletionOptions
    ) -> AsyncIterator[StreamChunk]:
        self._require_credentials()
        model = options.model or self.default_model
        conversation_logger.debug(f"📤 ANTHROPIC STREAM | Model: {model}")

        body = self.build_body(messages, options, model, stream=True)
        async with self._http.stream(self._messages_path, body, model=model) as pieces:
            parser = TypedEventParser(provider_id=self.provider_id)
            async for chunk in normalize_stream(parser, pieces, provider_id=self.provider_id):
                yield chunk

    async def test_connection(self) -> ConnectionResult:
        if not self.is_configured():
            return ConnectionResult(connected=False, error="API key not configured")
        return await self._http.probe(self._models_path)

    def calculate_cost(self, usage: Usage | None, model: str | None) -> float:
        return cost_from_pricing(ANTHROPIC_PRICING, usage, model)

    async def aclose(self) -> None:
        await self._http.aclose()
