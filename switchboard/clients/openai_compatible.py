"""Chat-completions wire protocol shared by OpenAI, DeepSeek and LM Studio."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from typing import Any

from switchboard.clients.base import (
    ChatMessage,
    CompletionOptions,
    CompletionResult,
    ConnectionResult,
    ModelInfo,
)
from switchboard.clients.http import HttpTransport
from switchboard.core.errors import ProviderError, UpstreamHTTPError
from switchboard.streaming.chunks import StreamChunk, Usage
from switchboard.streaming.normalizer import normalize_stream
from switchboard.streaming.sse_lines import DeltaJsonLineParser

logger = logging.getLogger(__name__)


def build_messages(messages: Sequence[ChatMessage], system_prompt: str | None) -> list[dict[str, str]]:
    payload = [message.to_dict() for message in messages]
    if system_prompt:
        payload.insert(0, {"role": "system", "content": system_prompt})
    return payload


class OpenAICompatibleAPI:
    """Request construction and response parsing for /chat/completions."""

    def __init__(
        self,
        http: HttpTransport,
        provider_id: str,
        *,
        prefix: str = "",
        include_stream_usage: bool = True,
    ) -> None:
        self.http = http
        self.provider_id = provider_id
        self.chat_path = f"{prefix}/chat/completions"
        self.models_path = f"{prefix}/models"
        self.include_stream_usage = include_stream_usage

    def build_body(
        self,
        messages: Sequence[ChatMessage],
        options: CompletionOptions,
        model: str,
        *,
        stream: bool,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": model,
            "messages": build_messages(messages, options.system_prompt),
            "stream": stream,
        }
        if options.temperature is not None:
            body["temperature"] = options.temperature
        if options.max_tokens:
            body["max_tokens"] = options.max_tokens
        if options.top_p is not None:
            body["top_p"] = options.top_p
        if options.stop_sequences:
            body["stop"] = list(options.stop_sequences)
        if stream and self.include_stream_usage:
            body["stream_options"] = {"include_usage": True}
        return body

    async def complete(
        self, messages: Sequence[ChatMessage], options: CompletionOptions, model: str
    ) -> CompletionResult:
        body = self.build_body(messages, options, model, stream=False)
        data = await self.http.post_json(self.chat_path, body, model=model)

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise UpstreamHTTPError(
                "No choices in response", status_code=502, provider_id=self.provider_id, model=model
            )
        choice = choices[0] if isinstance(choices, list) else None
        message = (choice.get("message") or {}) if isinstance(choice, dict) else None
        if not isinstance(message, dict):
            raise UpstreamHTTPError(
                "Malformed choice in response", status_code=502, provider_id=self.provider_id, model=model
            )
        content = message.get("content")
        finish_reason = choice.get("finish_reason")
        return CompletionResult(
            text=content if isinstance(content, str) else "",
            model=data.get("model") or model,
            provider_id=self.provider_id,
            usage=Usage.from_mapping(data.get("usage")),
            stop_reason=finish_reason if isinstance(finish_reason, str) else None,
        )

    async def stream(
        self, messages: Sequence[ChatMessage], options: CompletionOptions, model: str
    ) -> AsyncIterator[StreamChunk]:
        body = self.build_body(messages, options, model, stream=True)
        async with self.http.stream(self.chat_path, body, model=model) as pieces:
            async for chunk in normalize_stream(
                DeltaJsonLineParser(), pieces, provider_id=self.provider_id
            ):
                yield chunk

    async def list_models(self, *, prefix_filter: str | None = None) -> list[ModelInfo]:
        try:
            data = await self.http.get_json(self.models_path)
        except ProviderError as e:
            logger.warning(f"Failed to fetch {self.provider_id} models: {e.message}")
            return []

        entries = data.get("data") if isinstance(data, dict) else None
        models = [
            ModelInfo(
                id=entry["id"],
                provider_id=self.provider_id,
                display_name=entry.get("display_name") or entry["id"],
                context_length=entry.get("context_length") or entry.get("max_context_length"),
            )
            for entry in entries or []
            if isinstance(entry, dict) and isinstance(entry.get("id"), str)
        ]
        if prefix_filter:
            models = [model for model in models if prefix_filter in model.id]
        return sorted(models, key=lambda model: model.id)

    async def probe(self) -> ConnectionResult:
        return await self.http.probe(self.models_path)
