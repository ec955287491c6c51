"""Google Gemini generateContent client.

streamGenerateContent (without ``alt=sse``) answers with a single JSON array
that grows element by element, so streaming goes through the
bracketed-array parser rather than a line splitter.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from typing import Any

from switchboard.clients.base import (
    CHARS_PER_TOKEN,
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
from switchboard.core.provider_config import ProviderConfig
from switchboard.streaming.bracketed_array import BracketedArrayParser
from switchboard.streaming.chunks import StreamChunk, Usage
from switchboard.streaming.normalizer import normalize_stream

logger = logging.getLogger(__name__)

DEFAULT_MAX_OUTPUT_TOKENS = 8192

# USD per 1M characters
GEMINI_PRICING = {
    "gemini-1.5-flash": Pricing(input=0.075, output=0.30, per=1_000_000),
    "gemini-1.5-pro": Pricing(input=3.50, output=10.50, per=1_000_000),
    "gemini-1.0-pro": Pricing(input=1.50, output=4.50, per=1_000_000),
}

GEMINI_DEFAULT_CONFIG = ProviderConfig(
    name="Google Gemini",
    base_url="https://generativelanguage.googleapis.com/v1beta",
    default_model="gemini-1.5-flash",
    timeout_ms=60000,
)

# Flash first, then Pro, then everything else
_MODEL_PRIORITY = {
    "gemini-1.5-flash": 1,
    "gemini-1.5-pro": 2,
    "gemini-1.0-pro": 3,
}


def _bare_model(model: str) -> str:
    return model.removeprefix("models/")


class GeminiClient(ProviderClient):
    provider_id = "gemini"
    display_name = "Google Gemini"

    def __init__(self, config: ProviderConfig, *, probe_timeout_ms: int = 10000) -> None:
        self.config = config
        headers = {"Content-Type": "application/json", **config.custom_headers}
        if config.api_key:
            headers["x-goog-api-key"] = config.api_key
        self._http = HttpTransport(
            provider_id=self.provider_id,
            base_url=config.base_url,
            headers=headers,
            timeout_ms=config.timeout_ms,
            probe_timeout_ms=probe_timeout_ms,
        )

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
            max_context_length=1000000,
            supported_formats=("text", "image"),
        )

    def _require_credentials(self) -> None:
        if not self.is_configured():
            raise ConfigurationError(
                "Gemini API key is required. Please configure it in settings.",
                provider_id=self.provider_id,
            )

    def build_body(self, messages: Sequence[ChatMessage], options: CompletionOptions) -> dict[str, Any]:
        system_parts = [options.system_prompt] if options.system_prompt else []
        contents: list[dict[str, Any]] = []
        for message in messages:
            if message.role == "system":
                system_parts.append(message.content)
                continue
            contents.append(
                {
                    "role": "user" if message.role == "user" else "model",
                    "parts": [{"text": message.content}],
                }
            )

        generation_config: dict[str, Any] = {
            "maxOutputTokens": options.max_tokens or DEFAULT_MAX_OUTPUT_TOKENS,
        }
        if options.temperature is not None:
            generation_config["temperature"] = options.temperature
        if options.top_p is not None:
            generation_config["topP"] = options.top_p
        if options.stop_sequences:
            generation_config["stopSequences"] = list(options.stop_sequences)

        body: dict[str, Any] = {"contents": contents, "generationConfig": generation_config}
        if system_parts:
            body["systemInstruction"] = {"parts": [{"text": "\n\n".join(system_parts)}]}
        return body

    async def list_models(self) -> list[ModelInfo]:
        if not self.is_configured():
            return []
        try:
            data = await self._http.get_json("/models")
        except ProviderError as e:
            logger.warning(f"Failed to fetch Gemini models: {e.message}")
            return []

        entries = data.get("models") if isinstance(data, dict) else None
        models = [
            ModelInfo(
                id=_bare_model(entry["name"]),
                provider_id=self.provider_id,
                display_name=entry.get("displayName") or _bare_model(entry["name"]),
                context_length=entry.get("inputTokenLimit"),
            )
            for entry in entries or []
            if isinstance(entry, dict) and str(entry.get("name", "")).startswith("models/gemini-")
        ]
        return sorted(models, key=lambda model: (_MODEL_PRIORITY.get(model.id, 99), model.id))

    async def complete(
        self, messages: Sequence[ChatMessage], options: CompletionOptions
    ) -> CompletionResult:
        self._require_credentials()
        model = _bare_model(options.model or self.default_model)
        data = await self._http.post_json(
            f"/models/{model}:generateContent", self.build_body(messages, options), model=model
        )

        candidates = data.get("candidates") if isinstance(data, dict) else None
        if not candidates:
            raise UpstreamHTTPError(
                "No candidates returned from Gemini API",
                status_code=502,
                provider_id=self.provider_id,
                model=model,
            )
        candidate = candidates[0] if isinstance(candidates, list) else None
        content = (candidate.get("content") or {}) if isinstance(candidate, dict) else None
        parts = (content.get("parts") or []) if isinstance(content, dict) else None
        if not isinstance(parts, list):
            raise UpstreamHTTPError(
                "Malformed candidate returned from Gemini API",
                status_code=502,
                provider_id=self.provider_id,
                model=model,
            )
        text = "".join(
            part["text"] for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str)
        )
        finish_reason = candidate.get("finishReason")
        return CompletionResult(
            text=text,
            model=model,
            provider_id=self.provider_id,
            usage=Usage.from_mapping(data.get("usageMetadata")),
            stop_reason=finish_reason if isinstance(finish_reason, str) else None,
        )

    async def stream_completion(
        self, messages: Sequence[ChatMessage], options: CompletionOptions
    ) -> AsyncIterator[StreamChunk]:
        self._require_credentials()
        model = _bare_model(options.model or self.default_model)
        path = f"/models/{model}:streamGenerateContent"
        async with self._http.stream(path, self.build_body(messages, options), model=model) as pieces:
            async for chunk in normalize_stream(
                BracketedArrayParser(), pieces, provider_id=self.provider_id
            ):
                yield chunk

    async def test_connection(self) -> ConnectionResult:
        if not self.is_configured():
            return ConnectionResult(connected=False, error="API key not configured")
        return await self._http.probe("/models")

    def calculate_cost(self, usage: Usage | None, model: str | None) -> float:
        if usage is None or model is None:
            return 0.0
        # Pricing is per character; usage is in tokens
        as_characters = Usage(
            prompt_tokens=usage.prompt_tokens * CHARS_PER_TOKEN,
            completion_tokens=usage.completion_tokens * CHARS_PER_TOKEN,
            total_tokens=usage.total_tokens * CHARS_PER_TOKEN,
        )
        return cost_from_pricing(GEMINI_PRICING, as_characters, _bare_model(model))

    async def aclose(self) -> None:
        await self._http.aclose()
