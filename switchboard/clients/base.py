"""Provider client contract and the value types it exchanges.

ProviderClient is a pure interface: it carries no state of its own. Shared
behaviour (HTTP transport, OpenAI-compatible request bodies) is composed into
concrete clients rather than inherited.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field, fields
from typing import Any, ClassVar

from switchboard.core.errors import StreamParseError
from switchboard.streaming.chunks import StreamChunk, Usage

CHARS_PER_TOKEN = 4


@dataclass(frozen=True, slots=True)
class ChatMessage:
    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True, slots=True)
class Capabilities:
    """Fixed capability record used to filter providers during selection."""

    streaming: bool = True
    function_calling: bool = False
    vision: bool = False
    reasoning: bool = False
    max_context_length: int = 4096
    supported_formats: tuple[str, ...] = ("text",)

    def flags(self) -> set[str]:
        """Names of the boolean capabilities this record enables."""
        return {f.name for f in fields(self) if getattr(self, f.name) is True}

    def satisfies(self, required: Iterable[str]) -> bool:
        enabled = self.flags() | set(self.supported_formats)
        return all(name in enabled for name in required)

    def to_dict(self) -> dict[str, Any]:
        return {
            "streaming": self.streaming,
            "function_calling": self.function_calling,
            "vision": self.vision,
            "reasoning": self.reasoning,
            "max_context_length": self.max_context_length,
            "supported_formats": list(self.supported_formats),
        }


@dataclass(frozen=True, slots=True)
class ModelInfo:
    id: str
    provider_id: str
    display_name: str | None = None
    context_length: int | None = None

    @property
    def qualified_id(self) -> str:
        return f"{self.provider_id}:{self.id}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "provider_id": self.provider_id,
            "qualified_id": self.qualified_id,
            "display_name": self.display_name or self.id,
            "context_length": self.context_length,
        }


@dataclass(frozen=True, slots=True)
class CompletionOptions:
    model: str | None = None
    temperature: float | None = 0.7
    max_tokens: int | None = None
    top_p: float | None = None
    system_prompt: str | None = None
    stop_sequences: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class CompletionResult:
    text: str
    model: str
    provider_id: str
    usage: Usage | None = None
    stop_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "model": self.model,
            "provider_id": self.provider_id,
            "usage": self.usage.to_dict() if self.usage else None,
            "stop_reason": self.stop_reason,
        }


@dataclass(frozen=True, slots=True)
class ConnectionResult:
    connected: bool
    latency_ms: float = 0.0
    status_code: int | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class Pricing:
    """Price per `per` units of input and output."""

    input: float
    output: float
    per: int = 1000


@dataclass
class ProviderMetrics:
    """Rolling per-instance request metrics.

    Mutated only through ProviderRegistry.record_request.
    """

    total_requests: int = 0
    success_count: int = 0
    failure_count: int = 0
    total_response_time_ms: float = 0.0
    total_tokens: int = 0
    total_cost: float = 0.0
    last_error: str | None = None
    last_request_at: float | None = None
    created_at: float = field(default_factory=time.time)

    @property
    def avg_response_time_ms(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.total_response_time_ms / self.total_requests

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.success_count / self.total_requests

    def record(
        self,
        duration_ms: float,
        success: bool,
        usage: Usage | None = None,
        cost: float = 0.0,
        error: str | None = None,
    ) -> None:
        self.total_requests += 1
        self.total_response_time_ms += duration_ms
        self.last_request_at = time.time()
        if success:
            self.success_count += 1
        else:
            self.failure_count += 1
            self.last_error = error
        if usage is not None:
            self.total_tokens += usage.total_tokens
        self.total_cost += cost

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "success_rate": round(self.success_rate, 4),
            "avg_response_time_ms": round(self.avg_response_time_ms, 1),
            "total_tokens": self.total_tokens,
            "total_cost": round(self.total_cost, 6),
            "last_error": self.last_error,
            "last_request_at": self.last_request_at,
        }


ChunkCallback = Callable[[StreamChunk], Awaitable[None] | None]


def estimate_tokens(text: str) -> int:
    return (len(text) + CHARS_PER_TOKEN - 1) // CHARS_PER_TOKEN


def cost_from_pricing(
    pricing: Mapping[str, Pricing], usage: Usage | None, model: str | None
) -> float:
    """Best-effort cost; unknown model or missing usage costs nothing."""
    if usage is None or model is None:
        return 0.0
    price = pricing.get(model)
    if price is None:
        return 0.0
    return (
        usage.prompt_tokens / price.per * price.input
        + usage.completion_tokens / price.per * price.output
    )


class ProviderClient(ABC):
    """Capability contract implemented by every vendor client."""

    provider_id: ClassVar[str]
    display_name: ClassVar[str]

    @abstractmethod
    async def initialize(self) -> None:
        """Validate configuration; raise ConfigurationError when unusable."""

    @abstractmethod
    def is_configured(self) -> bool:
        """Whether requests can be sent (credential present for hosted vendors)."""

    @abstractmethod
    def capabilities(self) -> Capabilities: ...

    @property
    @abstractmethod
    def default_model(self) -> str: ...

    @abstractmethod
    async def list_models(self) -> list[ModelInfo]:
        """Currently available models; empty (never raises) when unreachable."""

    @abstractmethod
    async def complete(
        self, messages: Sequence[ChatMessage], options: CompletionOptions
    ) -> CompletionResult: ...

    @abstractmethod
    def stream_completion(
        self, messages: Sequence[ChatMessage], options: CompletionOptions
    ) -> AsyncIterator[StreamChunk]:
        """Normalized chunks ending with exactly one finished chunk."""

    @abstractmethod
    async def test_connection(self) -> ConnectionResult:
        """Short-timeout reachability probe; never raises."""

    @abstractmethod
    def calculate_cost(self, usage: Usage | None, model: str | None) -> float:
        """Best-effort cost; never raises."""

    @abstractmethod
    async def aclose(self) -> None: ...

    async def complete_streaming(
        self,
        messages: Sequence[ChatMessage],
        options: CompletionOptions,
        on_chunk: ChunkCallback | None = None,
    ) -> CompletionResult:
        """Drive stream_completion, handing each chunk to on_chunk."""
        final: StreamChunk | None = None
        async for chunk in self.stream_completion(messages, options):
            if on_chunk is not None:
                result = on_chunk(chunk)
                if result is not None:
                    await result
            if chunk.finished:
                final = chunk
        if final is None:
            raise StreamParseError("Stream ended without a final chunk", provider_id=self.provider_id)
        return CompletionResult(
            text=final.full_text,
            model=options.model or self.default_model,
            provider_id=self.provider_id,
            usage=final.usage,
            stop_reason=final.stop_reason,
        )

    def estimate_usage(self, messages: Sequence[ChatMessage], completion_text: str) -> Usage:
        """Character-based token estimate used when the vendor reports none."""
        prompt = sum(estimate_tokens(message.content) for message in messages)
        completion = estimate_tokens(completion_text)
        return Usage(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=prompt + completion,
        )
