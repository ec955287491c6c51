"""Request model tracked by the orchestrator."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from switchboard.clients.base import CompletionOptions
from switchboard.core.error_types import ErrorType
from switchboard.streaming.chunks import Usage


class RequestState(str, Enum):
    QUEUED = "queued"
    SELECTING = "selecting"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class RequestOptions:
    """Per-request routing and sampling options.

    Setting provider_id pins the request to that provider; a pinned request
    never runs anywhere else.
    """

    model: str | None = None
    provider_id: str | None = None
    streaming: bool = False
    required_capabilities: tuple[str, ...] = ()
    preferred_providers: tuple[str, ...] = ()
    exclude_providers: tuple[str, ...] = ()
    exclude_unhealthy: bool = False
    temperature: float | None = 0.7
    max_tokens: int | None = None
    top_p: float | None = None
    system_prompt: str | None = None

    @property
    def pinned(self) -> bool:
        return self.provider_id is not None

    def completion_options(self) -> CompletionOptions:
        return CompletionOptions(
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            top_p=self.top_p,
            system_prompt=self.system_prompt,
        )


@dataclass
class Request:
    id: str
    chat_id: str
    message: str
    options: RequestOptions
    sequence: int
    created_at: float = field(default_factory=time.time)
    attempts: int = 0
    state: RequestState = RequestState.QUEUED
    provider_id: str | None = None
    chunks_emitted: int = 0


@dataclass(frozen=True)
class RequestRecord:
    """Terminal outcome of one request, kept for analytics."""

    request_id: str
    chat_id: str
    provider_id: str | None
    model: str | None
    success: bool
    duration_ms: float
    attempts: int
    streaming: bool
    usage: Usage | None = None
    error_type: ErrorType | None = None
    error: str | None = None
    completed_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "chat_id": self.chat_id,
            "provider_id": self.provider_id,
            "model": self.model,
            "success": self.success,
            "duration_ms": round(self.duration_ms, 1),
            "attempts": self.attempts,
            "streaming": self.streaming,
            "usage": self.usage.to_dict() if self.usage else None,
            "error_type": self.error_type.value if self.error_type else None,
            "error": self.error,
            "completed_at": self.completed_at,
        }
