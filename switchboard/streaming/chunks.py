"""Vendor-neutral stream data types."""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any


def _first_int(data: Mapping[str, Any], *keys: str) -> int | None:
    for key in keys:
        value = data.get(key)
        if isinstance(value, int | float) and not isinstance(value, bool):
            return int(value)
    return None


@dataclass(frozen=True, slots=True)
class Usage:
    """Token accounting for one completion."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "Usage | None":
        """Build Usage from any vendor's usage object.

        Understands OpenAI-style (prompt_tokens), Anthropic-style
        (input_tokens) and Gemini-style (promptTokenCount) field names.
        """
        if not isinstance(data, Mapping):
            return None
        prompt = _first_int(data, "prompt_tokens", "input_tokens", "promptTokenCount")
        completion = _first_int(
            data, "completion_tokens", "output_tokens", "candidatesTokenCount"
        )
        total = _first_int(data, "total_tokens", "totalTokenCount")
        if prompt is None and completion is None and total is None:
            return None
        prompt = prompt or 0
        completion = completion or 0
        return cls(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=total if total is not None else prompt + completion,
        )

    def merge(self, other: "Usage | None") -> "Usage":
        """Combine partial reports; non-zero fields of other win."""
        if other is None:
            return self
        prompt = other.prompt_tokens or self.prompt_tokens
        completion = other.completion_tokens or self.completion_tokens
        return Usage(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=max(other.total_tokens, prompt + completion),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True, slots=True)
class StreamChunk:
    """One step of a normalized stream.

    Every chunk before the last has finished=False. The last chunk has
    finished=True, an empty delta_text and the complete full_text.
    """

    delta_text: str
    full_text: str
    finished: bool = False
    usage: Usage | None = None
    stop_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "delta_text": self.delta_text,
            "full_text": self.full_text,
            "finished": self.finished,
            "usage": self.usage.to_dict() if self.usage else None,
            "stop_reason": self.stop_reason,
        }


@dataclass(frozen=True, slots=True)
class ParsedDelta:
    """What a wire-format parser extracted from one complete record."""

    text: str = ""
    usage: Usage | None = None
    stop_reason: str | None = None
    terminal: bool = False
