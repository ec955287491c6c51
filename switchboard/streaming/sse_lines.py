"""Parser for OpenAI-compatible ``data: {...}`` delta streams."""

import json
import logging
from typing import Any

from switchboard.core.errors import StreamParseError
from switchboard.streaming.chunks import ParsedDelta, Usage

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


class LineBuffer:
    """Split arbitrary text pieces into complete lines."""

    def __init__(self) -> None:
        self._pending = ""

    def feed(self, text: str) -> list[str]:
        self._pending += text
        lines = self._pending.split("\n")
        self._pending = lines.pop()
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> list[str]:
        remainder, self._pending = self._pending, ""
        return [remainder.rstrip("\r")] if remainder.strip() else []


def decode_json_record(payload: str) -> Any:
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        raise StreamParseError(f"Malformed stream record: {payload[:80]!r}") from e


def typed_field(record: dict[str, Any], key: str, kind: type) -> Any:
    """record[key] when it has the expected JSON type; an empty kind() when absent or null."""
    value = record.get(key)
    if value is None:
        return kind()
    if not isinstance(value, kind):
        raise StreamParseError(
            f"Expected '{key}' to be {kind.__name__}, got {type(value).__name__}"
        )
    return value


class DeltaJsonLineParser:
    """Decode ``data:`` lines carrying choice deltas, ending with ``[DONE]``."""

    def __init__(self) -> None:
        self._lines = LineBuffer()
        self.skipped_records = 0

    def feed(self, text: str) -> list[ParsedDelta]:
        deltas: list[ParsedDelta] = []
        for line in self._lines.feed(text):
            deltas.extend(self._parse_line(line))
        return deltas

    def close(self) -> list[ParsedDelta]:
        deltas: list[ParsedDelta] = []
        for line in self._lines.flush():
            deltas.extend(self._parse_line(line))
        return deltas

    def _parse_line(self, line: str) -> list[ParsedDelta]:
        line = line.strip()
        if not line.startswith("data:"):
            # Blank separators, comments and other SSE fields carry no content
            return []
        payload = line[len("data:") :].strip()
        if payload == DONE_SENTINEL:
            return [ParsedDelta(terminal=True)]
        try:
            return [self._parse_record(decode_json_record(payload))]
        except StreamParseError as e:
            self.skipped_records += 1
            logger.warning(f"Skipping stream record: {e.message}")
            return []

    @staticmethod
    def _parse_record(record: Any) -> ParsedDelta:
        if not isinstance(record, dict):
            raise StreamParseError(f"Expected an object, got {type(record).__name__}")

        text = ""
        stop_reason = None
        choices = typed_field(record, "choices", list)
        if choices:
            choice = choices[0]
            if not isinstance(choice, dict):
                raise StreamParseError("Malformed choice in stream record")
            content = typed_field(choice, "delta", dict).get("content")
            if isinstance(content, str):
                text = content
            finish_reason = choice.get("finish_reason")
            stop_reason = finish_reason if isinstance(finish_reason, str) else None

        return ParsedDelta(
            text=text,
            usage=Usage.from_mapping(record.get("usage")),
            stop_reason=stop_reason,
        )
