"""Incremental parser for streams shaped as one JSON array.

Gemini's streamGenerateContent answers with ``[{...},\r\n{...}]`` delivered
in arbitrary pieces. Elements are extracted by tracking nesting depth while
honouring string literals and escapes, so brackets inside text never split
an element.
"""

import logging
from typing import Any

from switchboard.core.errors import StreamParseError
from switchboard.streaming.chunks import ParsedDelta, Usage
from switchboard.streaming.sse_lines import decode_json_record, typed_field

logger = logging.getLogger(__name__)

_OPENERS = "{["
_CLOSERS = "}]"


class BracketedArrayParser:
    def __init__(self) -> None:
        self._buffer = ""
        self._pos = 0
        self._element_start: int | None = None
        self._depth = 0
        self._in_string = False
        self._escaped = False
        self._opened = False
        self._closed = False
        self.skipped_records = 0

    def feed(self, text: str) -> list[ParsedDelta]:
        if self._closed:
            return []
        self._buffer += text
        deltas: list[ParsedDelta] = []

        while self._pos < len(self._buffer):
            char = self._buffer[self._pos]
            if self._element_start is None:
                if self._between_elements(char, self._pos):
                    deltas.append(ParsedDelta(terminal=True))
                    self._buffer = ""
                    self._pos = 0
                    return deltas
            elif self._inside_element(char):
                element = self._buffer[self._element_start : self._pos + 1]
                self._element_start = None
                deltas.extend(self._parse_element(element))
            self._pos += 1

        self._compact()
        return deltas

    def close(self) -> list[ParsedDelta]:
        if self._element_start is not None:
            self.skipped_records += 1
            logger.warning("Stream ended inside an unterminated array element")
        self._buffer = ""
        self._pos = 0
        self._element_start = None
        return []

    def _between_elements(self, char: str, index: int) -> bool:
        """Advance over separators; returns True when the outer array closes."""
        if char.isspace() or char == ",":
            return False
        if not self._opened:
            self._opened = True
            if char == "[":
                return False
            # Tolerate a bare object stream without the outer array
        elif char == "]":
            self._closed = True
            return True
        if char in _OPENERS:
            self._element_start = index
            self._depth = 1
        else:
            self.skipped_records += 1
            logger.warning(f"Skipping unexpected character in array stream: {char!r}")
        return False

    def _inside_element(self, char: str) -> bool:
        """Track nesting; returns True when the current element completes."""
        if self._in_string:
            if self._escaped:
                self._escaped = False
            elif char == "\\":
                self._escaped = True
            elif char == '"':
                self._in_string = False
            return False
        if char == '"':
            self._in_string = True
        elif char in _OPENERS:
            self._depth += 1
        elif char in _CLOSERS:
            self._depth -= 1
            return self._depth == 0
        return False

    def _compact(self) -> None:
        # Keep only the unconsumed remainder of a partial element
        if self._element_start is None:
            self._buffer = ""
            self._pos = 0
        else:
            self._buffer = self._buffer[self._element_start :]
            self._pos -= self._element_start
            self._element_start = 0

    def _parse_element(self, element: str) -> list[ParsedDelta]:
        try:
            record = decode_json_record(element)
            items = record if isinstance(record, list) else [record]
            return [self._parse_record(item) for item in items]
        except StreamParseError as e:
            self.skipped_records += 1
            logger.warning(f"Skipping stream element: {e.message}")
            return []

    @staticmethod
    def _parse_record(record: Any) -> ParsedDelta:
        if not isinstance(record, dict):
            raise StreamParseError(f"Expected an object, got {type(record).__name__}")
        text = ""
        stop_reason = None
        candidates = typed_field(record, "candidates", list)
        if candidates:
            candidate = candidates[0]
            if not isinstance(candidate, dict):
                raise StreamParseError("Malformed candidate in stream element")
            parts = typed_field(typed_field(candidate, "content", dict), "parts", list)
            text = "".join(
                part["text"]
                for part in parts
                if isinstance(part, dict) and isinstance(part.get("text"), str)
            )
            finish_reason = candidate.get("finishReason")
            stop_reason = finish_reason if isinstance(finish_reason, str) else None
        return ParsedDelta(
            text=text,
            usage=Usage.from_mapping(record.get("usageMetadata")),
            stop_reason=stop_reason,
        )
