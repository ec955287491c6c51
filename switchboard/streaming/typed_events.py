"""Parser for Anthropic Messages SSE streams.

Events are discriminated by the ``type`` field of each ``data:`` payload:

  message_start        -> prompt usage
  content_block_delta  -> text_delta carries text
  message_delta        -> stop_reason and completion usage (held)
  message_stop         -> terminal
  ping, content_block_start/stop, unknown types -> ignored
  error                -> upstream failure mid-stream
"""

import logging
from typing import Any

from switchboard.core.errors import StreamParseError, UpstreamErrorKind, UpstreamHTTPError
from switchboard.streaming.chunks import ParsedDelta, Usage
from switchboard.streaming.sse_lines import LineBuffer, decode_json_record, typed_field

logger = logging.getLogger(__name__)

_ERROR_STATUS = {
    "authentication_error": (401, UpstreamErrorKind.INVALID_CREDENTIAL),
    "permission_error": (403, UpstreamErrorKind.INVALID_CREDENTIAL),
    "not_found_error": (404, UpstreamErrorKind.MODEL_NOT_FOUND),
    "rate_limit_error": (429, UpstreamErrorKind.RATE_LIMITED),
    "overloaded_error": (529, UpstreamErrorKind.GENERIC),
}


class TypedEventParser:
    def __init__(self, provider_id: str = "anthropic") -> None:
        self._lines = LineBuffer()
        self._provider_id = provider_id
        self._stop_reason: str | None = None
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
        # The event: line duplicates the payload's type field
        if not line.startswith("data:"):
            return []
        payload = line[len("data:") :].strip()
        try:
            delta = self._parse_event(decode_json_record(payload))
        except StreamParseError as e:
            self.skipped_records += 1
            logger.warning(f"Skipping stream event: {e.message}")
            return []
        return [delta] if delta is not None else []

    def _parse_event(self, event: Any) -> ParsedDelta | None:
        if not isinstance(event, dict) or not isinstance(event.get("type"), str):
            raise StreamParseError("Stream event without a type discriminator")

        event_type = event["type"]
        if event_type == "message_start":
            message = typed_field(event, "message", dict)
            return ParsedDelta(usage=Usage.from_mapping(message.get("usage")))

        if event_type == "content_block_delta":
            delta = event.get("delta")
            if not isinstance(delta, dict):
                raise StreamParseError("content_block_delta without a delta object")
            if delta.get("type") == "text_delta":
                text = delta.get("text", "")
                if not isinstance(text, str):
                    raise StreamParseError("text_delta without string text")
                return ParsedDelta(text=text)
            return None

        if event_type == "message_delta":
            delta = typed_field(event, "delta", dict)
            if isinstance(delta.get("stop_reason"), str):
                self._stop_reason = delta["stop_reason"]
            return ParsedDelta(usage=Usage.from_mapping(event.get("usage")))

        if event_type == "message_stop":
            return ParsedDelta(stop_reason=self._stop_reason, terminal=True)

        if event_type == "error":
            self._raise_stream_error(typed_field(event, "error", dict))

        return None

    def _raise_stream_error(self, error: dict[str, Any]) -> None:
        status_code, kind = _ERROR_STATUS.get(
            str(error.get("type")), (500, UpstreamErrorKind.GENERIC)
        )
        raise UpstreamHTTPError(
            str(error.get("message") or "Stream error"),
            status_code=status_code,
            kind=kind,
            provider_id=self._provider_id,
        )
