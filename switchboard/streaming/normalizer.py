from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, AsyncIterable
from typing import Protocol

from switchboard.streaming.chunks import ParsedDelta, StreamChunk, Usage

logger = logging.getLogger(__name__)


class StreamParser(Protocol):
    skipped_records: int

    def feed(self, text: str) -> list[ParsedDelta]: ...

    def close(self) -> list[ParsedDelta]: ...


async def normalize_stream(
    parser: StreamParser,
    pieces: AsyncIterable[str],
    *,
    provider_id: str | None = None,
) -> AsyncGenerator[StreamChunk, None]:
    """Turn raw transport text into StreamChunks.

    Emits one chunk per non-empty text delta, then exactly one terminal
    chunk. The terminal chunk is synthesized when the transport closes
    without the wire format's own terminator. Anything after the
    terminator is not read.
    """
    parts: list[str] = []
    usage: Usage | None = None
    stop_reason: str | None = None

    def absorb(delta: ParsedDelta) -> StreamChunk | None:
        nonlocal usage, stop_reason
        if delta.usage is not None:
            usage = delta.usage if usage is None else usage.merge(delta.usage)
        if delta.stop_reason:
            stop_reason = delta.stop_reason
        if not delta.text:
            return None
        parts.append(delta.text)
        return StreamChunk(delta_text=delta.text, full_text="".join(parts))

    def terminal() -> StreamChunk:
        if parser.skipped_records:
            logger.info(
                f"Stream from {provider_id or 'provider'} finished with "
                f"{parser.skipped_records} skipped record(s)"
            )
        return StreamChunk(
            delta_text="",
            full_text="".join(parts),
            finished=True,
            usage=usage,
            stop_reason=stop_reason,
        )

    async for piece in pieces:
        for delta in parser.feed(piece):
            chunk = absorb(delta)
            if chunk is not None:
                yield chunk
            if delta.terminal:
                yield terminal()
                return

    for delta in parser.close():
        chunk = absorb(delta)
        if chunk is not None:
            yield chunk
        if delta.terminal:
            break

    logger.debug(f"Stream from {provider_id or 'provider'} closed; emitting final chunk")
    yield terminal()
