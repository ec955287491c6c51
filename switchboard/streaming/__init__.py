"""Stream normalization: three wire formats in, StreamChunks out."""

from switchboard.streaming.bracketed_array import BracketedArrayParser
from switchboard.streaming.chunks import ParsedDelta, StreamChunk, Usage
from switchboard.streaming.normalizer import StreamParser, normalize_stream
from switchboard.streaming.sse_lines import DeltaJsonLineParser
from switchboard.streaming.typed_events import TypedEventParser

__all__ = [
    "BracketedArrayParser",
    "DeltaJsonLineParser",
    "ParsedDelta",
    "StreamChunk",
    "StreamParser",
    "TypedEventParser",
    "Usage",
    "normalize_stream",
]
