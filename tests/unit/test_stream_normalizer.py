import pytest

from switchboard.streaming.bracketed_array import BracketedArrayParser
from switchboard.streaming.normalizer import normalize_stream
from switchboard.streaming.sse_lines import DeltaJsonLineParser
from switchboard.streaming.typed_events import TypedEventParser


async def _pieces(items):
    for item in items:
        yield item


async def _collect(parser, items):
    return [chunk async for chunk in normalize_stream(parser, _pieces(items), provider_id="test")]


@pytest.mark.unit
class TestNormalizeStream:
    @pytest.mark.asyncio
    async def test_exactly_one_final_chunk_last(self, openai_streaming_chunks):
        chunks = await _collect(DeltaJsonLineParser(), [c.decode() for c in openai_streaming_chunks])

        assert [chunk.finished for chunk in chunks] == [False, False, True]
        assert [chunk.delta_text for chunk in chunks] == ["Hello", "!", ""]
        assert chunks[1].full_text == "Hello!"
        final = chunks[-1]
        assert final.full_text == "Hello!"
        assert final.stop_reason == "stop"
        assert final.usage.total_tokens == 11

    @pytest.mark.asyncio
    async def test_full_text_is_prefix_of_next(self, anthropic_streaming_events):
        chunks = await _collect(TypedEventParser(), [e.decode() for e in anthropic_streaming_events])
        for previous, current in zip(chunks, chunks[1:]):
            assert current.full_text.startswith(previous.full_text)
        assert chunks[-1].usage.prompt_tokens == 10
        assert chunks[-1].usage.completion_tokens == 15
        assert chunks[-1].usage.total_tokens == 25

    @pytest.mark.asyncio
    async def test_synthesizes_final_chunk_when_transport_closes_early(self):
        chunks = await _collect(
            DeltaJsonLineParser(),
            ['data: {"choices":[{"delta":{"content":"partial"}}]}\n\n'],
        )
        assert chunks[-1].finished
        assert chunks[-1].full_text == "partial"
        assert sum(chunk.finished for chunk in chunks) == 1

    @pytest.mark.asyncio
    async def test_empty_stream_still_finishes(self):
        chunks = await _collect(BracketedArrayParser(), [])
        assert len(chunks) == 1
        assert chunks[0].finished
        assert chunks[0].full_text == ""

    @pytest.mark.asyncio
    async def test_nothing_read_after_terminator(self):
        consumed = []

        async def pieces():
            for piece in ["data: [DONE]\n\n", 'data: {"choices":[{"delta":{"content":"late"}}]}\n\n']:
                consumed.append(piece)
                yield piece

        chunks = [c async for c in normalize_stream(DeltaJsonLineParser(), pieces())]
        assert len(chunks) == 1
        assert chunks[0].full_text == ""
        assert len(consumed) == 1

    @pytest.mark.asyncio
    async def test_skipped_records_do_not_break_stream(self):
        chunks = await _collect(
            DeltaJsonLineParser(),
            [
                'data: {"choices":[{"delta":{"content":"a"}}]}\n',
                "data: {broken\n",
                'data: {"choices":[{"delta":{"content":"b"}}]}\n',
                "data: [DONE]\n",
            ],
        )
        assert chunks[-1].full_text == "ab"
