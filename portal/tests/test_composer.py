"""Tests for AnswerComposer."""

import asyncio

import pytest

from portal.common.errors import GenerationError, IncompleteStreamError
from portal.common.llm_client import StreamEvent
from portal.retriever.composer import (
    NO_RESOURCES_ANSWER,
    SYSTEM_PROMPT,
    AnswerComposer,
    resolve_names,
)
from portal.retriever.ranker import RankedResult
from portal.tests.conftest import FakeLLM, make_record, stream_of


@pytest.fixture
def ranked():
    records = [
        make_record(1, "Spotter Platform", summary="Modular marine monitoring", body="Detailed platform text"),
        make_record(2, "Spotter Master Sales Deck", summary="Core slides"),
        make_record(3, "Great Lakes Blog", summary="Buoys in the Great Lakes"),
    ]
    return [RankedResult(record=r, score=0.9 - i * 0.1) for i, r in enumerate(records)]


class TestResolveNames:
    def test_exact_match_preferred_over_substring(self, ranked):
        records = [r.record for r in ranked]
        assert resolve_names(["spotter master sales deck"], records) == [2]
        assert resolve_names(["Spotter Platform"], records) == [1]

    def test_substring_either_direction(self, ranked):
        records = [r.record for r in ranked]
        assert resolve_names(["Great Lakes"], records) == [3]
        assert resolve_names(["The Great Lakes Blog post"], records) == [3]

    def test_unresolved_dropped_and_duplicates_collapsed(self, ranked):
        records = [r.record for r in ranked]
        assert resolve_names(["Nope", "Great Lakes Blog", "great lakes blog"], records) == [3]


class TestPrompt:
    def test_prompt_contains_record_blocks_and_question(self, ranked):
        prompt = AnswerComposer.build_prompt("What is Spotter?", [r.record for r in ranked])

        assert prompt.startswith("RESOURCES INFORMATION:")
        assert prompt.endswith("QUESTION: What is Spotter?")
        assert "RESOURCE: Spotter Platform" in prompt
        assert "DETAILED DESCRIPTION: Detailed platform text" in prompt
        assert prompt.count("----------------------------------") == 2
        assert "RELEVANT_RESOURCES" in SYSTEM_PROMPT

    def test_prompt_is_deterministic(self, ranked):
        records = [r.record for r in ranked]
        assert AnswerComposer.build_prompt("q", records) == AnswerComposer.build_prompt("q", records)


class TestStreaming:
    @pytest.mark.asyncio
    async def test_chunks_forwarded_in_order(self, ranked):
        llm = FakeLLM(events=stream_of("The ", "Spotter ", 'Platform.\nRELEVANT_RESOURCES: ["Spotter Platform"]'))
        chunks = []

        answer = await AnswerComposer(llm).answer("q", ranked, on_chunk=chunks.append)

        assert chunks == ["The ", "Spotter ", 'Platform.\nRELEVANT_RESOURCES: ["Spotter Platform"]']
        assert answer.text == "The Spotter Platform."
        assert answer.relevant_record_ids == [1]
        assert llm.stream_closed

    @pytest.mark.asyncio
    async def test_async_chunk_callback(self, ranked):
        llm = FakeLLM(events=stream_of("a", "b"))
        seen = []

        async def on_chunk(text):
            seen.append(text)

        await AnswerComposer(llm).answer("q", ranked, on_chunk=on_chunk)
        assert seen == ["a", "b"]

    @pytest.mark.asyncio
    async def test_missing_terminal_raises_incomplete(self, ranked):
        llm = FakeLLM(events=stream_of("partial ", "answer", done=False))
        chunks = []

        with pytest.raises(IncompleteStreamError):
            await AnswerComposer(llm).answer("q", ranked, on_chunk=chunks.append)

        assert chunks == ["partial ", "answer"]
        assert llm.stream_closed

    @pytest.mark.asyncio
    async def test_error_event_raises_generation_error(self, ranked):
        llm = FakeLLM(events=[StreamEvent.delta("x"), StreamEvent.failed("blocked")])
        with pytest.raises(GenerationError, match="blocked"):
            await AnswerComposer(llm).answer("q", ranked, on_chunk=lambda t: None)
        assert llm.stream_closed

    @pytest.mark.asyncio
    async def test_cancellation_closes_stream(self, ranked):
        gate = asyncio.Event()

        class HangingLLM(FakeLLM):
            async def stream(self, prompt, **kwargs):
                try:
                    yield StreamEvent.delta("first")
                    await gate.wait()
                    yield StreamEvent.done()
                finally:
                    self.stream_closed = True

        llm = HangingLLM()
        chunks = []
        task = asyncio.create_task(AnswerComposer(llm).answer("q", ranked, on_chunk=chunks.append))
        while not chunks:
            await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert chunks == ["first"]
        assert llm.stream_closed


class TestBlocking:
    @pytest.mark.asyncio
    async def test_non_streaming_uses_generate(self, ranked):
        llm = FakeLLM(text='Answer.\nRELEVANT_RESOURCES: ["Great Lakes Blog", "Spotter Master Sales Deck"]')
        answer = await AnswerComposer(llm).answer("q", ranked)

        assert llm.generate_calls == 1
        assert llm.stream_calls == 0
        assert answer.text == "Answer."
        assert answer.relevant_record_ids == [3, 2]

    @pytest.mark.asyncio
    async def test_no_annotation_returns_all_ids(self, ranked):
        answer = await AnswerComposer(FakeLLM(text="Plain answer")).answer("q", ranked)
        assert answer.relevant_record_ids == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_unparseable_annotation_returns_all_ids(self, ranked):
        llm = FakeLLM(text="Answer.\nRELEVANT_RESOURCES:\nsee above\nand more")
        answer = await AnswerComposer(llm).answer("q", ranked)
        assert answer.text == "Answer."
        assert answer.relevant_record_ids == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_empty_ranked_short_circuits(self):
        llm = FakeLLM(text="unused")
        answer = await AnswerComposer(llm).answer("q", [])
        assert answer.text == NO_RESOURCES_ANSWER
        assert answer.relevant_record_ids == []
        assert llm.generate_calls == 0

    @pytest.mark.asyncio
    async def test_unavailable_llm_raises(self, ranked):
        with pytest.raises(GenerationError):
            await AnswerComposer(FakeLLM(available=False)).answer("q", ranked)
