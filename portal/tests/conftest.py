"""Shared fakes for the portal test suite."""

import re
from typing import List, Optional

import pytest

from portal.common.llm_client import StreamEvent
from portal.common.schemas.record import Record, RecordDraft

VOCAB = [
    "smart", "mooring", "sensor", "spotter", "buoy", "holiday",
    "schedule", "ocean", "webinar", "oxygen", "reef", "current",
]


def keyword_vector(text: str) -> List[float]:
    """Deterministic bag-of-words vector over VOCAB"""
    words = re.findall(r"[a-z]+", text.lower())
    return [float(words.count(w)) for w in VOCAB]


class KeywordEmbedder:
    """Async embedding function that counts calls and can fail on demand"""

    def __init__(self, fail_on: Optional[str] = None, fail_times: Optional[int] = None):
        self.calls: List[str] = []
        self.fail_on = fail_on
        self.fail_times = fail_times
        self._failures = 0

    async def __call__(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail_on and self.fail_on in text:
            if self.fail_times is None or self._failures < self.fail_times:
                self._failures += 1
                raise RuntimeError(f"provider rejected {self.fail_on}")
        return keyword_vector(text)


class FakeLLM:
    """
    Scripted LLMClient stand-in.

    stream() yields the given events in order; generate() returns text.
    """

    def __init__(self, events: Optional[List[StreamEvent]] = None, text: str = "", available: bool = True):
        self.events = events or []
        self.text = text
        self.available = available
        self.prompts: List[str] = []
        self.stream_closed = False
        self.stream_calls = 0
        self.generate_calls = 0

    @property
    def is_available(self) -> bool:
        return self.available

    def generate(self, prompt, *, system=None, max_tokens=800, timeout=60.0):
        self.generate_calls += 1
        self.prompts.append(prompt)
        return self.text

    async def stream(self, prompt, *, system=None, max_tokens=800, timeout=60.0):
        self.stream_calls += 1
        self.prompts.append(prompt)
        try:
            for event in self.events:
                yield event
        finally:
            self.stream_closed = True


def stream_of(*chunks: str, done: bool = True) -> List[StreamEvent]:
    events = [StreamEvent.delta(c) for c in chunks]
    if done:
        events.append(StreamEvent.done("stop"))
    return events


def make_draft(external_id: str, name: str, **fields) -> RecordDraft:
    return RecordDraft(external_id=external_id, name=name, **fields)


def make_record(record_id: int, name: str, **fields) -> Record:
    fields.setdefault("external_id", f"ext-{record_id}")
    return Record(id=record_id, name=name, **fields)


@pytest.fixture
def keyword_embedder():
    return KeywordEmbedder()


@pytest.fixture
def smart_mooring_records():
    return [
        make_draft(
            "page-1",
            "Smart Mooring Overview",
            type="Slides",
            products=["Smart Mooring"],
            summary="Introduction to Smart Mooring",
            body="Smart Mooring connects subsurface sensor strings to the Spotter buoy for real-time ocean data.",
        ),
        make_draft(
            "page-2",
            "Company Holiday Schedule",
            type="Document",
            summary="Office closures for the year",
            body="Dates the office is closed.",
        ),
    ]
