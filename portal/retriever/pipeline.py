"""
Answer Pipeline

Runs one question through retrieval and generation:

1. Make sure the embedding index is fresh (waits for a running pass)
2. Embed the question through the query cache
3. Rank records by similarity
4. Compose the answer, optionally streaming it

Each question gets its own QuestionRun state machine:

    Idle -> Retrieving -> Generating -> Done
                 |             |
                 +-> Failed <--+

stream_frames() turns a run into the ordered frame sequence delivered
to clients: zero or more chunk frames, then exactly one done or error
frame.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator, Dict, List, Optional

from ..common.errors import InvalidTransitionError, ValidationError
from .composer import AnswerComposer, ChunkCallback, ComposedAnswer
from .index import EmbeddingIndex
from .query_cache import QueryEmbeddingCache
from .ranker import RankedResult, SimilarityRanker

logger = logging.getLogger("portal.retriever.pipeline")

GENERIC_ERROR_MESSAGE = "Failed to process your question. Please try again later."
MAX_QUESTION_LENGTH = 1000


class QuestionState(str, Enum):
    IDLE = "idle"
    RETRIEVING = "retrieving"
    GENERATING = "generating"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: Dict[QuestionState, set] = {
    QuestionState.IDLE: {QuestionState.RETRIEVING},
    QuestionState.RETRIEVING: {QuestionState.GENERATING, QuestionState.FAILED},
    QuestionState.GENERATING: {QuestionState.DONE, QuestionState.FAILED},
    QuestionState.DONE: set(),
    QuestionState.FAILED: set(),
}


@dataclass
class QuestionRun:
    """State of a single question"""
    question: str
    state: QuestionState = QuestionState.IDLE
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: Optional[str] = None
    ranked: List[RankedResult] = field(default_factory=list)

    @property
    def is_finished(self) -> bool:
        return self.state in (QuestionState.DONE, QuestionState.FAILED)

    def advance(self, state: QuestionState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise InvalidTransitionError(f"Cannot move question from {self.state.value} to {state.value}")
        logger.debug("Question %s -> %s", self.state.value, state.value)
        self.state = state

    def fail(self, error: BaseException) -> None:
        self.error = str(error)
        self.advance(QuestionState.FAILED)


@dataclass(frozen=True)
class Frame:
    """One frame of the answer delivery sequence"""
    event: str  # "chunk", "done" or "error"
    data: dict

    CHUNK = "chunk"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self.event in (self.DONE, self.ERROR)

    @classmethod
    def chunk(cls, text: str) -> "Frame":
        return cls(cls.CHUNK, {"text": text})

    @classmethod
    def done(cls, answer: ComposedAnswer) -> "Frame":
        return cls(cls.DONE, answer.to_dict())

    @classmethod
    def error(cls, message: str = GENERIC_ERROR_MESSAGE) -> "Frame":
        return cls(cls.ERROR, {"message": message})

    def encode(self) -> str:
        """Server-Sent Events encoding"""
        return f"event: {self.event}\ndata: {json.dumps(self.data)}\n\n"


def validate_question(question) -> str:
    """
    Raises:
        ValidationError: question is missing, blank, or too long
    """
    if not isinstance(question, str) or not question.strip():
        raise ValidationError("Question must be a non-empty string")
    question = question.strip()
    if len(question) > MAX_QUESTION_LENGTH:
        raise ValidationError(f"Question must be at most {MAX_QUESTION_LENGTH} characters")
    return question


class AnswerPipeline:
    """
    Question answering over the embedded record set.
    """

    def __init__(
        self,
        index: EmbeddingIndex,
        query_cache: QueryEmbeddingCache,
        ranker: SimilarityRanker,
        composer: AnswerComposer,
        top_k: int = 20,
    ):
        self.index = index
        self.query_cache = query_cache
        self.ranker = ranker
        self.composer = composer
        self.top_k = top_k

    async def retrieve(self, question: str) -> List[RankedResult]:
        embedded = await self.index.ensure_fresh()
        vector = await self.query_cache.get(question)
        return self.ranker.rank(vector, embedded, self.top_k)

    async def ask(
        self,
        question: str,
        on_chunk: Optional[ChunkCallback] = None,
        stream: Optional[bool] = None,
        run: Optional[QuestionRun] = None,
    ) -> ComposedAnswer:
        """
        Answer one question.

        Raises:
            ValidationError: malformed question (before any external call)
            PortalError: retrieval or generation failed; the run ends Failed
        """
        question = validate_question(question)
        run = run or QuestionRun(question=question)

        run.advance(QuestionState.RETRIEVING)
        try:
            run.ranked = await self.retrieve(question)
        except Exception as e:
            run.fail(e)
            raise

        run.advance(QuestionState.GENERATING)
        try:
            answer = await self.composer.answer(question, run.ranked, on_chunk=on_chunk, stream=stream)
        except Exception as e:
            run.fail(e)
            raise

        run.advance(QuestionState.DONE)
        logger.info(
            "Answered question with %d ranked records, %d referenced",
            len(run.ranked), len(answer.relevant_record_ids),
        )
        return answer

    async def stream_frames(self, question: str) -> AsyncIterator[Frame]:
        """
        Answer a question as an ordered frame sequence.

        Failures after validation become a single error frame with a
        generic message. Closing the iterator early cancels generation.
        """
        question = validate_question(question)
        queue: asyncio.Queue = asyncio.Queue()

        def on_chunk(text: str) -> None:
            queue.put_nowait(Frame.chunk(text))

        async def produce() -> None:
            try:
                answer = await self.ask(question, on_chunk=on_chunk, stream=True)
            except Exception as e:
                logger.error("Failed to answer question: %s", e, exc_info=True)
                queue.put_nowait(Frame.error())
            else:
                queue.put_nowait(Frame.done(answer))

        task = asyncio.create_task(produce())
        try:
            while True:
                frame = await queue.get()
                yield frame
                if frame.is_terminal:
                    break
        finally:
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
