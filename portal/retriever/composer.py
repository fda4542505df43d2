"""
Answer Composer

LLM-based answer composition from ranked records.

The prompt carries the ranked records as labelled text blocks and asks
the model to name the records it used in a trailing RELEVANT_RESOURCES
annotation. Those names are resolved back to record ids; when none
resolve, every supplied record is returned as relevant.
"""

import asyncio
import inspect
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence

from ..common.errors import AnnotationParseError, GenerationError, IncompleteStreamError
from ..common.llm_client import LLMClient, StreamEvent
from ..common.schemas.record import Record
from ..common.schemas.templates import render_prompt_context
from .annotation import decode_annotation, split_annotation
from .ranker import RankedResult

logger = logging.getLogger("portal.retriever.composer")

ChunkCallback = Callable[[str], Any]


@dataclass
class ComposedAnswer:
    """Final answer text and the ids of the records it refers to"""
    text: str
    relevant_record_ids: List[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"text": self.text, "relevantRecordIds": list(self.relevant_record_ids)}


SYSTEM_PROMPT = """You are a helpful assistant that answers questions about resources in a partner portal.

You'll be given resource information and a question from a user.
Answer the question based ONLY on the provided resources information.

IMPORTANT: Search deeply through all resources for relevant information. Even if a resource doesn't seem directly related by title, it may contain important information in its description that answers the user's question.

Product names may appear in different resources. Check ALL resources carefully for mentions of the keywords in the question.

VERY IMPORTANT: When referencing specific resources, mention them ONLY by name, NEVER include any ID numbers or reference numbers when mentioning resources.
Keep responses concise but informative.
Include a "RELEVANT_RESOURCES" section at the end, but only list resource names, NOT their ID numbers.

Format for RELEVANT_RESOURCES: ["Resource Name 1", "Resource Name 2", ...]"""

USER_PROMPT_TEMPLATE = """RESOURCES INFORMATION:
{context}

QUESTION: {question}"""

NO_RESOURCES_ANSWER = "There are no resources available to answer this question yet."


def resolve_names(names: Sequence[str], records: Sequence[Record]) -> List[int]:
    """
    Map record names from the annotation back to record ids.

    Exact case-insensitive matches win; otherwise the first record whose
    name contains the given name, or is contained in it. Unresolved names
    are dropped and duplicate ids collapsed, keeping first-seen order.
    """
    ids: List[int] = []
    for name in names:
        key = name.strip().casefold()
        if not key:
            continue

        match = next((r for r in records if r.name.casefold() == key), None)
        if match is None:
            match = next(
                (r for r in records if key in r.name.casefold() or r.name.casefold() in key),
                None,
            )

        if match is None:
            logger.debug("No record matches annotated name %r", name)
        elif match.id not in ids:
            ids.append(match.id)
    return ids


class AnswerComposer:
    """
    Composes answers from ranked records with an LLMClient.
    """

    def __init__(self, llm_client: LLMClient, max_tokens: int = 800, timeout: float = 60.0):
        """
        Args:
            llm_client: Generation client (streaming and blocking)
            max_tokens: Completion length limit
            timeout: Per-request timeout in seconds
        """
        self._llm = llm_client
        self.max_tokens = max_tokens
        self.timeout = timeout

    @property
    def has_llm(self) -> bool:
        return self._llm is not None and self._llm.is_available

    @staticmethod
    def build_prompt(question: str, records: Sequence[Record]) -> str:
        return USER_PROMPT_TEMPLATE.format(
            context=render_prompt_context(list(records)),
            question=question,
        )

    async def answer(
        self,
        question: str,
        ranked: Sequence[RankedResult],
        on_chunk: Optional[ChunkCallback] = None,
        stream: Optional[bool] = None,
    ) -> ComposedAnswer:
        """
        Compose an answer for question from the ranked records.

        Args:
            question: The user question
            ranked: Ranked records, best first
            on_chunk: Called with each text fragment as it arrives
            stream: Force streaming on or off (default: stream when on_chunk is given)

        Raises:
            GenerationError: the model failed or signalled an error
            IncompleteStreamError: the stream ended without a completion signal
        """
        records = [r.record for r in ranked]
        if not records:
            return ComposedAnswer(text=NO_RESOURCES_ANSWER, relevant_record_ids=[])

        if not self.has_llm:
            raise GenerationError("LLM client is not available")

        prompt = self.build_prompt(question, records)
        use_stream = (on_chunk is not None) if stream is None else stream

        if use_stream:
            text = await self._generate_streaming(prompt, on_chunk)
        else:
            text = await self._generate_blocking(prompt)

        return self.finalize(text, records)

    def finalize(self, text: str, records: Sequence[Record]) -> ComposedAnswer:
        """Strip the annotation from text and resolve the ids it names"""
        try:
            annotation = decode_annotation(text)
            body, names = annotation.body, annotation.names
        except AnnotationParseError as e:
            logger.warning("%s", e)
            body, _ = split_annotation(text)
            names = []

        ids = resolve_names(names, records)
        if not ids:
            ids = [r.id for r in records]

        return ComposedAnswer(text=body, relevant_record_ids=ids)

    async def _generate_streaming(self, prompt: str, on_chunk: Optional[ChunkCallback]) -> str:
        buffer: List[str] = []
        terminal: Optional[StreamEvent] = None

        try:
            events = self._llm.stream(
                prompt,
                system=SYSTEM_PROMPT,
                max_tokens=self.max_tokens,
                timeout=self.timeout,
            )
            async with aclosing(events) as events:
                async for event in events:
                    if event.kind == StreamEvent.DELTA:
                        if not event.text:
                            continue
                        buffer.append(event.text)
                        if on_chunk is not None:
                            result = on_chunk(event.text)
                            if inspect.isawaitable(result):
                                await result
                    elif event.kind == StreamEvent.DONE:
                        terminal = event
                        break
                    elif event.kind == StreamEvent.ERROR:
                        raise GenerationError(event.error or "Generation failed")
        except GenerationError:
            raise
        except Exception as e:
            raise GenerationError(f"Generation stream failed: {e}") from e

        if terminal is None:
            raise IncompleteStreamError(
                f"Generation stream ended without a completion signal after {len(buffer)} chunks"
            )
        return "".join(buffer)

    async def _generate_blocking(self, prompt: str) -> str:
        try:
            return await asyncio.to_thread(
                self._llm.generate,
                prompt,
                system=SYSTEM_PROMPT,
                max_tokens=self.max_tokens,
                timeout=self.timeout,
            )
        except Exception as e:
            raise GenerationError(f"Generation failed: {e}") from e
