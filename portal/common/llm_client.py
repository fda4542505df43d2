"""
Provider-agnostic LLM client for the portal.

Supports Anthropic, OpenAI, and Google Gemini with a shared text-generation
interface: generate() returns the full text, stream() yields StreamEvents
ending in exactly one terminal event when the provider signals completion.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional

logger = logging.getLogger("portal.common.llm_client")


@dataclass(frozen=True)
class StreamEvent:
    """One event from a generation stream"""
    kind: str  # "delta", "done" or "error"
    text: str = ""
    error: Optional[str] = None

    DELTA = "delta"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self.kind in (self.DONE, self.ERROR)

    @classmethod
    def delta(cls, text: str) -> "StreamEvent":
        return cls(kind=cls.DELTA, text=text)

    @classmethod
    def done(cls, reason: str = "") -> "StreamEvent":
        return cls(kind=cls.DONE, text=reason)

    @classmethod
    def failed(cls, error: str) -> "StreamEvent":
        return cls(kind=cls.ERROR, error=error)


class LLMClient:
    """Unified text generation client across LLM providers."""

    def __init__(
        self,
        provider: str = "openai",
        model: str = "",
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
        temperature: float = 0.7,
    ) -> None:
        self.provider = (provider or "openai").lower()
        self.model = model
        self.temperature = temperature
        self._client = None
        self._async_client = None

        if self.provider == "anthropic":
            if not anthropic_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import anthropic

                self._client = anthropic.Anthropic(api_key=anthropic_api_key)
                self._async_client = anthropic.AsyncAnthropic(api_key=anthropic_api_key)
            except ImportError:
                logger.warning("anthropic package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Anthropic client: %s", e)
            return

        if self.provider == "openai":
            if not openai_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                from openai import AsyncOpenAI, OpenAI

                self._client = OpenAI(api_key=openai_api_key)
                self._async_client = AsyncOpenAI(api_key=openai_api_key)
            except ImportError:
                logger.warning("openai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize OpenAI client: %s", e)
            return

        if self.provider == "google":
            if not google_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import google.generativeai as genai

                genai.configure(api_key=google_api_key)
                self._client = genai  # Store the module, not a model instance
                self._async_client = genai
                self._google_models = {}  # Cache models by system prompt hash
            except ImportError:
                logger.warning("google-generativeai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Gemini client: %s", e)
            return

        logger.warning("Unsupported LLM provider: %s", self.provider)

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 800,
        timeout: float = 60.0,
    ) -> str:
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        if self.provider == "anthropic":
            kwargs = {}
            if system:
                kwargs["system"] = system
            response = self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=self.temperature,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout,
                **kwargs,
            )
            return response.content[0].text.strip()

        if self.provider == "openai":
            response = self._client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=self.temperature,
                messages=self._openai_messages(prompt, system),
                timeout=timeout,
            )
            return (response.choices[0].message.content or "").strip()

        if self.provider == "google":
            model = self._google_model(system)
            response = model.generate_content(
                prompt,
                generation_config={"max_output_tokens": max_tokens, "temperature": self.temperature},
                request_options={"timeout": timeout},
            )
            return response.text.strip()

        raise RuntimeError(f"Unsupported LLM provider: {self.provider}")

    async def stream(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 800,
        timeout: float = 60.0,
    ) -> AsyncIterator[StreamEvent]:
        """
        Stream a completion as StreamEvents.

        Yields deltas in provider order and at most one terminal event.
        If the transport closes before the provider signals completion,
        the iterator simply ends without a terminal event; callers must
        treat that as an incomplete stream. Closing the iterator early
        closes the underlying transport.
        """
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        if self.provider == "openai":
            events = self._stream_openai(prompt, system, max_tokens, timeout)
        elif self.provider == "anthropic":
            events = self._stream_anthropic(prompt, system, max_tokens, timeout)
        elif self.provider == "google":
            events = self._stream_google(prompt, system, max_tokens, timeout)
        else:
            raise RuntimeError(f"Unsupported LLM provider: {self.provider}")

        try:
            async for event in events:
                yield event
        finally:
            await events.aclose()

    # ------------------------------------------------------------------
    # Provider streams
    # ------------------------------------------------------------------

    async def _stream_openai(self, prompt, system, max_tokens, timeout):
        stream = await self._async_client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=self.temperature,
            messages=self._openai_messages(prompt, system),
            timeout=timeout,
            stream=True,
        )
        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                content = choice.delta.content if choice.delta else None
                if content:
                    yield StreamEvent.delta(content)
                if choice.finish_reason:
                    if choice.finish_reason == "content_filter":
                        yield StreamEvent.failed("Response blocked by content filter")
                    else:
                        yield StreamEvent.done(choice.finish_reason)
                    return
        finally:
            await stream.close()

    async def _stream_anthropic(self, prompt, system, max_tokens, timeout):
        kwargs = {}
        if system:
            kwargs["system"] = system
        async with self._async_client.messages.stream(
            model=self.model,
            max_tokens=max_tokens,
            temperature=self.temperature,
            messages=[{"role": "user", "content": prompt}],
            timeout=timeout,
            **kwargs,
        ) as stream:
            async for event in stream:
                if event.type == "content_block_delta" and getattr(event.delta, "type", "") == "text_delta":
                    yield StreamEvent.delta(event.delta.text)
                elif event.type == "message_stop":
                    yield StreamEvent.done("message_stop")
                    return

    async def _stream_google(self, prompt, system, max_tokens, timeout):
        model = self._google_model(system)
        response = await model.generate_content_async(
            prompt,
            generation_config={"max_output_tokens": max_tokens, "temperature": self.temperature},
            request_options={"timeout": timeout},
            stream=True,
        )
        async for chunk in response:
            candidate = chunk.candidates[0] if chunk.candidates else None
            parts = candidate.content.parts if candidate and candidate.content else []
            text = "".join(getattr(p, "text", "") for p in parts)
            if text:
                yield StreamEvent.delta(text)

            finish = getattr(candidate, "finish_reason", None) if candidate else None
            finish_name = getattr(finish, "name", str(finish or ""))
            if finish and finish_name not in ("FINISH_REASON_UNSPECIFIED", "0"):
                if finish_name in ("SAFETY", "RECITATION", "BLOCKLIST", "PROHIBITED_CONTENT"):
                    yield StreamEvent.failed(f"Response blocked ({finish_name})")
                else:
                    yield StreamEvent.done(finish_name)
                return

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _openai_messages(prompt: str, system: Optional[str]) -> list:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return messages

    def _google_model(self, system: Optional[str]):
        cache_key = hashlib.md5((system or "").encode()).hexdigest()
        if cache_key not in self._google_models:
            kwargs = {"model_name": self.model}
            if system:
                kwargs["system_instruction"] = system
            self._google_models[cache_key] = self._client.GenerativeModel(**kwargs)
        return self._google_models[cache_key]


def create_llm_client(config) -> LLMClient:
    """Build the LLMClient for the configured provider"""
    llm = config.llm
    model = {
        "anthropic": llm.anthropic_model,
        "openai": llm.openai_model,
        "google": llm.google_model,
    }.get((llm.provider or "").lower(), "")

    return LLMClient(
        provider=llm.provider,
        model=model,
        anthropic_api_key=llm.anthropic_api_key or None,
        openai_api_key=llm.openai_api_key or None,
        google_api_key=llm.google_api_key or None,
        temperature=llm.temperature,
    )
