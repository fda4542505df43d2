"""
Embedding Service

Wraps the external embedding function behind one async primitive,
embed_single(text). Two modes are supported:
- "openai": OpenAI embeddings API (default)
- "femb": on-device embeddings via fastembed

The vector dimension is fixed by the first vector produced and checked
for every vector after that.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

import numpy as np

from .errors import DimensionMismatchError, EmbeddingCallError

logger = logging.getLogger("portal.common.embedding_service")

EmbedFn = Callable[[str], Awaitable[List[float]]]


class EmbeddingService:
    """
    Embedding function adapter.

    Pass embed_fn to use any async callable instead of a provider SDK
    (tests do this).
    """

    def __init__(
        self,
        mode: str = "openai",
        model: str = "text-embedding-3-small",
        openai_api_key: Optional[str] = None,
        embed_fn: Optional[EmbedFn] = None,
    ):
        self._mode = (mode or "openai").lower()
        self._model = model
        self._client = None
        self._embed_fn = embed_fn
        self._dimension: Optional[int] = None

        if embed_fn is not None:
            self._mode = "custom"
            return

        if self._mode == "openai":
            if not openai_api_key:
                logger.info("OpenAI API key not provided, embedding service unavailable")
                return
            try:
                from openai import AsyncOpenAI

                self._client = AsyncOpenAI(api_key=openai_api_key)
            except ImportError:
                logger.warning("openai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize OpenAI client: %s", e)
            return

        if self._mode == "femb":
            try:
                from fastembed import TextEmbedding

                self._client = TextEmbedding(model_name=model)
                logger.info("Initialized fastembed with model=%s", model)
            except ImportError:
                logger.warning("fastembed package not installed")
            except Exception as e:
                logger.warning("Failed to initialize fastembed: %s", e)
            return

        logger.warning("Unsupported embedding mode: %s", self._mode)

    @property
    def is_available(self) -> bool:
        """Check if embedding service is available"""
        return self._embed_fn is not None or self._client is not None

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimension(self) -> Optional[int]:
        """Vector dimension, known after the first successful call"""
        return self._dimension

    async def embed_single(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: String to embed

        Returns:
            Embedding vector

        Raises:
            EmbeddingCallError: the provider call failed
            DimensionMismatchError: the provider changed dimension mid-process
        """
        if not self.is_available:
            raise EmbeddingCallError("Embedding service is not available")

        if not text or not text.strip():
            raise EmbeddingCallError("Cannot embed empty text")

        try:
            vector = await self._call_provider(text)
        except EmbeddingCallError:
            raise
        except Exception as e:
            raise EmbeddingCallError(f"Embedding call failed: {e}") from e

        return self._check_dimension(vector)

    async def embed(self, texts: List[str]) -> List[List[float]]:
        """Embed several texts one call at a time, in order"""
        return [await self.embed_single(t) for t in texts]

    async def _call_provider(self, text: str) -> List[float]:
        if self._embed_fn is not None:
            return list(await self._embed_fn(text))

        if self._mode == "openai":
            response = await self._client.embeddings.create(model=self._model, input=text)
            return list(response.data[0].embedding)

        if self._mode == "femb":
            # fastembed is synchronous and CPU bound
            embeddings = await asyncio.to_thread(lambda: list(self._client.embed([text])))
            return np.asarray(embeddings[0], dtype=float).tolist()

        raise EmbeddingCallError(f"Unsupported embedding mode: {self._mode}")

    def _check_dimension(self, vector: List[float]) -> List[float]:
        if not vector:
            raise EmbeddingCallError("Embedding provider returned an empty vector")

        if self._dimension is None:
            self._dimension = len(vector)
            logger.info("Embedding dimension fixed at %d", self._dimension)
        elif len(vector) != self._dimension:
            raise DimensionMismatchError(
                f"Vector dimension mismatch: expected {self._dimension}, got {len(vector)}"
            )
        return vector


def create_embedding_service(config) -> EmbeddingService:
    """
    Build the EmbeddingService from a PortalConfig.

    Args:
        config: PortalConfig

    Returns:
        EmbeddingService instance (may be unavailable if not configured)
    """
    return EmbeddingService(
        mode=config.embedding.mode,
        model=config.embedding.model,
        openai_api_key=config.llm.openai_api_key or None,
    )
