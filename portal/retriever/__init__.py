"""
Retriever - Semantic Resource Retrieval

Ranks records against a question and composes a streamed answer.

Key Components:
- QueryEmbeddingCache: TTL cache of question vectors
- EmbeddingGenerator: Batched, staggered record vectorization
- EmbeddingIndex: Embedded snapshot of the store with single-flight rebuilds
- SimilarityRanker: Cosine ranking with threshold fallback
- AnswerComposer: LLM answer composition and record back-references
- AnswerPipeline: Per-question state machine and frame stream
- ResourceQueryEngine: Filtered, sorted, paginated listing

Pipeline:
1. Ensure the embedding index is fresh
2. Embed the question (cached)
3. Rank records by cosine similarity
4. Compose the answer from the top records
"""

from .annotation import Annotation, decode_annotation
from .composer import AnswerComposer, ComposedAnswer, resolve_names
from .embedder import EmbeddedRecord, EmbeddingGenerator
from .index import EmbeddingIndex
from .pipeline import AnswerPipeline, Frame, QuestionRun, QuestionState
from .query_cache import QueryEmbeddingCache
from .query_engine import QueryPage, ResourceFilter, ResourceQueryEngine, SortOrder
from .ranker import RankedResult, SimilarityRanker, cosine_similarity

__all__ = [
    "Annotation",
    "decode_annotation",
    "AnswerComposer",
    "ComposedAnswer",
    "resolve_names",
    "EmbeddedRecord",
    "EmbeddingGenerator",
    "EmbeddingIndex",
    "AnswerPipeline",
    "Frame",
    "QuestionRun",
    "QuestionState",
    "QueryEmbeddingCache",
    "QueryPage",
    "ResourceFilter",
    "ResourceQueryEngine",
    "SortOrder",
    "RankedResult",
    "SimilarityRanker",
    "cosine_similarity",
]
