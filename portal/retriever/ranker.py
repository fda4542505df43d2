"""
Similarity Ranker

Scores embedded records against a query vector by cosine similarity,
keeps those at or above a threshold, and returns the best top_k.
When nothing reaches the threshold the whole set is ranked instead, so a
non-empty input always gives a non-empty result.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from ..common.errors import DimensionMismatchError
from ..common.schemas.record import Record
from .embedder import EmbeddedRecord

logger = logging.getLogger("portal.retriever.ranker")


@dataclass(frozen=True)
class RankedResult:
    """A record with its similarity to the query"""
    record: Record
    score: float


def cosine_similarity(a, b) -> float:
    """
    Cosine similarity of two vectors, clamped to [-1, 1].

    A zero-magnitude vector on either side gives 0.0.

    Raises:
        DimensionMismatchError: the vectors differ in length
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    if a.shape != b.shape:
        raise DimensionMismatchError(f"Cannot compare vectors of shape {a.shape} and {b.shape}")

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.clip(np.dot(a, b) / (norm_a * norm_b), -1.0, 1.0))


class SimilarityRanker:
    """Threshold-filtered cosine ranking"""

    def __init__(self, threshold: float = 0.6):
        self.threshold = threshold

    def rank(
        self,
        query_vector: Sequence[float],
        embedded_records: Sequence[EmbeddedRecord],
        top_k: Optional[int] = None,
    ) -> List[RankedResult]:
        """
        Rank records by similarity to query_vector.

        Sorting is stable: equal scores keep their input order.
        """
        scored = [
            RankedResult(record=item.record, score=cosine_similarity(query_vector, item.vector))
            for item in embedded_records
        ]

        passing = [r for r in scored if r.score >= self.threshold]
        if not passing and scored:
            logger.info(
                "No record reached similarity %.2f, ranking all %d records",
                self.threshold, len(scored),
            )
            passing = scored

        ranked = sorted(passing, key=lambda r: -r.score)
        if top_k is not None:
            ranked = ranked[:max(0, top_k)]
        return ranked
