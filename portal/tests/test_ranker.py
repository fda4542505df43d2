"""Tests for cosine similarity and SimilarityRanker."""

import numpy as np
import pytest

from portal.common.errors import DimensionMismatchError
from portal.retriever.embedder import EmbeddedRecord
from portal.retriever.ranker import SimilarityRanker, cosine_similarity
from portal.tests.conftest import make_record


def embedded(record_id, vector):
    return EmbeddedRecord(record=make_record(record_id, f"R{record_id}"), vector=np.asarray(vector, dtype=float))


class TestCosineSimilarity:
    def test_identical_and_opposite(self):
        assert cosine_similarity([1, 2, 3], [1, 2, 3]) == pytest.approx(1.0)
        assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)

    def test_zero_vector_gives_exactly_zero(self):
        assert cosine_similarity([0, 0, 0], [1, 2, 3]) == 0.0
        assert cosine_similarity([1, 2, 3], [0, 0, 0]) == 0.0

    def test_always_within_bounds(self):
        rng = np.random.default_rng(7)
        for _ in range(200):
            a, b = rng.normal(size=8) * 1e6, rng.normal(size=8) * 1e-6
            assert -1.0 <= cosine_similarity(a, b) <= 1.0

    def test_dimension_mismatch(self):
        with pytest.raises(DimensionMismatchError):
            cosine_similarity([1, 2], [1, 2, 3])


class TestSimilarityRanker:
    def test_sorted_descending_and_truncated(self):
        items = [embedded(1, [1, 0]), embedded(2, [1, 1]), embedded(3, [1, 0.1])]
        ranked = SimilarityRanker(threshold=0.0).rank([1, 0], items, top_k=2)

        assert [r.record.id for r in ranked] == [1, 3]
        assert ranked[0].score >= ranked[1].score

    def test_ties_keep_input_order(self):
        items = [embedded(3, [2, 0]), embedded(1, [1, 0]), embedded(2, [5, 0])]
        ranked = SimilarityRanker(threshold=0.5).rank([1, 0], items)
        assert [r.record.id for r in ranked] == [3, 1, 2]

    def test_threshold_filters(self):
        items = [embedded(1, [1, 0]), embedded(2, [0, 1])]
        ranked = SimilarityRanker(threshold=0.6).rank([1, 0], items)
        assert [r.record.id for r in ranked] == [1]

    def test_falls_back_to_full_set_when_nothing_passes(self):
        items = [embedded(1, [0.2, 1]), embedded(2, [0, 1]), embedded(3, [0.5, 1])]
        ranked = SimilarityRanker(threshold=0.9).rank([1, 0], items, top_k=20)

        assert [r.record.id for r in ranked] == [3, 1, 2]

    def test_empty_input(self):
        assert SimilarityRanker().rank([1, 0], []) == []
