"""Utilities for computing similarity between product names."""
from __future__ import annotations

from dataclasses import dataclass
from typing import AbstractSet, List, Sequence, Tuple

from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics.pairwise import cosine_similarity

from .normalizer import normalize


def dice(a: AbstractSet[str], b: AbstractSet[str]) -> float:
    """Sørensen-Dice coefficient of two sets; 0.0 when both are empty."""

    total = len(a) + len(b)
    if total == 0:
        return 0.0
    return 2.0 * len(a & b) / total


@dataclass
class SimilarityEngine:
    """TF-IDF cosine similarity over normalized names.

    Used offline to surface canonical products that look like duplicates of
    each other. Character n-grams keep ``hd600`` and ``hd 600`` close.
    """

    vectorizer: TfidfVectorizer | None = None

    def __post_init__(self) -> None:
        if self.vectorizer is None:
            self.vectorizer = TfidfVectorizer(analyzer="char_wb", ngram_range=(2, 4))

    def pairwise(self, names: Sequence[str]) -> List[List[float]]:
        """Return the full cosine similarity matrix for ``names``."""

        documents = [normalize(name) or name.lower() for name in names]
        if len(documents) < 2:
            return [[1.0] for _ in documents]
        matrix = self.vectorizer.fit_transform(documents)
        return cosine_similarity(matrix).tolist()

    def similar_pairs(self, names: Sequence[str], threshold: float) -> List[Tuple[int, int, float]]:
        """Return ``(i, j, score)`` for every pair ``i < j`` at or above ``threshold``."""

        matrix = self.pairwise(names)
        pairs: List[Tuple[int, int, float]] = []
        for i in range(len(matrix)):
            for j in range(i + 1, len(matrix)):
                score = float(matrix[i][j])
                if score >= threshold:
                    pairs.append((i, j, score))
        pairs.sort(key=lambda pair: pair[2], reverse=True)
        return pairs
