"""Scored fuzzy matching of incoming titles against a candidate index."""
from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Optional

from .candidate_index import CandidateIndex, IndexedCandidate, brand_key
from .normalizer import bigrams, compact, normalize, remove_brand, tokens
from .similarity import dice

BRAND_BOOST = 0.05
BRAND_CONFLICT_FACTOR = 0.75
MAX_SCORE = 1.0

BRAND_MATCH = 1
BRAND_UNKNOWN = 0
BRAND_CONFLICT = -1


@dataclass(frozen=True)
class MatchResult:
    id: str
    name: str
    score: float
    raw_score: float
    brand_signal: int = BRAND_UNKNOWN


@dataclass(frozen=True)
class PreparedQuery:
    normalized: str
    no_brand: str
    compact: str
    bigrams: FrozenSet[str]
    no_brand_bigrams: FrozenSet[str]
    compact_bigrams: FrozenSet[str]
    tokens: FrozenSet[str]
    no_brand_tokens: FrozenSet[str]


def prepare(title: str) -> PreparedQuery:
    normalized = normalize(title)
    no_brand = remove_brand(normalized)
    joined = compact(normalized)
    return PreparedQuery(
        normalized=normalized,
        no_brand=no_brand,
        compact=joined,
        bigrams=bigrams(normalized),
        no_brand_bigrams=bigrams(no_brand),
        compact_bigrams=bigrams(joined),
        tokens=tokens(normalized),
        no_brand_tokens=tokens(no_brand),
    )


def raw_similarity(query: PreparedQuery, candidate: IndexedCandidate) -> float:
    """Best of character-bigram and token Dice over the full, brandless and compact forms."""

    if query.normalized and query.normalized == candidate.normalized:
        return MAX_SCORE
    return max(
        dice(query.bigrams, candidate.bigrams),
        dice(query.no_brand_bigrams, candidate.no_brand_bigrams),
        dice(query.compact_bigrams, candidate.compact_bigrams),
        dice(query.tokens, candidate.tokens),
        dice(query.no_brand_tokens, candidate.no_brand_tokens),
    )


def name_contains_brand(brand_token: str, normalized_name: str) -> bool:
    if not brand_token:
        return False
    if f" {brand_token} " in f" {normalized_name} ":
        return True
    joined = compact(brand_token)
    return len(joined) > 2 and joined in compact(normalized_name)


def brand_signal(brand_token: str, candidate: IndexedCandidate) -> int:
    if not brand_token:
        return BRAND_UNKNOWN
    if name_contains_brand(brand_token, candidate.normalized):
        return BRAND_MATCH
    if candidate.brand_key and candidate.brand_key != brand_token:
        return BRAND_CONFLICT
    return BRAND_UNKNOWN


def adjust(raw: float, signal: int) -> float:
    if signal == BRAND_MATCH:
        return min(MAX_SCORE, raw + BRAND_BOOST)
    if signal == BRAND_CONFLICT:
        return raw * BRAND_CONFLICT_FACTOR
    return raw


def find_best_match(
    title: str, index: CandidateIndex, brand: Optional[str] = None
) -> Optional[MatchResult]:
    """Return the highest scoring candidate for ``title`` or ``None``.

    Equal scores resolve to the lowest candidate id so results do not depend
    on index insertion order.
    """

    if not index:
        return None
    query = prepare(title)
    if not query.normalized:
        return None
    token = brand_key(brand)

    best: Optional[MatchResult] = None
    for candidate in index:
        raw = raw_similarity(query, candidate)
        signal = brand_signal(token, candidate)
        score = adjust(raw, signal)
        if (
            best is None
            or score > best.score
            or (score == best.score and candidate.id < best.id)
        ):
            best = MatchResult(
                id=candidate.id,
                name=candidate.name,
                score=score,
                raw_score=raw,
                brand_signal=signal,
            )
    return best
