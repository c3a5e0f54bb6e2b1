"""Precomputed candidate indexes over canonical products.

Each candidate is normalized exactly once, when it enters an index. Queries
only normalize the incoming title.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple

from .models import CanonicalProduct, IndexScope, MatchCandidate
from .normalizer import bigrams, compact, normalize, remove_brand, tokens


@dataclass(frozen=True)
class IndexedCandidate:
    id: str
    name: str
    brand: Optional[str]
    normalized: str
    no_brand: str
    compact: str
    bigrams: FrozenSet[str]
    no_brand_bigrams: FrozenSet[str]
    compact_bigrams: FrozenSet[str]
    tokens: FrozenSet[str]
    no_brand_tokens: FrozenSet[str]
    brand_key: str


def index_candidate(candidate: MatchCandidate) -> IndexedCandidate:
    normalized = normalize(candidate.name)
    no_brand = remove_brand(normalized)
    joined = compact(normalized)
    return IndexedCandidate(
        id=candidate.id,
        name=candidate.name,
        brand=candidate.brand,
        normalized=normalized,
        no_brand=no_brand,
        compact=joined,
        bigrams=bigrams(normalized),
        no_brand_bigrams=bigrams(no_brand),
        compact_bigrams=bigrams(joined),
        tokens=tokens(normalized),
        no_brand_tokens=tokens(no_brand),
        brand_key=brand_key(candidate.brand),
    )


def brand_key(brand: Optional[str]) -> str:
    return normalize(brand) if brand else ""


class CandidateIndex:
    """Append-only ordered list of indexed candidates."""

    def __init__(self, entries: Iterable[IndexedCandidate] = ()) -> None:
        self._entries: List[IndexedCandidate] = list(entries)

    @classmethod
    def build(cls, candidates: Iterable[MatchCandidate]) -> "CandidateIndex":
        return cls(index_candidate(candidate) for candidate in candidates)

    def extend(self, candidate: MatchCandidate) -> IndexedCandidate:
        entry = index_candidate(candidate)
        self._entries.append(entry)
        return entry

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[IndexedCandidate]:
        return iter(list(self._entries))

    def __bool__(self) -> bool:
        return bool(self._entries)


def build(candidates: Iterable[MatchCandidate]) -> CandidateIndex:
    return CandidateIndex.build(candidates)


def extend(index: CandidateIndex, candidate: MatchCandidate) -> IndexedCandidate:
    return index.extend(candidate)


class CatalogIndex:
    """Category and brand-within-category partitions plus a product -> category map."""

    def __init__(self) -> None:
        self._by_category: Dict[str, CandidateIndex] = {}
        self._by_brand: Dict[str, Dict[str, CandidateIndex]] = defaultdict(dict)
        self._category_of: Dict[str, str] = {}
        self._brands: Dict[str, str] = {}

    @classmethod
    def from_products(cls, products: Iterable[CanonicalProduct]) -> "CatalogIndex":
        grouped: Dict[str, List[CanonicalProduct]] = defaultdict(list)
        for product in products:
            grouped[product.category].append(product)

        catalog = cls()
        for category, members in grouped.items():
            catalog._by_category[category] = CandidateIndex.build(p.as_candidate() for p in members)
            by_brand: Dict[str, List[MatchCandidate]] = defaultdict(list)
            for product in members:
                catalog._category_of[product.id] = category
                key = brand_key(product.brand)
                if key:
                    by_brand[key].append(product.as_candidate())
                    catalog._brands.setdefault(key, product.brand or key)
            for key, candidates in by_brand.items():
                catalog._by_brand[category][key] = CandidateIndex.build(candidates)
        return catalog

    def add(self, product: CanonicalProduct) -> None:
        """Make ``product`` matchable by every later query."""

        candidate = product.as_candidate()
        self._by_category.setdefault(product.category, CandidateIndex()).extend(candidate)
        key = brand_key(product.brand)
        if key:
            self._by_brand[product.category].setdefault(key, CandidateIndex()).extend(candidate)
            self._brands.setdefault(key, product.brand or key)
        self._category_of[product.id] = product.category

    def category_index(self, category: str) -> CandidateIndex:
        return self._by_category.setdefault(category, CandidateIndex())

    def brand_index(self, category: str, brand: Optional[str]) -> Optional[CandidateIndex]:
        key = brand_key(brand)
        if not key:
            return None
        return self._by_brand.get(category, {}).get(key)

    def select(self, category: str, brand: Optional[str]) -> Tuple[CandidateIndex, IndexScope]:
        """Prefer the brand-narrowed index when it exists and is non-empty."""

        narrowed = self.brand_index(category, brand)
        if narrowed:
            return narrowed, IndexScope.BRAND
        return self.category_index(category), IndexScope.CATEGORY

    def category_of(self, product_id: str) -> Optional[str]:
        return self._category_of.get(product_id)

    def known_brands(self) -> Dict[str, str]:
        """Map of normalized brand key to display brand for every indexed brand."""

        return dict(self._brands)

    def __len__(self) -> int:
        return len(self._category_of)
