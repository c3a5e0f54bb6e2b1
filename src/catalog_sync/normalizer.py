"""Deterministic text canonicalization for product names.

``normalize`` is the single comparison and index key used across the
package. It lowercases, folds accents, removes marketing noise and category
suffixes and keeps model-distinguishing tokens such as ``hd600``, ``mk2``,
``pro`` or release years untouched.
"""
from __future__ import annotations

import re
import unicodedata
from typing import FrozenSet

NOISE_PARENS_RE = re.compile(
    r"\s*\((pre-production|custom|universal|demo|sample|prototype|review unit|loaner|open box)\)",
    re.IGNORECASE,
)

RETAIL_NOISE_RE = re.compile(
    r"\b(official|authentic|genuine|free shipping|new arrival|in stock|hot sale|latest|original|brand new)\b",
    re.IGNORECASE,
)

SUFFIX_TERMS = (
    "in-ear monitors",
    "in-ear monitor",
    "in ear monitors",
    "in ear monitor",
    "iems",
    "iem",
    "headphones",
    "headphone",
    "earphones",
    "earphone",
    "earbuds",
    "earbud",
    "over-ear",
    "on-ear",
    "open-back",
    "closed-back",
)

SUFFIX_RE = re.compile(
    r"\b(" + "|".join(term.replace("-", r"[-\s]?") for term in SUFFIX_TERMS) + r")\b",
    re.IGNORECASE,
)

DASHES_RE = re.compile(r"[-–—_/]")
NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
WHITESPACE_RE = re.compile(r"\s+")


def _fold_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def _normalize_once(value: str) -> str:
    result = _fold_accents(value).lower()
    result = NOISE_PARENS_RE.sub("", result)
    result = RETAIL_NOISE_RE.sub("", result)
    result = SUFFIX_RE.sub("", result)
    result = DASHES_RE.sub(" ", result)
    result = NON_ALNUM_RE.sub("", result)
    result = WHITESPACE_RE.sub(" ", result)
    return result.strip()


def normalize(raw: str | None) -> str:
    """Return the canonical comparison key for ``raw``.

    Stripping is repeated until nothing changes, because removing one noise
    word can join two halves of another (``"in official ear monitor"``).
    """

    if not raw:
        return ""
    current = raw
    while True:
        reduced = _normalize_once(current)
        if reduced == current:
            return reduced
        current = reduced


def listing_key(title: str | None) -> str:
    """Content dedup key for ingested listings."""

    return normalize(title)


def remove_brand(normalized: str) -> str:
    """Drop the leading token, which is the brand for most retail titles."""

    head, _, tail = normalized.partition(" ")
    return tail.strip() if tail else head


def compact(normalized: str) -> str:
    return normalized.replace(" ", "")


def bigrams(value: str) -> FrozenSet[str]:
    return frozenset(value[i : i + 2] for i in range(len(value) - 1))


def tokens(value: str) -> FrozenSet[str]:
    return frozenset(token for token in value.split(" ") if token)
