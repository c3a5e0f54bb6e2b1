"""Junk filtering and category sanity checks applied before matching."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Pattern, Sequence

from . import category_rules
from .models import Candidate
from .normalizer import normalize

logger = logging.getLogger(__name__)

JunkPredicate = Callable[[Candidate, str], bool]


def _any(patterns: Sequence[Pattern[str]], text: str) -> bool:
    return any(pattern.search(text) for pattern in patterns)


def is_likely_isbn(external_id: str) -> bool:
    if category_rules.MARKETPLACE_ID_RE.match(external_id):
        return False
    return bool(category_rules.ISBN10_RE.match(external_id) or category_rules.ISBN13_RE.match(external_id))


def is_allowed_department(department: Optional[str]) -> bool:
    if not department:
        return True
    return department.strip().lower() in category_rules.ALLOWED_DEPARTMENTS


def is_placeholder_title(title: str) -> bool:
    return _any(category_rules.JUNK_PRODUCT_PATTERNS, title.strip())


def is_microphone_junk(title: str) -> bool:
    """Accessories and non-microphones that retailers file under microphones."""

    if _any(category_rules.MICROPHONE_GUARD_INDICATORS, title):
        return False
    return _any(category_rules.MICROPHONE_JUNK_INDICATORS, title)


@dataclass(frozen=True)
class JunkRule:
    name: str
    predicate: JunkPredicate


DEFAULT_JUNK_RULES: List[JunkRule] = [
    JunkRule("placeholder_title", lambda c, _: is_placeholder_title(c.title)),
    JunkRule("too_short", lambda c, _: len(normalize(c.title)) < category_rules.MIN_TITLE_LENGTH),
    JunkRule("isbn_id", lambda c, _: is_likely_isbn(c.external_id)),
    JunkRule("disallowed_department", lambda c, _: not is_allowed_department(c.department)),
    JunkRule("marketplace_noise", lambda c, _: _any(category_rules.MARKETPLACE_JUNK_PATTERNS, c.title)),
    JunkRule("not_a_microphone", lambda c, category: category == "microphone" and is_microphone_junk(c.title)),
]


class JunkFilter:
    """Evaluates junk rules in order; the first rule that fires names the rejection."""

    def __init__(self, rules: Optional[Iterable[JunkRule]] = None) -> None:
        self.rules = list(DEFAULT_JUNK_RULES if rules is None else rules)

    def reject_reason(self, candidate: Candidate, category: str) -> Optional[str]:
        for rule in self.rules:
            if rule.predicate(candidate, category):
                return rule.name
        return None

    def is_junk(self, candidate: Candidate, category: str) -> bool:
        return self.reject_reason(candidate, category) is not None


def _detect_form(title: str, brand: str) -> Optional[str]:
    """Return ``"iem"`` or ``"headphone"`` when the evidence is unambiguous."""

    if brand in category_rules.HEADPHONE_ONLY_BRANDS and not _any(category_rules.HEADPHONE_BRAND_IEM_EXCEPTIONS, title):
        return "headphone"

    rule = category_rules.BRAND_RULES.get(brand)
    if rule is not None:
        if _any(rule.iem_patterns, title):
            return "iem"
        if _any(rule.headphone_patterns, title):
            return "headphone"

    if _any(category_rules.IEM_NAME_INDICATORS, title):
        return "iem"
    if _any(category_rules.HEADPHONE_NAME_INDICATORS, title):
        return "headphone"
    if _any(category_rules.HEADPHONE_NAME_INDICATORS_GUARDED, title) and not _any(
        category_rules.GUARDED_INDICATOR_BLOCKERS, title
    ):
        return "headphone"
    return None


def _detect_cable(title: str, brand: str) -> Optional[str]:
    if brand in category_rules.IEM_CABLE_BRANDS or _any(category_rules.IEM_CABLE_INDICATORS, title):
        return "iem_cable"
    if _any(category_rules.HP_CABLE_INDICATORS, title):
        return "hp_cable"
    if _any(category_rules.GENERAL_CABLE_INDICATORS, title):
        return "cable"
    return None


def _brand_of(title: str, brand: Optional[str]) -> str:
    if brand:
        return normalize(brand)
    normalized = normalize(title)
    for known in sorted(category_rules.BRAND_RULES, key=len, reverse=True):
        if normalized == known or normalized.startswith(known + " "):
            return known
    for known in category_rules.HEADPHONE_ONLY_BRANDS | category_rules.IEM_CABLE_BRANDS:
        if known and (normalized == known or normalized.startswith(known + " ")):
            return known
    return ""


class CategoryDetector:
    """Detect listings filed under the wrong category.

    ``detect`` returns the corrected category or ``None`` when the current one
    looks right.
    """

    def detect(self, title: str, brand: Optional[str], category: str) -> Optional[str]:
        for pattern, source, target in category_rules.MISPLACED_OVERRIDES:
            if source == category and pattern.search(title):
                return target

        key = _brand_of(title, brand)
        detected: Optional[str] = None
        if category in ("iem", "headphone"):
            detected = _detect_form(title, key)
        elif category in category_rules.CABLE_CATEGORIES:
            detected = _detect_cable(title, key)
        elif category == "amp":
            detected = "dac" if _any(category_rules.DAC_INDICATORS, title) else None
        elif category == "dap":
            detected = next(
                (target for pattern, target in category_rules.DAP_PRODUCT_OVERRIDES if pattern.search(title)), None
            )
        elif category == "speaker":
            if _any(category_rules.SPEAKER_TO_CABLE_INDICATORS, title) and not _any(
                category_rules.SPEAKER_GUARD_INDICATORS, title
            ):
                detected = "cable"

        if detected and detected != category:
            logger.debug(
                "Reclassified %r from %s to %s", title, category, detected, extra={"phase": "guard"}
            )
            return detected
        return None
