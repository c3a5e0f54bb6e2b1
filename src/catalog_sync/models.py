"""Data models for catalog entities, match outcomes and run bookkeeping."""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import InvariantViolation


class Tier(str, Enum):
    AUTO = "auto"
    PENDING = "pending"
    NONE = "none"


class IndexScope(str, Enum):
    BRAND = "brand"
    CATEGORY = "category"


TIER_RANK = {Tier.AUTO: 2, Tier.PENDING: 1, Tier.NONE: 0}


@dataclass
class Candidate:
    """Uniform listing shape returned by every source reader."""

    external_id: str
    title: str
    price: Optional[float] = None
    in_stock: bool = False
    url: Optional[str] = None
    image_url: Optional[str] = None
    category_hint: Optional[str] = None
    vendor: Optional[str] = None
    product_type: Optional[str] = None
    department: Optional[str] = None
    raw: dict = field(default_factory=dict)


@dataclass
class WorkItem:
    id: str
    query: str
    retailer_id: str
    category: str
    brand: Optional[str] = None
    priority: int = 0
    create_missing: bool = False


@dataclass(frozen=True)
class MatchCandidate:
    id: str
    name: str
    brand: Optional[str] = None


@dataclass
class CanonicalProduct:
    id: str
    name: str
    category: str
    brand: Optional[str] = None
    source_id: Optional[str] = None
    price: Optional[float] = None
    in_stock: bool = False
    image_url: Optional[str] = None
    best_url: Optional[str] = None

    def as_candidate(self) -> MatchCandidate:
        return MatchCandidate(id=self.id, name=self.name, brand=self.brand)

    def validate(self) -> None:
        missing = [name for name in ("id", "name", "category") if not getattr(self, name)]
        if missing:
            raise InvariantViolation(f"canonical product missing {', '.join(missing)}")

    def to_row(self) -> Dict[str, Any]:
        self.validate()
        row = asdict(self)
        row["in_stock"] = int(bool(self.in_stock))
        return row

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CanonicalProduct":
        return cls(
            id=row["id"],
            name=row["name"],
            category=row["category"],
            brand=row.get("brand"),
            source_id=row.get("source_id"),
            price=row.get("price"),
            in_stock=bool(row.get("in_stock")),
            image_url=row.get("image_url"),
            best_url=row.get("best_url"),
        )


@dataclass
class ExternalListing:
    retailer_id: str
    external_id: str
    title: str
    canonical_product_id: Optional[str] = None
    price: Optional[float] = None
    in_stock: bool = False
    url: Optional[str] = None
    image_url: Optional[str] = None
    last_checked: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.retailer_id, self.external_id)

    def validate(self) -> None:
        missing = [name for name in ("retailer_id", "external_id", "title") if not getattr(self, name)]
        if missing:
            raise InvariantViolation(
                f"listing {self.retailer_id}:{self.external_id} missing {', '.join(missing)}"
            )
        if self.price is not None and self.price < 0:
            raise InvariantViolation(f"listing {self.retailer_id}:{self.external_id} has negative price")

    def to_row(self, include_link: bool = True) -> Dict[str, Any]:
        self.validate()
        row = asdict(self)
        row["in_stock"] = int(bool(self.in_stock))
        if not include_link:
            row.pop("canonical_product_id")
        return row

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ExternalListing":
        return cls(
            retailer_id=row["retailer_id"],
            external_id=row["external_id"],
            title=row["title"],
            canonical_product_id=row.get("canonical_product_id"),
            price=row.get("price"),
            in_stock=bool(row.get("in_stock")),
            url=row.get("url"),
            image_url=row.get("image_url"),
            last_checked=row.get("last_checked"),
        )


@dataclass
class MatchOutcome:
    """Decision for a single incoming listing. Transient, never persisted as such."""

    retailer_id: str
    external_id: str
    title: str
    tier: Tier
    candidate_id: Optional[str] = None
    candidate_name: Optional[str] = None
    score: Optional[float] = None
    scope: Optional[IndexScope] = None
    reason: str = ""
    price: Optional[float] = None
    in_stock: bool = False
    url: Optional[str] = None
    image_url: Optional[str] = None
    work_item_id: Optional[str] = None
    created: Optional[CanonicalProduct] = None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.retailer_id, self.external_id)

    @property
    def source_listing_id(self) -> str:
        return f"{self.retailer_id}:{self.external_id}"

    @property
    def links(self) -> bool:
        """True when the outcome asks for the listing to be linked to ``candidate_id``."""

        return self.candidate_id is not None and (self.tier is Tier.AUTO or self.created is not None)

    def rank(self) -> Tuple[int, float]:
        return (TIER_RANK[self.tier], self.score or 0.0)

    def listing(self, last_checked: str, canonical_product_id: Optional[str] = None) -> ExternalListing:
        return ExternalListing(
            retailer_id=self.retailer_id,
            external_id=self.external_id,
            title=self.title,
            canonical_product_id=canonical_product_id,
            price=self.price,
            in_stock=self.in_stock,
            url=self.url,
            image_url=self.image_url,
            last_checked=last_checked,
        )


@dataclass
class ReviewTask:
    task_type: str
    source_listing_id: str
    priority: int
    reason: str
    payload: Dict[str, Any] = field(default_factory=dict)
    status: str = "open"
    candidate_id: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[str] = None

    def validate(self) -> None:
        if not self.task_type or not self.source_listing_id:
            raise InvariantViolation("review task requires task_type and source_listing_id")
        if self.status not in ("open", "resolved"):
            raise InvariantViolation(f"review task has unknown status {self.status!r}")

    def to_row(self) -> Dict[str, Any]:
        self.validate()
        return {
            "task_type": self.task_type,
            "source_listing_id": self.source_listing_id,
            "priority": self.priority,
            "reason": self.reason,
            "payload": json.dumps(self.payload, ensure_ascii=False),
            "status": self.status,
            "candidate_id": self.candidate_id,
            "created_at": self.created_at,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ReviewTask":
        return cls(
            id=row.get("id"),
            task_type=row["task_type"],
            source_listing_id=row["source_listing_id"],
            priority=row["priority"],
            reason=row["reason"],
            payload=json.loads(row.get("payload") or "{}"),
            status=row["status"],
            candidate_id=row.get("candidate_id"),
            created_at=row.get("created_at"),
        )


@dataclass
class Checkpoint:
    completed_ids: List[str]
    started_at: str
    last_updated: str


@dataclass
class RunStats:
    auto: int = 0
    pending: int = 0
    created: int = 0
    skipped: int = 0
    errors: int = 0
    captchas: int = 0
    completed: int = 0
    conflicts: int = 0
    write_failures: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)
