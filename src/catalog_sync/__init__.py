"""catalog-sync package."""

from .candidate_index import CandidateIndex, CatalogIndex
from .config import Settings
from .decision import BRAND_SCOPED, CATEGORY_SCOPED, Thresholds, decide
from .flush import Flusher
from .matcher import find_best_match
from .normalizer import normalize
from .pool import AcquisitionPool, PoolConfig
from .reconciler import Reconciler
from .repository import CatalogStore

__all__ = [
    "AcquisitionPool",
    "BRAND_SCOPED",
    "CATEGORY_SCOPED",
    "CandidateIndex",
    "CatalogIndex",
    "CatalogStore",
    "Flusher",
    "PoolConfig",
    "Reconciler",
    "Settings",
    "Thresholds",
    "decide",
    "find_best_match",
    "normalize",
]
