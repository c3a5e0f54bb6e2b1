"""Tabular summaries and exports built with pandas."""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional

import pandas as pd

from .models import ReviewTask, RunStats
from .repository import CatalogStore
from .utils import ensure_directory

REVIEW_TASK_COLUMNS = [
    "id",
    "task_type",
    "source_listing_id",
    "priority",
    "status",
    "reason",
    "candidate_id",
    "suggested_name",
    "score",
    "current_id",
    "created_at",
]


def review_tasks_frame(tasks: Iterable[ReviewTask]) -> pd.DataFrame:
    data = [
        {
            "id": task.id,
            "task_type": task.task_type,
            "source_listing_id": task.source_listing_id,
            "priority": task.priority,
            "status": task.status,
            "reason": task.reason,
            "candidate_id": task.candidate_id,
            "suggested_name": task.payload.get("suggested_name") or task.payload.get("merge_name"),
            "score": task.payload.get("score"),
            "current_id": task.payload.get("current_id"),
            "created_at": task.created_at,
        }
        for task in tasks
    ]
    return pd.DataFrame(data, columns=REVIEW_TASK_COLUMNS)


def export_review_tasks(
    store: CatalogStore, destination: Path | str, status: Optional[str] = "open", task_type: Optional[str] = None
) -> int:
    destination = Path(destination)
    ensure_directory(destination)
    frame = review_tasks_frame(store.review_tasks(status=status, task_type=task_type))
    frame.to_csv(destination, index=False)
    return len(frame)


def run_summary_frame(stats: RunStats, started_at: str, finished_at: str, dry_run: bool = False) -> pd.DataFrame:
    row = {"started_at": started_at, "finished_at": finished_at, "dry_run": dry_run, **stats.as_dict()}
    return pd.DataFrame([row])


def catalog_summary(store: CatalogStore) -> pd.DataFrame:
    """Per-category product counts, linked listing counts and in-stock share."""

    products = pd.DataFrame([p.to_row() for p in store.canonical_products()])
    if products.empty:
        return pd.DataFrame(columns=["category", "products", "in_stock", "listings"])

    listings = pd.DataFrame(store.select_all("external_listings"))
    summary = products.groupby("category").agg(products=("id", "count"), in_stock=("in_stock", "sum"))
    if listings.empty:
        summary["listings"] = 0
    else:
        linked = listings.dropna(subset=["canonical_product_id"]).merge(
            products[["id", "category"]], left_on="canonical_product_id", right_on="id"
        )
        summary["listings"] = linked.groupby("category").size().reindex(summary.index, fill_value=0)
    return summary.reset_index()
