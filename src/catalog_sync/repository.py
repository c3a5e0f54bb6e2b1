"""SQLite catalog store for canonical products, listings and review tasks."""
from __future__ import annotations

import contextlib
import logging
import sqlite3
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from .errors import StoreWriteError
from .models import CanonicalProduct, ExternalListing, ReviewTask
from .utils import chunked, ensure_directory, now_iso

logger = logging.getLogger(__name__)

DB_PATH = Path("data/catalog.db")
MAX_BATCH = 100

ENTITY_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "canonical_products": (
        "id", "name", "category", "brand", "source_id", "price", "in_stock", "image_url", "best_url",
    ),
    "external_listings": (
        "retailer_id", "external_id", "title", "canonical_product_id", "price", "in_stock", "url",
        "image_url", "last_checked",
    ),
    "review_tasks": (
        "id", "task_type", "source_listing_id", "priority", "reason", "payload", "status",
        "candidate_id", "created_at", "resolved_at",
    ),
}


class CatalogStore:
    """Persistence layer with keyed batch upserts and paged selects."""

    def __init__(self, db_path: Path | str = DB_PATH) -> None:
        self.db_path = Path(db_path)
        ensure_directory(self.db_path)
        self._init_db()

    @contextlib.contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS canonical_products (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    category TEXT NOT NULL,
                    brand TEXT,
                    source_id TEXT,
                    price REAL,
                    in_stock INTEGER NOT NULL DEFAULT 0,
                    image_url TEXT,
                    best_url TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_canonical_products_category
                    ON canonical_products (category);

                CREATE TABLE IF NOT EXISTS external_listings (
                    retailer_id TEXT NOT NULL,
                    external_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    canonical_product_id TEXT REFERENCES canonical_products (id),
                    price REAL,
                    in_stock INTEGER NOT NULL DEFAULT 0,
                    url TEXT,
                    image_url TEXT,
                    last_checked TEXT,
                    PRIMARY KEY (retailer_id, external_id)
                );

                CREATE INDEX IF NOT EXISTS idx_external_listings_product
                    ON external_listings (canonical_product_id);

                CREATE TABLE IF NOT EXISTS review_tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_type TEXT NOT NULL,
                    source_listing_id TEXT NOT NULL,
                    priority INTEGER NOT NULL DEFAULT 0,
                    reason TEXT,
                    payload TEXT,
                    status TEXT NOT NULL DEFAULT 'open',
                    candidate_id TEXT,
                    created_at TEXT,
                    resolved_at TEXT,
                    UNIQUE (task_type, source_listing_id)
                );
                """
            )

    @staticmethod
    def _columns(entity: str) -> Tuple[str, ...]:
        try:
            return ENTITY_COLUMNS[entity]
        except KeyError:
            raise ValueError(f"Unknown entity {entity!r}") from None

    def upsert(
        self,
        entity: str,
        rows: Sequence[Mapping[str, Any]],
        conflict_key: Sequence[str],
        update_columns: Optional[Sequence[str]] = None,
        ignore_duplicates: bool = False,
    ) -> int:
        """Insert ``rows`` keyed by ``conflict_key``.

        Existing rows get ``update_columns`` overwritten (all non-key columns
        by default) or are left alone with ``ignore_duplicates``. Rows are
        written in batches of at most ``MAX_BATCH``; a failing batch raises
        ``StoreWriteError``.
        """

        if not rows:
            return 0
        allowed = self._columns(entity)
        columns = list(rows[0].keys())
        unknown = [column for column in (*columns, *conflict_key) if column not in allowed]
        if unknown:
            raise ValueError(f"Unknown columns for {entity}: {', '.join(unknown)}")

        if update_columns is None:
            update_columns = [column for column in columns if column not in conflict_key]
        if ignore_duplicates or not update_columns:
            conflict_action = "DO NOTHING"
        else:
            assignments = ", ".join(f"{column} = excluded.{column}" for column in update_columns)
            conflict_action = f"DO UPDATE SET {assignments}"

        statement = (
            f"INSERT INTO {entity} ({', '.join(columns)}) "
            f"VALUES ({', '.join(':' + column for column in columns)}) "
            f"ON CONFLICT({', '.join(conflict_key)}) {conflict_action}"
        )

        written = 0
        for batch in chunked(list(rows), MAX_BATCH):
            if any(set(row.keys()) != set(columns) for row in batch):
                raise ValueError(f"Rows for {entity} must share the same columns")
            try:
                with self._connect() as conn:
                    conn.executemany(statement, batch)
            except sqlite3.Error as exc:
                raise StoreWriteError(entity, str(exc)) from exc
            written += len(batch)
        return written

    def select(
        self,
        entity: str,
        filters: Optional[Mapping[str, Any]] = None,
        page: int = 0,
        page_size: int = MAX_BATCH,
        order_by: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Return one page of rows. List values in ``filters`` become ``IN`` clauses."""

        allowed = self._columns(entity)
        clauses: List[str] = []
        params: List[Any] = []
        for column, value in (filters or {}).items():
            if column not in allowed:
                raise ValueError(f"Unknown column for {entity}: {column}")
            if isinstance(value, (list, tuple, set, frozenset)):
                values = list(value)
                if not values:
                    return []
                clauses.append(f"{column} IN ({', '.join('?' for _ in values)})")
                params.extend(values)
            elif value is None:
                clauses.append(f"{column} IS NULL")
            else:
                clauses.append(f"{column} = ?")
                params.append(value)

        order = order_by or ("id" if "id" in allowed else "retailer_id, external_id")
        for part in order.split(","):
            words = part.split()
            if not words or words[0] not in allowed or words[1:] not in ([], ["ASC"], ["DESC"]):
                raise ValueError(f"Invalid ordering for {entity}: {order}")
        query = f"SELECT * FROM {entity}"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += f" ORDER BY {order} LIMIT ? OFFSET ?"
        params.extend([page_size, page * page_size])

        try:
            with self._connect() as conn:
                rows = conn.execute(query, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreWriteError(entity, str(exc)) from exc
        return [dict(row) for row in rows]

    def select_all(
        self, entity: str, filters: Optional[Mapping[str, Any]] = None, order_by: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        page = 0
        while True:
            batch = self.select(entity, filters, page=page, page_size=MAX_BATCH, order_by=order_by)
            rows.extend(batch)
            if len(batch) < MAX_BATCH:
                return rows
            page += 1

    def count(self, entity: str, filters: Optional[Mapping[str, Any]] = None) -> int:
        return len(self.select_all(entity, filters))

    def canonical_products(self, category: Optional[str] = None) -> List[CanonicalProduct]:
        filters = {"category": category} if category else None
        return [CanonicalProduct.from_row(row) for row in self.select_all("canonical_products", filters)]

    def listings(self, filters: Optional[Mapping[str, Any]] = None) -> List[ExternalListing]:
        return [ExternalListing.from_row(row) for row in self.select_all("external_listings", filters)]

    def existing_links(self, keys: Iterable[Tuple[str, str]]) -> Dict[Tuple[str, str], Optional[str]]:
        """Map each stored ``(retailer_id, external_id)`` to its current link.

        Keys without a stored row are absent from the result.
        """

        by_retailer: Dict[str, List[str]] = defaultdict(list)
        for retailer_id, external_id in keys:
            by_retailer[retailer_id].append(external_id)

        links: Dict[Tuple[str, str], Optional[str]] = {}
        for retailer_id, external_ids in by_retailer.items():
            for batch in chunked(sorted(set(external_ids)), MAX_BATCH):
                rows = self.select(
                    "external_listings",
                    {"retailer_id": retailer_id, "external_id": batch},
                    page_size=MAX_BATCH,
                )
                for row in rows:
                    links[(row["retailer_id"], row["external_id"])] = row["canonical_product_id"]
        return links

    def denormalize_best_offers(self, product_ids: Iterable[str]) -> int:
        """Copy the best linked offer into each canonical product.

        In-stock offers win over out-of-stock ones, then the lowest price.
        Products without priced offers are left unchanged.
        """

        updated = 0
        for batch in chunked(sorted(set(product_ids)), MAX_BATCH):
            listings = self.select_all("external_listings", {"canonical_product_id": batch})
            best: Dict[str, Dict[str, Any]] = {}
            for row in listings:
                if row["price"] is None:
                    continue
                rank = (0 if row["in_stock"] else 1, row["price"])
                current = best.get(row["canonical_product_id"])
                if current is None or rank < (0 if current["in_stock"] else 1, current["price"]):
                    best[row["canonical_product_id"]] = row
            if not best:
                continue
            try:
                with self._connect() as conn:
                    conn.executemany(
                        """
                        UPDATE canonical_products SET
                            price = :price,
                            in_stock = :in_stock,
                            best_url = :url,
                            image_url = COALESCE(image_url, :image_url)
                        WHERE id = :product_id
                        """,
                        [
                            {
                                "price": row["price"],
                                "in_stock": row["in_stock"],
                                "url": row["url"],
                                "image_url": row["image_url"],
                                "product_id": product_id,
                            }
                            for product_id, row in best.items()
                        ],
                    )
            except sqlite3.Error as exc:
                raise StoreWriteError("canonical_products", str(exc)) from exc
            updated += len(best)
        return updated

    def review_tasks(
        self, status: Optional[str] = "open", task_type: Optional[str] = None, limit: Optional[int] = None
    ) -> List[ReviewTask]:
        filters: Dict[str, Any] = {}
        if status:
            filters["status"] = status
        if task_type:
            filters["task_type"] = task_type
        rows = self.select_all("review_tasks", filters, order_by="priority DESC, id")
        if limit:
            rows = rows[:limit]
        return [ReviewTask.from_row(row) for row in rows]

    def add_review_tasks(self, tasks: Iterable[ReviewTask]) -> int:
        rows = [task.to_row() for task in tasks]
        return self.upsert(
            "review_tasks", rows, conflict_key=("task_type", "source_listing_id"), ignore_duplicates=True
        )

    def resolve_review_task(self, task_id: int, accept: bool = False) -> Optional[ReviewTask]:
        """Close a task. Accepting an ``offer_link`` task links the listing to
        the suggested product; accepting a ``category_review`` task moves the
        product to the suggested category; accepting a ``device_merge`` task
        moves every listing of the duplicate onto the kept product and deletes
        the duplicate.
        """

        rows = self.select("review_tasks", {"id": task_id}, page_size=1)
        if not rows:
            return None
        task = ReviewTask.from_row(rows[0])
        merged_into: Optional[str] = None
        try:
            with self._connect() as conn:
                if accept and task.task_type == "offer_link" and task.candidate_id:
                    retailer_id, _, external_id = task.source_listing_id.partition(":")
                    conn.execute(
                        "UPDATE external_listings SET canonical_product_id = ? "
                        "WHERE retailer_id = ? AND external_id = ?",
                        (task.candidate_id, retailer_id, external_id),
                    )
                elif accept and task.task_type == "category_review" and task.payload.get("suggested_category"):
                    conn.execute(
                        "UPDATE canonical_products SET category = ? WHERE id = ?",
                        (task.payload["suggested_category"], task.candidate_id),
                    )
                elif accept and task.task_type == "device_merge" and task.payload.get("merge_id"):
                    merged_into = task.payload["keep_id"]
                    self._merge_products(conn, merged_into, task.payload["merge_id"])
                conn.execute(
                    "UPDATE review_tasks SET status = 'resolved', resolved_at = ? WHERE id = ?",
                    (now_iso(), task_id),
                )
        except sqlite3.Error as exc:
            raise StoreWriteError("review_tasks", str(exc)) from exc
        if merged_into:
            self.denormalize_best_offers([merged_into])
        task.status = "resolved"
        logger.info(
            "Resolved review task %s (%s)", task_id, "accepted" if accept else "dismissed",
            extra={"phase": "review"},
        )
        return task

    @staticmethod
    def _merge_products(conn: sqlite3.Connection, keep_id: str, merge_id: str) -> None:
        moved = conn.execute(
            "UPDATE external_listings SET canonical_product_id = ? WHERE canonical_product_id = ?",
            (keep_id, merge_id),
        ).rowcount
        conn.execute(
            "UPDATE review_tasks SET candidate_id = ? "
            "WHERE candidate_id = ? AND task_type = 'offer_link' AND status = 'open'",
            (keep_id, merge_id),
        )
        conn.execute("DELETE FROM canonical_products WHERE id = ?", (merge_id,))
        logger.info(
            "Merged product %s into %s (%d listings moved)", merge_id, keep_id, moved,
            extra={"phase": "review"},
        )
