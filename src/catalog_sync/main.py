"""Command line interface for catalog-sync."""
from __future__ import annotations

import argparse
import signal
import time
from pathlib import Path
from typing import Callable, List, Tuple

from .affiliate_client import AffiliateApiClient, AffiliateSearchReader
from .audit import run_audit
from .backlog import Backlog
from .candidate_index import CatalogIndex
from .category_rules import CATEGORIES
from .checkpoint import CheckpointStore
from .config import Settings
from .flush import Flusher
from .logging_config import setup_logging
from .models import WorkItem
from .pool import AcquisitionPool, PoolConfig, SourceReader
from .reconciler import Reconciler
from .report import export_review_tasks, run_summary_frame
from .repository import CatalogStore
from .storefront_client import StorefrontReader
from .utils import now_iso


def build_services(args: argparse.Namespace) -> Tuple[Settings, CatalogStore]:
    settings = Settings.load(Path(args.config) if args.config else None)
    setup_logging(settings.log_level, settings.log_dir)
    return settings, CatalogStore(settings.db_path)


def build_work(
    args: argparse.Namespace, settings: Settings, store: CatalogStore
) -> Tuple[List[WorkItem], Callable[[], SourceReader]]:
    if args.source == "storefront":
        if not settings.storefronts:
            raise SystemExit("No storefronts configured")
        base_urls = {source.retailer_id: source.base_url for source in settings.storefronts}
        items = Backlog.storefront_items(settings.storefronts, args.category)
        return items, lambda: StorefrontReader(base_urls, timeout=settings.request_timeout)

    if settings.affiliate is None:
        raise SystemExit("Affiliate API credentials are required for marketplace sync")
    credentials = settings.affiliate
    items = Backlog(store).marketplace_items(settings.marketplace_retailer, args.category, args.limit)
    return items, lambda: AffiliateSearchReader(AffiliateApiClient(credentials, timeout=settings.request_timeout))


def cmd_sync(args: argparse.Namespace) -> None:
    settings, store = build_services(args)
    items, reader_factory = build_work(args, settings, store)

    checkpoints = CheckpointStore(settings.checkpoint_path)
    resume_ids: List[str] = []
    if not args.no_resume:
        checkpoint = checkpoints.load()
        if checkpoint:
            resume_ids = checkpoint.completed_ids

    config = PoolConfig(
        concurrency=args.concurrency or settings.concurrency,
        delay=settings.delay if args.delay is None else args.delay,
        dry_run=args.dry_run,
    )
    budget = settings.time_budget if args.time_budget is None else args.time_budget
    deadline = time.time() + budget if budget else 0.0

    reconciler = Reconciler(CatalogIndex.from_products(store.canonical_products()))
    started_at = now_iso()
    with AcquisitionPool(reader_factory, reconciler, Flusher(store), checkpoints, config) as pool:
        signal.signal(signal.SIGINT, lambda *_: pool.stop())
        stats = pool.run(items, resume_ids, deadline)

    print(run_summary_frame(stats, started_at, now_iso(), args.dry_run).to_string(index=False))


def cmd_audit(args: argparse.Namespace) -> None:
    _, store = build_services(args)
    report = run_audit(store, threshold=args.threshold, dry_run=args.dry_run)
    print(
        f"Audited {report.products} products: {len(report.misclassified)} misclassified, "
        f"{len(report.duplicates)} duplicate pairs, {report.written} tasks written"
    )


def cmd_export_tasks(args: argparse.Namespace) -> None:
    _, store = build_services(args)
    status = None if args.status == "all" else args.status
    count = export_review_tasks(store, Path(args.destination), status=status, task_type=args.task_type)
    print(f"Exported {count} review tasks to {args.destination}")


def cmd_dashboard(args: argparse.Namespace) -> None:
    import subprocess

    script_path = Path(__file__).resolve().parent / "dashboard.py"
    subprocess.run(["streamlit", "run", str(script_path)], check=False)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Aggregate retailer listings into a deduplicated catalog")
    parser.add_argument("--config", help="Path to a JSON settings file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Fetch listings and reconcile them with the catalog")
    sync_parser.add_argument("--source", choices=["storefront", "marketplace"], default="storefront")
    sync_parser.add_argument(
        "--category", action="append", choices=CATEGORIES, help="Restrict to a category (repeatable)"
    )
    sync_parser.add_argument("--limit", type=int, help="Maximum marketplace searches")
    sync_parser.add_argument("--concurrency", type=int, help="Number of workers")
    sync_parser.add_argument("--delay", type=float, help="Base delay between requests in seconds")
    sync_parser.add_argument("--time-budget", type=float, help="Stop claiming work after this many seconds")
    sync_parser.add_argument("--dry-run", action="store_true", help="Decide and log without writing")
    sync_parser.add_argument("--no-resume", action="store_true", help="Ignore an existing checkpoint")
    sync_parser.set_defaults(func=cmd_sync)

    audit_parser = subparsers.add_parser("audit", help="Find misclassified and duplicate canonical products")
    audit_parser.add_argument("--threshold", type=float, default=0.9, help="Duplicate similarity threshold")
    audit_parser.add_argument("--dry-run", action="store_true")
    audit_parser.set_defaults(func=cmd_audit)

    export_parser = subparsers.add_parser("export-tasks", help="Export review tasks to CSV")
    export_parser.add_argument("destination", help="CSV file to write")
    export_parser.add_argument("--status", choices=["open", "resolved", "all"], default="open")
    export_parser.add_argument("--task-type", choices=["offer_link", "category_review", "device_merge"])
    export_parser.set_defaults(func=cmd_export_tasks)

    dashboard_parser = subparsers.add_parser("dashboard", help="Launch the Streamlit dashboard")
    dashboard_parser.set_defaults(func=cmd_dashboard)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = create_parser()
    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
