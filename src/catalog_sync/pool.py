"""Adaptive concurrent acquisition worker pool."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Iterable, List, Optional, Protocol, Sequence

from .checkpoint import CheckpointStore
from .errors import AntiBotChallenge
from .flush import Flusher
from .models import Candidate, MatchOutcome, RunStats, Tier, WorkItem
from .reconciler import Reconciler
from .throttle import CaptchaThrottle, ThrottleConfig
from .utils import jittered

logger = logging.getLogger(__name__)


class SourceReader(Protocol):
    def search(self, item: WorkItem) -> List[Candidate]:
        ...


ReaderFactory = Callable[[], SourceReader]


@dataclass
class PoolConfig:
    concurrency: int = 8
    delay: float = 2.5
    jitter: float = 0.3
    checkpoint_every: int = 50
    flush_every: int = 200
    suspend_interval: float = 5.0
    dry_run: bool = False

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.checkpoint_every < 1 or self.flush_every < 1:
            raise ValueError("checkpoint_every and flush_every must be positive")


class AcquisitionPool:
    """Runs work items through per-worker source readers.

    Usage::

        with AcquisitionPool(factory, reconciler, flusher, checkpoints, config) as pool:
            stats = pool.run(items, resume_ids, deadline)

    Network calls happen outside the pool lock. Reconciliation, index
    mutation, counters, completed ids, the outcome buffer and the throttle
    are only touched while holding it.
    """

    def __init__(
        self,
        reader_factory: ReaderFactory,
        reconciler: Reconciler,
        flusher: Optional[Flusher] = None,
        checkpoints: Optional[CheckpointStore] = None,
        config: Optional[PoolConfig] = None,
        throttle_config: Optional[ThrottleConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.reader_factory = reader_factory
        self.reconciler = reconciler
        self.flusher = flusher
        self.checkpoints = checkpoints
        self.config = config or PoolConfig()
        self.clock = clock
        self.throttle = CaptchaThrottle(
            self.config.concurrency, self.config.delay, throttle_config, clock=clock
        )

        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._readers: List[SourceReader] = []
        self._items: List[WorkItem] = []
        self._cursor = 0
        self._completed: List[str] = []
        self._completed_set: set[str] = set()
        self._buffer: List[MatchOutcome] = []
        self._stats = RunStats()
        self._deadline = 0.0

    def __enter__(self) -> "AcquisitionPool":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self) -> None:
        if not self._readers:
            self._readers = [self.reader_factory() for _ in range(self.config.concurrency)]

    def close(self) -> None:
        self._stop_event.set()
        for reader in self._readers:
            close = getattr(reader, "close", None)
            if callable(close):
                try:
                    close()
                except Exception:
                    logger.exception("Failed to close source reader", extra={"phase": "shutdown"})
        self._readers = []

    def stop(self) -> None:
        """Ask workers to finish; takes effect at the next wait or loop top."""

        self._stop_event.set()

    def get_stats(self) -> RunStats:
        with self._lock:
            return replace(self._stats)

    def completed_ids(self) -> List[str]:
        with self._lock:
            return list(self._completed)

    def run(
        self, items: Sequence[WorkItem], resume_ids: Iterable[str] = (), deadline: float = 0.0
    ) -> RunStats:
        """Process ``items`` and return the run counters.

        ``deadline`` is an epoch timestamp; ``0`` means no time budget.
        Items whose ids are in ``resume_ids`` are skipped.
        """

        if not self._readers:
            raise RuntimeError("AcquisitionPool must be opened before run()")

        self._stop_event.clear()
        self._deadline = deadline
        self._completed = list(dict.fromkeys(resume_ids))
        self._completed_set = set(self._completed)
        self._items = [item for item in items if item.id not in self._completed_set]
        self._cursor = 0
        self._buffer = []
        self._stats = RunStats()

        logger.info(
            "Starting run: %d items, %d already completed, %d workers, delay %.2fs%s",
            len(self._items),
            len(self._completed_set),
            self.config.concurrency,
            self.config.delay,
            " (dry run)" if self.config.dry_run else "",
            extra={"phase": "start"},
        )

        threads = [
            threading.Thread(target=self._worker, args=(ordinal,), name=f"acquire-{ordinal}", daemon=True)
            for ordinal in range(self.config.concurrency)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        with self._lock:
            self._flush_locked()
            finished = all(item.id in self._completed_set for item in self._items)
            self._finish_checkpoint(finished)
            stats = replace(self._stats)

        logger.info("Run finished: %s", stats.as_dict(), extra={"phase": "finish"})
        return stats

    def _deadline_passed(self) -> bool:
        return bool(self._deadline) and self.clock() >= self._deadline

    def _worker(self, ordinal: int) -> None:
        reader = self._readers[ordinal]
        while not self._stop_event.is_set() and not self._deadline_passed():
            with self._lock:
                self.throttle.tick()
                suspended = ordinal >= self.throttle.active_workers
                exhausted = self._cursor >= len(self._items)
            if exhausted:
                return
            if suspended:
                self._stop_event.wait(self.config.suspend_interval)
                continue

            item = self._claim()
            if item is None:
                return
            self._process(reader, item)
            with self._lock:
                delay = self.throttle.delay
            self._stop_event.wait(jittered(delay, self.config.jitter))

    def _claim(self) -> Optional[WorkItem]:
        with self._lock:
            while self._cursor < len(self._items):
                item = self._items[self._cursor]
                self._cursor += 1
                if item.id not in self._completed_set:
                    return item
        return None

    def _process(self, reader: SourceReader, item: WorkItem) -> None:
        try:
            candidates = reader.search(item)
            with self._lock:
                self._record(item, self.reconciler.reconcile(item, candidates))
        except AntiBotChallenge as exc:
            with self._lock:
                self._stats.captchas += 1
                self.throttle.record()
            logger.warning(
                "Anti-bot challenge on item %s: %s", item.id, exc,
                extra={"phase": "acquire", "item_id": item.id},
            )
        except Exception:
            with self._lock:
                self._stats.errors += 1
            logger.exception(
                "Work item %s failed", item.id, extra={"phase": "acquire", "item_id": item.id}
            )

    def _record(self, item: WorkItem, outcomes: List[MatchOutcome]) -> None:
        for outcome in outcomes:
            if outcome.created is not None:
                self._stats.created += 1
            elif outcome.tier is Tier.AUTO:
                self._stats.auto += 1
            elif outcome.tier is Tier.PENDING:
                self._stats.pending += 1
            else:
                self._stats.skipped += 1
        self._buffer.extend(outcomes)

        self._completed.append(item.id)
        self._completed_set.add(item.id)
        self._stats.completed += 1

        if self._stats.completed % self.config.checkpoint_every == 0:
            self._save_checkpoint()
        if len(self._buffer) >= self.config.flush_every:
            self._flush_locked()

    def _save_checkpoint(self) -> None:
        if self.config.dry_run or self.checkpoints is None:
            return
        self.checkpoints.save(self._completed)

    def _finish_checkpoint(self, finished: bool) -> None:
        if self.config.dry_run or self.checkpoints is None:
            return
        if finished:
            self.checkpoints.delete()
        else:
            self.checkpoints.save(self._completed)

    def _flush_locked(self) -> None:
        if not self._buffer:
            return
        buffer, self._buffer = self._buffer, []
        if self.config.dry_run or self.flusher is None:
            created = sum(1 for outcome in buffer if outcome.created is not None)
            logger.info(
                "Dry run: would write %d outcomes (%d new products)", len(buffer), created,
                extra={"phase": "flush"},
            )
            return
        try:
            result = self.flusher.flush(buffer)
        except Exception:
            self._stats.write_failures += 1
            logger.exception(
                "Flush of %d outcomes failed, their items stay pending", len(buffer), extra={"phase": "flush"}
            )
            self._requeue(outcome.work_item_id for outcome in buffer)
            return
        self._stats.conflicts += result.conflicts
        self._stats.errors += result.invalid_rows
        self._stats.write_failures += result.failed_batches

    def _requeue(self, item_ids: Iterable[Optional[str]]) -> None:
        """Forget completion of items whose outcomes never reached the store."""

        lost = {item_id for item_id in item_ids if item_id} & self._completed_set
        if not lost:
            return
        self._completed = [item_id for item_id in self._completed if item_id not in lost]
        self._completed_set -= lost
        self._stats.completed -= len(lost)
