"""Resumable progress record for acquisition runs."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from .models import Checkpoint
from .utils import load_json, now_iso, write_json_atomic

logger = logging.getLogger(__name__)

CHECKPOINT_PATH = Path("data/.sync-progress.json")


class CheckpointStore:
    """JSON file holding completed work item ids.

    Saving and deleting are best-effort: failures are logged and the run
    carries on, at worst repeating some work on the next resume.
    """

    def __init__(self, path: Path | str = CHECKPOINT_PATH) -> None:
        self.path = Path(path)
        self._started_at: Optional[str] = None

    def load(self) -> Optional[Checkpoint]:
        data = load_json(self.path)
        ids = data.get("completed_ids")
        if not isinstance(ids, list):
            return None
        checkpoint = Checkpoint(
            completed_ids=[str(item) for item in ids],
            started_at=data.get("started_at") or now_iso(),
            last_updated=data.get("last_updated") or now_iso(),
        )
        self._started_at = checkpoint.started_at
        logger.info(
            "Loaded checkpoint with %d completed items", len(checkpoint.completed_ids),
            extra={"phase": "checkpoint"},
        )
        return checkpoint

    def save(self, completed_ids: Iterable[str]) -> bool:
        ids = list(completed_ids)
        if self._started_at is None:
            self._started_at = now_iso()
        payload = {
            "completed_ids": ids,
            "started_at": self._started_at,
            "last_updated": now_iso(),
        }
        try:
            write_json_atomic(self.path, payload)
        except OSError:
            logger.exception("Failed to write checkpoint %s", self.path, extra={"phase": "checkpoint"})
            return False
        logger.debug("Checkpoint saved with %d ids", len(ids), extra={"phase": "checkpoint"})
        return True

    def delete(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError:
            logger.exception("Failed to delete checkpoint %s", self.path, extra={"phase": "checkpoint"})
            return
        self._started_at = None
