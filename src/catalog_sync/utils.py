"""Shared utility helpers for catalog-sync."""
from __future__ import annotations

import contextlib
import json
import os
import random
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, List, Sequence, TypeVar

T = TypeVar("T")


def chunked(iterable: Sequence[T] | Iterable[T], size: int) -> Iterator[List[T]]:
    """Yield lists with ``size`` elements from ``iterable``."""

    if size <= 0:
        raise ValueError("size must be positive")

    if isinstance(iterable, Sequence):
        for start in range(0, len(iterable), size):
            yield list(iterable[start : start + size])
        return

    bucket: List[T] = []
    for item in iterable:
        bucket.append(item)
        if len(bucket) == size:
            yield bucket
            bucket = []
    if bucket:
        yield bucket


def ensure_directory(path: Path) -> None:
    """Create parent directories for ``path`` if they do not exist."""

    path.parent.mkdir(parents=True, exist_ok=True)


def now_utc() -> datetime:
    """Return the current UTC datetime."""

    return datetime.now(timezone.utc)


def now_iso() -> str:
    return now_utc().isoformat()


def jittered(base: float, jitter: float = 0.3) -> float:
    """Return ``base`` scaled by a random factor in ``[1 - jitter, 1 + jitter]``."""

    if base <= 0:
        return 0.0
    return base * (1 - jitter + random.random() * 2 * jitter)


def dumps_json(data: object) -> str:
    return json.dumps(data, ensure_ascii=False, separators=(",", ":"))


def load_json(path: Path) -> dict:
    if not path.exists():
        return {}
    with contextlib.suppress(json.JSONDecodeError):
        return json.loads(path.read_text())
    return {}


def write_json_atomic(path: Path, data: object) -> None:
    """Write ``data`` to ``path`` through a temp file so readers never see a partial file."""

    ensure_directory(path)
    fd, tmp_name = tempfile.mkstemp(prefix=path.name, suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(dumps_json(data))
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise
