"""Structured logging configuration."""
from __future__ import annotations

import logging
import sys
from pathlib import Path

from pythonjsonlogger import jsonlogger

from .utils import now_iso


class PhaseJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that always carries ``timestamp``, ``level``, ``logger`` and ``phase``."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = now_iso()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record.setdefault("phase", getattr(record, "phase", None))


def setup_logging(level: str = "INFO", log_dir: str | Path | None = "logs") -> logging.Logger:
    """Configure the root logger with a console handler and a JSON file handler.

    Pass ``log_dir=None`` to log to the console only.
    """

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    root_logger.addHandler(console_handler)

    if log_dir is not None:
        logs_path = Path(log_dir)
        logs_path.mkdir(parents=True, exist_ok=True)
        json_handler = logging.FileHandler(logs_path / "catalog_sync.log", encoding="utf-8")
        json_handler.setFormatter(PhaseJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s"))
        root_logger.addHandler(json_handler)

    return root_logger
