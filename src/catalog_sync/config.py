"""Application configuration helpers."""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

CONFIG_PATH = Path(os.environ.get("CATALOG_SYNC_CONFIG", "config/catalog_sync.json"))


@dataclass
class AffiliateCredentials:
    access_key: str
    secret_key: str
    partner_tag: str
    partner_type: str = "Associates"
    marketplace: str = "www.amazon.com"
    host: str = "webservices.amazon.com"
    region: str = "us-east-1"


@dataclass
class StorefrontSource:
    retailer_id: str
    base_url: str
    collections: Dict[str, str] = field(default_factory=dict)


@dataclass
class Settings:
    """Runtime configuration loaded from a JSON file or environment variables."""

    concurrency: int = 8
    delay: float = 2.5
    time_budget: float = 0.0
    db_path: str = "data/catalog.db"
    checkpoint_path: str = "data/.sync-progress.json"
    log_level: str = "INFO"
    log_dir: str = "logs"
    request_timeout: int = 20
    marketplace_retailer: str = "amazon"
    affiliate: Optional[AffiliateCredentials] = None
    storefronts: List[StorefrontSource] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.delay < 0:
            raise ValueError("delay must not be negative")
        if self.time_budget < 0:
            raise ValueError("time_budget must not be negative")

    @classmethod
    def load(cls, path: Path | None = None) -> "Settings":
        """Load settings from ``path`` or the default config file.

        Falls back to ``CATALOG_SYNC_*`` and ``PAAPI_*`` environment variables
        when the file does not exist.

        Raises
        ------
        ValueError
            If a value is invalid or affiliate credentials are incomplete.
        """

        config_path = path or CONFIG_PATH
        if config_path.exists():
            data = json.loads(config_path.read_text())
        else:
            data = cls._load_from_env()
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        known = {f.name for f in fields(cls)} - {"affiliate", "storefronts"}
        kwargs: Dict[str, Any] = {key: value for key, value in data.items() if key in known}

        affiliate = data.get("affiliate")
        if affiliate:
            missing = {k for k in ("access_key", "secret_key", "partner_tag") if not affiliate.get(k)}
            if missing:
                raise ValueError(f"Missing affiliate configuration keys: {', '.join(sorted(missing))}")
            kwargs["affiliate"] = AffiliateCredentials(**affiliate)

        kwargs["storefronts"] = [StorefrontSource(**entry) for entry in data.get("storefronts", [])]
        return cls(**kwargs)

    @staticmethod
    def _load_from_env() -> Dict[str, Any]:
        env_mapping = {
            "concurrency": os.environ.get("CATALOG_SYNC_CONCURRENCY"),
            "delay": os.environ.get("CATALOG_SYNC_DELAY"),
            "time_budget": os.environ.get("CATALOG_SYNC_TIME_BUDGET"),
            "db_path": os.environ.get("CATALOG_SYNC_DB_PATH"),
            "checkpoint_path": os.environ.get("CATALOG_SYNC_CHECKPOINT_PATH"),
            "log_level": os.environ.get("CATALOG_SYNC_LOG_LEVEL"),
            "log_dir": os.environ.get("CATALOG_SYNC_LOG_DIR"),
        }
        data: Dict[str, Any] = {k: v for k, v in env_mapping.items() if v}
        for key, cast in (("concurrency", int), ("delay", float), ("time_budget", float)):
            if key in data:
                data[key] = cast(data[key])

        affiliate_mapping = {
            "access_key": os.environ.get("PAAPI_ACCESS_KEY"),
            "secret_key": os.environ.get("PAAPI_SECRET_KEY"),
            "partner_tag": os.environ.get("PAAPI_PARTNER_TAG"),
            "partner_type": os.environ.get("PAAPI_PARTNER_TYPE"),
            "marketplace": os.environ.get("PAAPI_MARKETPLACE"),
            "host": os.environ.get("PAAPI_HOST"),
            "region": os.environ.get("PAAPI_REGION"),
        }
        affiliate = {k: v for k, v in affiliate_mapping.items() if v}
        if affiliate:
            data["affiliate"] = affiliate
        return data
