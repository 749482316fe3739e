from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from evaltrack.infrastructure.stores.sqlalchemy_db import get_db_url


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass
class Settings:
    # relational backend when set, otherwise JSON files under data_dir
    db_url: Optional[str] = None
    data_dir: str = "data"
    store_timeout_seconds: float = 15.0
    auto_create_schema: bool = True

    @property
    def artifacts_dir(self) -> str:
        return os.path.join(self.data_dir, "artifacts")

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            db_url=get_db_url(),
            data_dir=os.getenv("EVALTRACK_DATA_DIR", "data").strip() or "data",
            store_timeout_seconds=float(os.getenv("EVALTRACK_STORE_TIMEOUT_SECONDS", "15")),
            auto_create_schema=_env_bool("EVALTRACK_AUTO_CREATE_SCHEMA", True),
        )
