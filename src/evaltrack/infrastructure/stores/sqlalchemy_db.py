from __future__ import annotations

import os
from typing import Any, Dict, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


def normalize_db_url(url: str) -> str:
    text = (url or "").strip()
    # Hosted Postgres providers still hand out the scheme SQLAlchemy dropped.
    if text.startswith("postgres://"):
        text = "postgresql://" + text[len("postgres://") :]
    return text


def get_db_url() -> Optional[str]:
    """Relational backend URL, or None when only the JSON file store is configured."""
    raw = os.getenv("EVALTRACK_DB_URL") or os.getenv("DATABASE_URL") or ""
    url = normalize_db_url(raw)
    return url or None


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def driver_connect_args(db_url: str, timeout: Optional[float] = None) -> Dict[str, Any]:
    connect_args: Dict[str, Any] = {}
    if db_url.startswith("sqlite"):
        # Sessions are opened from worker threads.
        connect_args["check_same_thread"] = False
        if timeout:
            # Seconds to wait on a locked database before failing.
            connect_args["timeout"] = float(timeout)
    elif timeout and db_url.startswith("postgresql"):
        connect_args["connect_timeout"] = max(1, int(timeout))
        # Server-side statement cap, in milliseconds.
        connect_args["options"] = f"-c statement_timeout={int(timeout * 1000)}"
    return connect_args


class SessionProvider:
    """Owns the engine (connection pool) and hands out ORM sessions."""

    def __init__(self, db_url: str, *, connect_timeout: Optional[float] = None):
        self.db_url = normalize_db_url(db_url)
        self.engine: Engine = create_engine(
            self.db_url,
            pool_pre_ping=True,
            connect_args=driver_connect_args(self.db_url, connect_timeout),
        )
        if self.db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self._factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    def session(self) -> Session:
        return self._factory()

    def dispose(self) -> None:
        self.engine.dispose()
