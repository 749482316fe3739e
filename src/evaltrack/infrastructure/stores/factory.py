from __future__ import annotations

from loguru import logger

from evaltrack.application.ports.storage_port import StoragePort
from evaltrack.infrastructure.stores.json_storage import JsonFileStorage
from evaltrack.infrastructure.stores.sql_storage import SqlAlchemyStorage
from evaltrack.settings import Settings


def build_storage(settings: Settings) -> StoragePort:
    """Pick the backend once: relational when a DB URL is configured, else JSON files."""
    if settings.db_url:
        logger.info(f"evaltrack storage: relational ({settings.db_url.split('@')[-1]})")
        return SqlAlchemyStorage(
            settings.db_url,
            auto_create_schema=settings.auto_create_schema,
            connect_timeout=settings.store_timeout_seconds,
        )
    logger.info(f"evaltrack storage: json files in {settings.data_dir}")
    return JsonFileStorage(settings.data_dir)
