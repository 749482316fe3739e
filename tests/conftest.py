# tests/conftest.py
"""
Pytest configuration and fixtures.
Adds src/ to sys.path so `import evaltrack` works without an install.
"""

import sys
from pathlib import Path

import pytest

project_root = Path(__file__).parent.parent
src_root = project_root / "src"
if str(src_root) not in sys.path:
    sys.path.insert(0, str(src_root))

from evaltrack.api.dependencies import build_services  # noqa: E402
from evaltrack.infrastructure.stores.json_storage import JsonFileStorage  # noqa: E402
from evaltrack.infrastructure.stores.sql_storage import SqlAlchemyStorage  # noqa: E402
from evaltrack.settings import Settings  # noqa: E402
from evaltrack.utils.logging_config import Logger  # noqa: E402


@pytest.fixture(autouse=True)
def _isolated_logs(tmp_path):
    """Keep file logs inside the test's tmp dir."""
    Logger.init(base_dir=str(tmp_path / "logs"), force=True)
    yield
    Logger.close()


@pytest.fixture
def sql_storage(tmp_path):
    storage = SqlAlchemyStorage(f"sqlite:///{tmp_path / 'evaltrack.db'}")
    yield storage
    storage.close()


@pytest.fixture
def json_storage(tmp_path):
    return JsonFileStorage(tmp_path / "data")


@pytest.fixture(params=["sql", "json"])
def storage(request, tmp_path):
    """Same scenario against both backends."""
    if request.param == "sql":
        backend = SqlAlchemyStorage(f"sqlite:///{tmp_path / 'parity.db'}")
    else:
        backend = JsonFileStorage(tmp_path / "parity-data")
    yield backend
    backend.close()


@pytest.fixture
def services(storage, tmp_path):
    settings = Settings(data_dir=str(tmp_path / "data"), store_timeout_seconds=10)
    return build_services(settings, storage=storage)
