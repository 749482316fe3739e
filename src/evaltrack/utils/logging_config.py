# src/evaltrack/utils/logging_config.py
"""
File logging for evaltrack.

Usage:
    from evaltrack.utils.logging_config import Logger, LogFiles

    Logger.info("run saved: table-2025-01-01-0900", file=LogFiles.STORE)
    Logger.error("backend timeout", file=LogFiles.ERROR)

Environment:
    EVALTRACK_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR, CRITICAL (default: INFO)
    EVALTRACK_LOG_DIR: base directory for log files (default: logs/)
    EVALTRACK_LOG_MAX_BYTES: rotate after this many bytes (default: 10MB)
    EVALTRACK_LOG_BACKUP_COUNT: rotated files to keep (default: 5)
"""

from __future__ import annotations

import inspect
import logging
import os
import threading
import uuid
from contextvars import ContextVar
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

import yaml

_trace_id_var: ContextVar[Optional[str]] = ContextVar("evaltrack_trace_id", default=None)

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_DIR = "logs"
DEFAULT_LOG_FILE = "evaltrack.log"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_BACKUP_COUNT = 5
DEFAULT_FORMAT = "{timestamp} [{level}] [{trace_id}] {filename}:{lineno} - {message}"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_CONFIG_FILE = Path(__file__).parent / "log_config.yaml"

_DEFAULT_FILES: Dict[str, str] = {
    "store": "store/store.log",
    "lifecycle": "lifecycle/lifecycle.log",
    "api": "api/api.log",
    "error": "errors/error.log",
}


class _LogFilesMeta(type):
    """Lets callers write LogFiles.STORE instead of LogFiles.get("store")."""

    def __getattr__(cls, name: str) -> str:
        files = cls._load()
        key = name if name in files else name.lower()
        if key in files:
            return files[key]
        raise AttributeError(f"Log file '{name}' not found in config")


class LogFiles(metaclass=_LogFilesMeta):
    """
    Named log destinations, read from utils/log_config.yaml (`files:` section)
    on top of built-in defaults.
    """

    _files: Optional[Dict[str, str]] = None

    @classmethod
    def _load(cls) -> Dict[str, str]:
        if cls._files is not None:
            return cls._files
        files = dict(_DEFAULT_FILES)
        if LOG_CONFIG_FILE.exists():
            try:
                with open(LOG_CONFIG_FILE, "r", encoding="utf-8") as fh:
                    config = yaml.safe_load(fh) or {}
            except (OSError, yaml.YAMLError):
                config = {}
            if isinstance(config.get("files"), dict):
                files.update({str(k): str(v) for k, v in config["files"].items()})
        cls._files = files
        return files

    @classmethod
    def get(cls, name: str) -> str:
        files = cls._load()
        return files.get(name) or files.get(name.lower()) or f"{name}/{name}.log"


LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

_initialized = False
_config: dict = {}
_handlers: Dict[str, RotatingFileHandler] = {}
_handlers_lock = threading.Lock()


def _get_config() -> dict:
    return {
        "level": os.environ.get("EVALTRACK_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
        "base_dir": os.environ.get("EVALTRACK_LOG_DIR", DEFAULT_LOG_DIR),
        "max_bytes": int(os.environ.get("EVALTRACK_LOG_MAX_BYTES", DEFAULT_MAX_BYTES)),
        "backup_count": int(os.environ.get("EVALTRACK_LOG_BACKUP_COUNT", DEFAULT_BACKUP_COUNT)),
    }


def _handler_for(file_path: str) -> RotatingFileHandler:
    with _handlers_lock:
        handler = _handlers.get(file_path)
        if handler is None:
            path = Path(file_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            handler = RotatingFileHandler(
                filename=str(path),
                maxBytes=_config.get("max_bytes", DEFAULT_MAX_BYTES),
                backupCount=_config.get("backup_count", DEFAULT_BACKUP_COUNT),
                encoding="utf-8",
            )
            handler.setFormatter(logging.Formatter("%(message)s"))
            _handlers[file_path] = handler
        return handler


def _resolve_file_path(file: Optional[str]) -> str:
    base_dir = Path(_config.get("base_dir", DEFAULT_LOG_DIR))
    return str(base_dir / (file or DEFAULT_LOG_FILE))


def _should_log(level: str) -> bool:
    current = _config.get("level", DEFAULT_LOG_LEVEL)
    return LOG_LEVELS.get(level, 0) >= LOG_LEVELS.get(current, logging.INFO)


def format_line(level: str, message: str, filename: str, lineno: int) -> str:
    return DEFAULT_FORMAT.format(
        timestamp=datetime.now().strftime(DEFAULT_DATE_FORMAT),
        level=level,
        trace_id=_trace_id_var.get() or "-",
        filename=filename,
        lineno=lineno,
        message=message,
    )


def _write_log(level: str, message: str, file: Optional[str]) -> None:
    if not _should_log(level):
        return

    # two frames up: _write_log <- Logger.<level> <- caller
    frame = inspect.currentframe()
    caller = frame.f_back.f_back if frame and frame.f_back else None
    filename = os.path.basename(caller.f_code.co_filename) if caller else "unknown"
    lineno = caller.f_lineno if caller else 0

    handler = _handler_for(_resolve_file_path(file))
    record = logging.LogRecord(
        name="evaltrack",
        level=LOG_LEVELS.get(level, logging.INFO),
        pathname=filename,
        lineno=lineno,
        msg=format_line(level, message, filename, lineno),
        args=None,
        exc_info=None,
    )
    handler.handle(record)


class Logger:
    """
    Static file logger. Auto-initializes from the environment on first use;
    call Logger.init() explicitly to override settings (tests point base_dir
    at tmp_path).
    """

    @staticmethod
    def init(
        level: Optional[str] = None,
        base_dir: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
        *,
        force: bool = False,
    ) -> None:
        global _initialized, _config

        if _initialized and not force:
            return
        if force:
            Logger.close()

        _config = _get_config()
        if level:
            _config["level"] = level.upper()
        if base_dir:
            _config["base_dir"] = base_dir
        if max_bytes:
            _config["max_bytes"] = max_bytes
        if backup_count:
            _config["backup_count"] = backup_count
        _initialized = True

    @staticmethod
    def _ensure_init() -> None:
        if not _initialized:
            Logger.init()

    @staticmethod
    def debug(message: str, file: Optional[str] = None) -> None:
        Logger._ensure_init()
        _write_log("DEBUG", message, file)

    @staticmethod
    def info(message: str, file: Optional[str] = None) -> None:
        Logger._ensure_init()
        _write_log("INFO", message, file)

    @staticmethod
    def warning(message: str, file: Optional[str] = None) -> None:
        Logger._ensure_init()
        _write_log("WARNING", message, file)

    @staticmethod
    def error(message: str, file: Optional[str] = None) -> None:
        Logger._ensure_init()
        _write_log("ERROR", message, file)

    @staticmethod
    def critical(message: str, file: Optional[str] = None) -> None:
        Logger._ensure_init()
        _write_log("CRITICAL", message, file)

    @staticmethod
    def set_level(level: str) -> None:
        Logger._ensure_init()
        _config["level"] = level.upper()

    @staticmethod
    def close() -> None:
        with _handlers_lock:
            for handler in _handlers.values():
                handler.close()
            _handlers.clear()


def generate_trace_id() -> str:
    return f"req-{uuid.uuid4().hex[:12]}"


def set_trace_id(trace_id: Optional[str] = None) -> str:
    """Bind a trace id to the current context (generated when not given) and return it."""
    tid = trace_id or generate_trace_id()
    _trace_id_var.set(tid)
    return tid


def get_trace_id() -> Optional[str]:
    return _trace_id_var.get()


def clear_trace_id() -> None:
    _trace_id_var.set(None)
