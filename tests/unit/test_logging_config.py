from __future__ import annotations

from evaltrack.utils.logging_config import (
    LogFiles,
    Logger,
    clear_trace_id,
    get_trace_id,
    set_trace_id,
)


def test_named_files_from_config():
    assert LogFiles.STORE == "store/store.log"
    assert LogFiles.lifecycle == "lifecycle/lifecycle.log"
    assert LogFiles.get("error") == "errors/error.log"
    assert LogFiles.get("unknown") == "unknown/unknown.log"


def test_lines_carry_level_trace_and_caller(tmp_path):
    set_trace_id("req-abc")
    try:
        Logger.info("run saved id=r1", file=LogFiles.STORE)
    finally:
        clear_trace_id()

    line = (tmp_path / "logs" / "store" / "store.log").read_text(encoding="utf-8")
    assert "[INFO] [req-abc]" in line
    assert "test_logging_config.py" in line
    assert line.rstrip().endswith("run saved id=r1")


def test_level_filtering(tmp_path):
    Logger.set_level("WARNING")
    Logger.info("hidden", file=LogFiles.API)
    Logger.warning("shown", file=LogFiles.API)

    text = (tmp_path / "logs" / "api" / "api.log").read_text(encoding="utf-8")
    assert "hidden" not in text
    assert "shown" in text


def test_generated_trace_id():
    tid = set_trace_id()
    try:
        assert tid.startswith("req-")
        assert get_trace_id() == tid
    finally:
        clear_trace_id()
    assert get_trace_id() is None
