from __future__ import annotations

import logging
import sys
import warnings
from pathlib import Path

from texcode.logger import (
    LogManager,
    apply_logging_settings,
    init_file_logging,
    init_log_manager,
    logger,
)
from texcode.settings import LoggingSettings, LogLevel


def _has_tty_handler(log: logging.Logger) -> bool:
    for handler in log.handlers:
        if isinstance(handler, logging.StreamHandler):
            stream = getattr(handler, "stream", None)
            if stream in (sys.stdout, sys.stderr):
                return True
    return False


def test_log_manager_disables_tty_and_captures() -> None:
    root_logger = logging.getLogger()
    root_stream_handler = logging.StreamHandler(sys.stdout)
    root_logger.addHandler(root_stream_handler)

    named_logger = logging.getLogger("existing.nonprop")
    named_logger.setLevel(logging.INFO)
    named_logger.propagate = False
    named_stream_handler = logging.StreamHandler(sys.stdout)
    named_logger.addHandler(named_stream_handler)

    manager = init_log_manager(max_entries=None)
    assert isinstance(manager, LogManager)

    assert not _has_tty_handler(root_logger)
    assert not _has_tty_handler(named_logger)

    root_logger.warning("root warning message")
    named_logger.info("named logger message")

    records = manager.get_logs()
    messages = [record.message for record in records]
    assert "root warning message" in messages
    assert "named logger message" in messages


def test_log_manager_captures_warnings() -> None:
    manager = init_log_manager(max_entries=None)
    assert isinstance(manager, LogManager)
    warnings.warn("warning from warnings module", UserWarning)

    records = manager.get_logs()
    messages = [record.message for record in records]
    assert any("warning from warnings module" in message for message in messages)


def test_structlog_events_reach_log_manager() -> None:
    manager = init_log_manager(max_entries=None)
    manager.clear()
    apply_logging_settings(LoggingSettings(default_level=LogLevel.info))

    logger.info("Document replaced", lines=3, label="Apply 1 patch")

    messages = [r.message for r in manager.get_logs() if r.logger_name == "texcode"]
    assert any("Document replaced" in m and "Apply 1 patch" in m for m in messages)


def _record(msg: str, level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord("texcode", level, __file__, 1, msg, None, None)


def test_log_manager_is_bounded() -> None:
    manager = LogManager(max_entries=2)
    for i in range(3):
        manager.add_record(_record(f"m{i}"))
    assert [r.message for r in manager.get_logs()] == ["m1", "m2"]
    assert [r.seq for r in manager.get_logs()] == [2, 3]
    assert manager.last_seq == 3


def test_log_manager_filters() -> None:
    manager = LogManager(max_entries=None)
    manager.add_record(_record("before"))
    mark = manager.last_seq
    manager.add_record(_record("Discarded patch block", logging.WARNING))
    manager.add_record(_record("Document replaced"))
    manager.add_record(_record("Model call failed", logging.ERROR))

    warned = manager.get_logs(logging.WARNING, after_seq=mark)
    assert [r.message for r in warned] == ["Discarded patch block", "Model call failed"]
    assert [r.message for r in manager.get_logs(limit=1)] == ["Model call failed"]
    assert manager.get_logs(limit=0) == []


def test_apply_logging_settings_levels() -> None:
    apply_logging_settings(
        LoggingSettings(
            default_level=LogLevel.warning,
            enabled_loggers={"LiteLLM": LogLevel.error},
        )
    )
    assert logging.getLogger("texcode").level == logging.WARNING
    assert logging.getLogger("LiteLLM").level == logging.ERROR

    apply_logging_settings(None)
    assert logging.getLogger("texcode").level == logging.INFO


def test_file_logging(tmp_path: Path) -> None:
    path = tmp_path / "texcode.log"
    handler = init_file_logging(path)
    try:
        apply_logging_settings(None)
        logger.warning("Patch failed validation", line=40)
        handler.flush()
        assert "Patch failed validation" in path.read_text(encoding="utf-8")
    finally:
        logging.getLogger().removeHandler(handler)
        handler.close()
