from __future__ import annotations

import logging
import sys
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import structlog

if TYPE_CHECKING:
    from texcode.settings import LoggingSettings

LOG_FILE_NAME = "texcode.log"
LOGGER_NAME = "texcode"
# Records kept for the chat ':log' command
DEFAULT_LOG_HISTORY = 500


@dataclass
class LogRecordEntry:
    seq: int
    logger_name: str
    level: int
    level_name: str
    message: str
    created: float


class LogManager:
    """
    Keeps the most recent log records in memory so the chat loop can show
    them on demand instead of printing them over the streamed reply. Every
    record gets an increasing sequence number, which lets a caller ask for
    what was logged during one turn.
    """

    def __init__(self, max_entries: Optional[int] = DEFAULT_LOG_HISTORY) -> None:
        self._max_entries = max_entries
        self._records: list[LogRecordEntry] = []
        self._last_seq = 0

    @property
    def last_seq(self) -> int:
        return self._last_seq

    def add_record(self, record: logging.LogRecord) -> None:
        self._last_seq += 1
        self._records.append(
            LogRecordEntry(
                seq=self._last_seq,
                logger_name=record.name,
                level=record.levelno,
                level_name=record.levelname,
                message=record.getMessage(),
                created=record.created,
            )
        )
        if self._max_entries is not None and len(self._records) > self._max_entries:
            del self._records[0 : len(self._records) - self._max_entries]

    def get_logs(
        self,
        min_level: int = logging.NOTSET,
        after_seq: int = 0,
        limit: Optional[int] = None,
    ) -> list[LogRecordEntry]:
        """Records at or above min_level logged after after_seq, oldest first."""
        out = [
            r for r in self._records if r.level >= min_level and r.seq > after_seq
        ]
        if limit is not None:
            out = out[-limit:] if limit > 0 else []
        return out

    def clear(self) -> None:
        self._records.clear()


class _InMemoryLogHandler(logging.Handler):
    def __init__(self, manager: LogManager) -> None:
        super().__init__()
        self._manager = manager

    def emit(self, record: logging.LogRecord) -> None:
        self._manager.add_record(record)


_log_manager: Optional[LogManager] = None
_log_handler: Optional[_InMemoryLogHandler] = None


def _is_tty_handler(handler: logging.Handler) -> bool:
    return isinstance(handler, logging.StreamHandler) and getattr(
        handler, "stream", None
    ) in (sys.stdout, sys.stderr)


def init_log_manager(max_entries: Optional[int] = DEFAULT_LOG_HISTORY) -> LogManager:
    """
    Route all logging into an in-memory LogManager.

    Stream handlers writing to stdout/stderr are removed so log output does not
    interleave with the interactive chat. Python warnings are forwarded to the
    'py.warnings' logger.
    """
    global _log_manager, _log_handler
    if _log_manager is None:
        _log_manager = LogManager(max_entries=max_entries)
        _log_handler = _InMemoryLogHandler(_log_manager)

    root_logger = logging.getLogger()
    if _log_handler is not None and _log_handler not in root_logger.handlers:
        root_logger.addHandler(_log_handler)

    for handler in list(root_logger.handlers):
        if _is_tty_handler(handler):
            root_logger.removeHandler(handler)

    for logger_obj in list(logging.root.manager.loggerDict.values()):
        if not isinstance(logger_obj, logging.Logger):
            continue
        for handler in list(logger_obj.handlers):
            if _is_tty_handler(handler):
                logger_obj.removeHandler(handler)
        if (
            _log_handler is not None
            and not logger_obj.propagate
            and _log_handler not in logger_obj.handlers
        ):
            logger_obj.addHandler(_log_handler)

    def _showwarning(
        message: warnings.WarningMessage | str,
        category: type[Warning],
        filename: str,
        lineno: int,
        file: object | None = None,
        line: str | None = None,
    ) -> None:
        text = warnings.formatwarning(message, category, filename, lineno, line)
        logging.getLogger("py.warnings").warning(text.strip())

    warnings.showwarning = _showwarning
    return _log_manager


def get_log_manager() -> Optional[LogManager]:
    return _log_manager


def init_file_logging(path: Path | str = LOG_FILE_NAME) -> logging.Handler:
    handler = logging.FileHandler(path, mode="w", encoding="utf-8", delay=True)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logging.getLogger().addHandler(handler)
    return handler


def apply_logging_settings(logging_settings: Optional["LoggingSettings"]) -> None:
    from texcode.settings import LoggingSettings, LogLevel

    if logging_settings is None:
        logging_settings = LoggingSettings()

    level_map = {
        LogLevel.debug: logging.DEBUG,
        LogLevel.info: logging.INFO,
        LogLevel.warning: logging.WARNING,
        LogLevel.error: logging.ERROR,
        LogLevel.critical: logging.CRITICAL,
    }

    default_level = level_map.get(logging_settings.default_level, logging.INFO)
    logging.getLogger().setLevel(default_level)
    logging.getLogger(LOGGER_NAME).setLevel(default_level)

    for logger_name, level in logging_settings.enabled_loggers.items():
        logging.getLogger(logger_name).setLevel(level_map.get(level, default_level))


structlog.configure(
    wrapper_class=structlog.make_filtering_bound_logger(logging.NOTSET),
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=False),
        structlog.dev.ConsoleRenderer(colors=False),
    ],
)

logger: structlog.BoundLogger = structlog.get_logger(LOGGER_NAME)


# litellm emits pydantic serializer warnings on every streamed chunk
warnings.filterwarnings(
    "ignore", category=UserWarning, message=r"^Pydantic serializer warnings:"
)
