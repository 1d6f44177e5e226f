from .store import (
    CRLF,
    LF,
    DocumentObserver,
    DocumentStore,
    detect_newline,
    join_lines,
    split_lines,
)
from .undo import DEFAULT_UNDO_CAPACITY, UndoEntry, UndoLog

__all__ = [
    "CRLF",
    "DEFAULT_UNDO_CAPACITY",
    "DocumentObserver",
    "DocumentStore",
    "LF",
    "UndoEntry",
    "UndoLog",
    "detect_newline",
    "join_lines",
    "split_lines",
]
