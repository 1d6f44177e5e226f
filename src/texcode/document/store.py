from __future__ import annotations

from typing import Callable, List, Optional, Sequence

from texcode.logger import logger

from .undo import UndoLog

DocumentObserver = Callable[[str], None]

DEFAULT_CHANGE_LABEL = "Edit document"

LF = "\n"
CRLF = "\r\n"


def detect_newline(text: str) -> str:
    """Line ending of the first line break in text; LF when there is none."""
    idx = text.find(LF)
    if idx > 0 and text[idx - 1] == "\r":
        return CRLF
    return LF


def split_lines(text: str, newline: str = LF) -> List[str]:
    """
    Split on '\\n' only, so join_lines(split_lines(t, nl), nl) == t whenever
    every line break in t is nl. With CRLF the trailing '\\r' of each line
    is dropped.
    """
    if not text:
        return []
    lines = text.split(LF)
    if newline == CRLF:
        lines = [line[:-1] if line.endswith("\r") else line for line in lines]
    return lines


def join_lines(lines: Sequence[str], newline: str = LF) -> str:
    return newline.join(lines)


class DocumentStore:
    """
    Holds the current document as a list of lines.

    Every successful change replaces the whole line list. When history is
    recorded the previous text is pushed onto the undo log first, then the
    registered observer is called synchronously with the new text.

    Lines are kept without their line ending. read() joins them with the
    ending detected in the initial text (or given explicitly), so a CRLF
    document stays CRLF after edits.
    """

    def __init__(
        self,
        initial_text: str = "",
        undo_log: Optional[UndoLog] = None,
        observer: Optional[DocumentObserver] = None,
        newline: Optional[str] = None,
    ) -> None:
        self._newline = newline or detect_newline(initial_text)
        self._lines: List[str] = split_lines(initial_text, self._newline)
        self._undo_log = undo_log if undo_log is not None else UndoLog()
        self._observer = observer

    @property
    def undo_log(self) -> UndoLog:
        return self._undo_log

    @property
    def newline(self) -> str:
        return self._newline

    @property
    def line_count(self) -> int:
        return len(self._lines)

    def read(self) -> str:
        return join_lines(self._lines, self._newline)

    def lines(self) -> List[str]:
        return list(self._lines)

    def set_observer(self, observer: Optional[DocumentObserver]) -> None:
        self._observer = observer

    def replace(
        self,
        new_text: str,
        record_history: bool = True,
        label: Optional[str] = None,
    ) -> bool:
        """
        Replace the document. Returns False when the content is unchanged, in
        which case nothing is recorded and the observer is not called.
        """
        return self.replace_lines(
            split_lines(new_text, self._newline), record_history, label
        )

    def replace_lines(
        self,
        new_lines: Sequence[str],
        record_history: bool = True,
        label: Optional[str] = None,
    ) -> bool:
        new_lines = split_lines(join_lines(new_lines), self._newline)
        if new_lines == self._lines:
            logger.debug("Document unchanged, skipping replace")
            return False

        if record_history:
            self._undo_log.push_snapshot(self.read(), label or DEFAULT_CHANGE_LABEL)

        self._lines = new_lines
        logger.info(
            "Document replaced",
            lines=len(new_lines),
            label=label,
            recorded=record_history,
        )

        if self._observer is not None:
            self._observer(self.read())
        return True
