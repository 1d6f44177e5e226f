from __future__ import annotations

import datetime
import logging
from typing import Sequence

from rich import console as rich_console
from rich import text as rich_text

from texcode.logger import LogRecordEntry
from texcode.patch.models import ChangePreview, PatchOperation
from texcode.session.models import TurnResult

PREVIEW_BULLET = "●"
PREVIEW_BULLET_STYLE = "bold yellow"
PREVIEW_TITLE_STYLE = "bright_cyan"
PREVIEW_META_STYLE = "dim grey50"
CONTEXT_LINE_STYLE = "dim"
REMOVED_LINE_STYLE = "red"
ADDED_LINE_STYLE = "green"
WARNING_STYLE = "yellow"
ERROR_STYLE = "bold red"


def _describe(preview: ChangePreview) -> str:
    if preview.operation == PatchOperation.ADD:
        return f"add {len(preview.after)} line(s) before line {preview.line}"
    end = preview.line + preview.delete_count - 1
    span = f"line {preview.line}" if end == preview.line else f"lines {preview.line}-{end}"
    if preview.operation == PatchOperation.DELETE:
        return f"delete {span}"
    return f"replace {span}"


def render_preview(preview: ChangePreview) -> rich_console.Group:
    header = rich_text.Text(no_wrap=True)
    header.append(PREVIEW_BULLET, style=PREVIEW_BULLET_STYLE)
    header.append(" ")
    header.append(_describe(preview), style=PREVIEW_TITLE_STYLE)
    if preview.streaming:
        header.append(" (streaming)", style=PREVIEW_META_STYLE)

    body = rich_text.Text()
    for line in preview.context_before:
        body.append(f"  {line}\n", style=CONTEXT_LINE_STYLE)
    for line in preview.before:
        body.append(f"- {line}\n", style=REMOVED_LINE_STYLE)
    for line in preview.after:
        body.append(f"+ {line}\n", style=ADDED_LINE_STYLE)
    for line in preview.context_after:
        body.append(f"  {line}\n", style=CONTEXT_LINE_STYLE)
    body.rstrip()

    return rich_console.Group(header, body)


def render_previews(previews: Sequence[ChangePreview]) -> rich_console.Group:
    return rich_console.Group(*(render_preview(p) for p in previews))


def render_turn_summary(result: TurnResult) -> rich_text.Text:
    out = rich_text.Text()
    if result.error is not None:
        out.append(result.conversation_text, style=ERROR_STYLE)
        return out
    if result.cancelled:
        out.append("Cancelled.", style=PREVIEW_META_STYLE)
        return out

    if result.document_updated:
        if result.full_document:
            out.append("Document replaced.", style=ADDED_LINE_STYLE)
        else:
            count = len(result.applied_patches)
            out.append(f"Applied {count} patch(es).", style=ADDED_LINE_STYLE)
    elif result.skipped_patches and not result.applied_patches:
        out.append("Patches were not applied.", style=WARNING_STYLE)

    for err in result.validation_errors:
        out.append(f"\nwarning: {err}", style=WARNING_STYLE)
    for perr in result.parse_errors:
        loc = f"line {perr.line}: " if perr.line is not None else ""
        out.append(f"\nskipped block: {loc}{perr.msg}", style=WARNING_STYLE)
    return out


def _log_level_style(level: int) -> str:
    if level >= logging.ERROR:
        return ERROR_STYLE
    if level >= logging.WARNING:
        return WARNING_STYLE
    return PREVIEW_META_STYLE


def render_log_records(entries: Sequence[LogRecordEntry]) -> rich_text.Text:
    out = rich_text.Text()
    if not entries:
        out.append("Nothing logged.", style=PREVIEW_META_STYLE)
        return out
    for entry in entries:
        timestamp = datetime.datetime.fromtimestamp(entry.created).strftime("%H:%M:%S")
        out.append(
            f"{timestamp} {entry.level_name:8s} {entry.logger_name}: {entry.message}\n",
            style=_log_level_style(entry.level),
        )
    out.rstrip()
    return out
