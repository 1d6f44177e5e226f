import logging

from rich.console import Console

from texcode import render
from texcode.logger import LogRecordEntry
from texcode.patch import ChangePreview, PatchError, PatchOperation, PatchRecord
from texcode.session import TurnResult


def _to_text(renderable) -> str:
    console = Console(width=100, record=True, color_system=None)
    console.print(renderable)
    return console.export_text()


def test_render_replace_preview():
    preview = ChangePreview(
        operation=PatchOperation.REPLACE,
        line=5,
        delete_count=2,
        before=("old a", "old b"),
        after=("new",),
        context_before=("ctx",),
        context_after=("tail",),
    )

    text = _to_text(render.render_preview(preview))

    assert "replace lines 5-6" in text
    assert "- old a" in text
    assert "- old b" in text
    assert "+ new" in text
    assert "  ctx" in text
    assert "(streaming)" not in text


def test_render_streaming_add_preview():
    preview = ChangePreview(
        operation=PatchOperation.ADD, line=3, after=("x", "y"), streaming=True
    )
    text = _to_text(render.render_previews([preview]))
    assert "add 2 line(s) before line 3" in text
    assert "(streaming)" in text


def test_turn_summary_for_patches_and_warnings():
    rec = PatchRecord(operation=PatchOperation.DELETE, line=1)
    result = TurnResult(
        conversation_text="done",
        document_updated=True,
        applied_patches=[rec],
        validation_errors=["delete at line 1: Line 1 is out of range"],
        parse_errors=[PatchError(msg="Unknown patch operation: 'move'", line=4)],
    )

    text = render.render_turn_summary(result).plain

    assert "Applied 1 patch(es)." in text
    assert "warning: delete at line 1" in text
    assert "skipped block: line 4: Unknown patch operation" in text


def test_turn_summary_for_error_and_cancel():
    error = TurnResult(conversation_text="Sorry, I encountered an error: boom", error="boom")
    assert render.render_turn_summary(error).plain.startswith("Sorry")

    cancelled = TurnResult(conversation_text="", cancelled=True)
    assert render.render_turn_summary(cancelled).plain == "Cancelled."


def test_turn_summary_for_full_document():
    result = TurnResult(conversation_text="", document_updated=True, full_document=True)
    assert render.render_turn_summary(result).plain == "Document replaced."


def test_render_log_records():
    entries = [
        LogRecordEntry(
            seq=1,
            logger_name="texcode",
            level=logging.WARNING,
            level_name="WARNING",
            message="Discarded patch block reason=Unknown patch operation",
            created=0.0,
        )
    ]

    text = render.render_log_records(entries).plain

    assert "WARNING" in text
    assert "texcode: Discarded patch block" in text
    assert render.render_log_records([]).plain == "Nothing logged."
