from __future__ import annotations

from typing import List, Sequence, Union

from texcode.logger import logger

from .models import ChangePreview, PatchOperation, PatchRecord, StreamingPatch

CONTEXT_LINES = 2


def _application_order(records: Sequence[PatchRecord]) -> List[PatchRecord]:
    # Highest line first so lower addresses stay valid. Equal lines go in
    # reverse input order, which leaves their output in input order.
    indexed = sorted(enumerate(records), key=lambda p: (p[1].line, p[0]), reverse=True)
    return [r for _, r in indexed]


def apply_patches(lines: Sequence[str], records: Sequence[PatchRecord]) -> List[str]:
    """
    Apply a batch of records to a line sequence and return the new lines.
    Every record addresses the original (pre-batch) document. The input
    sequence is not modified.
    """
    out = list(lines)

    for record in _application_order(records):
        if not isinstance(record, PatchRecord):
            raise TypeError(
                f"apply_patches expects PatchRecord values, got {type(record).__name__}"
            )
        idx = record.line - 1
        if record.operation == PatchOperation.ADD:
            out[idx:idx] = record.insert_text
        elif record.operation == PatchOperation.REPLACE:
            out[idx : idx + record.removed_count] = record.insert_text
        elif record.operation == PatchOperation.DELETE:
            logger.debug(
                "Deleting lines",
                line=record.line,
                count=record.removed_count,
                content=out[idx : idx + record.removed_count],
            )
            del out[idx : idx + record.removed_count]
        else:  # pragma: no cover - enum is closed
            logger.warning("Unknown patch operation", operation=record.operation)

    return out


def _preview(
    lines: Sequence[str],
    patch: Union[PatchRecord, StreamingPatch],
    *,
    streaming: bool,
) -> ChangePreview:
    idx = patch.line - 1
    removed = patch.removed_count
    return ChangePreview(
        operation=patch.operation,
        line=patch.line,
        delete_count=removed,
        before=tuple(lines[idx : idx + removed]),
        after=tuple(patch.insert_text),
        context_before=tuple(lines[max(0, idx - CONTEXT_LINES) : idx]),
        context_after=tuple(lines[idx + removed : idx + removed + CONTEXT_LINES]),
        streaming=streaming,
    )


def preview_patches(
    lines: Sequence[str], records: Sequence[PatchRecord]
) -> List[ChangePreview]:
    """
    Describe what each record changes, measured against lines before any
    record of the batch is applied. Results are in reading order.
    """
    ordered = sorted(records, key=lambda r: r.line)
    return [_preview(lines, r, streaming=False) for r in ordered]


def preview_streaming_patches(
    lines: Sequence[str], patches: Sequence[StreamingPatch]
) -> List[ChangePreview]:
    ordered = sorted(patches, key=lambda p: p.line)
    return [_preview(lines, p, streaming=True) for p in ordered]
