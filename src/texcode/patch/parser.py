from __future__ import annotations

import re
from typing import Dict, Final, List, Optional, Tuple

from texcode.logger import logger

from .models import (
    MetadataValue,
    PatchError,
    PatchOperation,
    PatchRecord,
    StreamingPatch,
)

DEFAULT_FENCE_TAG: Final[str] = "latex-diff"
DEFAULT_DOCUMENT_LANGUAGE: Final[str] = "latex"

FENCE_PREFIX: Final[str] = "```"
METADATA_RE = re.compile(r"^\s*@@\s*(.*?)\s*@@\s*$")
INT_RE = re.compile(r"^[+-]?\d+$")

OPERATION_KEY: Final[str] = "operation"
LINE_KEY: Final[str] = "line"
DELETE_KEY: Final[str] = "delete"
KNOWN_KEYS: Final[frozenset] = frozenset({OPERATION_KEY, LINE_KEY, DELETE_KEY})


def split_reply(text: str) -> List[str]:
    """Split a model reply on '\\n' only, dropping the '\\r' of CRLF endings."""
    return [line[:-1] if line.endswith("\r") else line for line in text.split("\n")]


def _is_fence_open(line: str, tag: str) -> bool:
    return line.strip() == FENCE_PREFIX + tag


def _is_fence_close(line: str) -> bool:
    return line.strip().startswith(FENCE_PREFIX)


def _find_fence_close(lines: List[str], start: int) -> Optional[int]:
    for idx in range(start, len(lines)):
        if _is_fence_close(lines[idx]):
            return idx
    return None


def _scan_patch_block(
    lines: List[str], start: int
) -> Tuple[List[str], Optional[int]]:
    """
    Collect the lines of the patch block opened at start. A block is closed
    by a fence line or by a fence at the end of a body line, in which case
    the text before it stays part of the block. Returns (content, close
    index); close is None when the block is still open at the end of text.
    """
    for idx in range(start + 1, len(lines)):
        line = lines[idx]
        if _is_fence_close(line):
            return lines[start + 1 : idx], idx
        stripped = line.rstrip()
        if stripped.endswith(FENCE_PREFIX):
            content = lines[start + 1 : idx]
            head = stripped[: -len(FENCE_PREFIX)]
            if head.strip():
                content.append(head)
            return content, idx
    return lines[start + 1 :], None


def _split_metadata(content: List[str]) -> Tuple[Optional[re.Match], List[str]]:
    # Blank lines may separate the fence from the metadata line
    for idx, line in enumerate(content):
        if not line.strip():
            continue
        return METADATA_RE.match(line), content[idx + 1 :]
    return None, []


def _trim_blank_edges(body: List[str]) -> List[str]:
    start, end = 0, len(body)
    while start < end and not body[start].strip():
        start += 1
    while end > start and not body[end - 1].strip():
        end -= 1
    return body[start:end]


def parse_metadata(text: str) -> Dict[str, MetadataValue]:
    """
    Parse whitespace separated key:value tokens. Integer-looking values are
    converted to int, everything else is kept as a string.
    """
    meta: Dict[str, MetadataValue] = {}
    for token in text.split():
        key, sep, value = token.partition(":")
        if not key or not sep:
            logger.debug("Ignoring metadata token without value", token=token)
            continue
        meta[key] = int(value) if INT_RE.match(value) else value
    return meta


def has_patch_marker(text: str, fence_tag: str = DEFAULT_FENCE_TAG) -> bool:
    """True when text holds a patch fence, closed or still being written."""
    return (FENCE_PREFIX + fence_tag) in text


def _build_record(
    meta: Dict[str, MetadataValue],
    body: List[str],
    *,
    raw: str,
    block_index: int,
    start_line: int,
) -> Tuple[Optional[PatchRecord], Optional[PatchError]]:
    op_value = meta.get(OPERATION_KEY)
    line_value = meta.get(LINE_KEY)

    missing = [k for k, v in ((OPERATION_KEY, op_value), (LINE_KEY, line_value)) if v is None]
    if missing:
        return None, PatchError(
            msg=f"Patch metadata is missing required key(s): {', '.join(missing)}",
            line=start_line,
            hint="Use '@@ operation:<add|replace|delete> line:<n> [delete:<n>] @@'",
            raw=raw,
        )

    try:
        operation = PatchOperation(str(op_value).lower())
    except ValueError:
        return None, PatchError(
            msg=f"Unknown patch operation: {op_value!r}",
            line=start_line,
            hint="Supported operations are add, replace and delete",
            raw=raw,
        )

    if not isinstance(line_value, int) or line_value < 1:
        return None, PatchError(
            msg=f"Patch line must be a positive integer, got {line_value!r}",
            line=start_line,
            raw=raw,
        )

    delete_value = meta.get(DELETE_KEY)
    if delete_value is not None and (not isinstance(delete_value, int) or delete_value < 0):
        return None, PatchError(
            msg=f"Patch delete count must be a non-negative integer, got {delete_value!r}",
            line=start_line,
            raw=raw,
        )

    if operation == PatchOperation.ADD:
        delete_count = 0
    else:
        if not delete_value:
            logger.debug(
                "Patch delete count missing, defaulting to 1",
                operation=operation.value,
                line=line_value,
            )
        delete_count = delete_value or 1

    insert_text = _trim_blank_edges(body)
    if operation == PatchOperation.DELETE:
        if insert_text:
            logger.debug("Ignoring body of delete patch", line=line_value)
        insert_text = []

    extra = {k: v for k, v in meta.items() if k not in KNOWN_KEYS}

    return (
        PatchRecord(
            operation=operation,
            line=line_value,
            delete_count=delete_count,
            insert_text=tuple(insert_text),
            raw_source=raw,
            extra=extra,
            block_index=block_index,
        ),
        None,
    )


def parse_patches(
    text: str, fence_tag: str = DEFAULT_FENCE_TAG
) -> Tuple[List[PatchRecord], List[PatchError]]:
    """
    Parse closed patch blocks from a complete model reply:

    ```latex-diff
    @@ operation:replace line:10 delete:3 @@
    <lines to insert>
    ```

    Blocks are returned in order of appearance. A malformed block is reported
    in the error list and skipped; parsing continues with the next block. A
    trailing block without a closing fence is treated as abandoned and ignored.
    """
    records: List[PatchRecord] = []
    errors: List[PatchError] = []
    lines = split_reply(text)
    block_index = 0
    i = 0

    while i < len(lines):
        if not _is_fence_open(lines[i], fence_tag):
            i += 1
            continue

        start = i
        content, close = _scan_patch_block(lines, start)
        if close is None:
            logger.debug("Ignoring unterminated patch block", line=start + 1)
            break

        raw = "\n".join(lines[start : close + 1])
        index = block_index
        block_index += 1
        i = close + 1

        m, body = _split_metadata(content)
        if m is None:
            err = PatchError(
                msg="Missing '@@ ... @@' metadata line after patch fence",
                line=start + 1,
                hint="The first line inside the fence must be the metadata line",
                raw=raw,
            )
            logger.warning("Discarded patch block", reason=err.msg, line=err.line)
            errors.append(err)
            continue

        record, err = _build_record(
            parse_metadata(m.group(1)),
            body,
            raw=raw,
            block_index=index,
            start_line=start + 1,
        )
        if err is not None:
            logger.warning("Discarded patch block", reason=err.msg, line=err.line)
            errors.append(err)
            continue
        records.append(record)  # type: ignore[arg-type]

    return records, errors


def parse_streaming_patches(
    text: str, fence_tag: str = DEFAULT_FENCE_TAG
) -> List[StreamingPatch]:
    """
    Best-effort previews of patch blocks in a reply that is still arriving.
    A block is reported once its metadata line is complete and carries an
    operation and a line; its body is whatever has arrived so far.
    """
    out: List[StreamingPatch] = []
    lines = split_reply(text)
    block_index = 0
    i = 0

    while i < len(lines):
        if not _is_fence_open(lines[i], fence_tag):
            i += 1
            continue

        start = i
        content, close = _scan_patch_block(lines, start)
        index = block_index
        block_index += 1
        i = close + 1 if close is not None else len(lines)

        m, body = _split_metadata(content)
        if m is None:
            continue
        meta = parse_metadata(m.group(1))

        op_value = meta.get(OPERATION_KEY)
        line_value = meta.get(LINE_KEY)
        if op_value is None or not isinstance(line_value, int) or line_value < 1:
            continue
        try:
            operation = PatchOperation(str(op_value).lower())
        except ValueError:
            continue

        delete_value = meta.get(DELETE_KEY)
        delete_count = delete_value if isinstance(delete_value, int) and delete_value > 0 else 0
        body = _trim_blank_edges(body)
        if operation == PatchOperation.DELETE:
            body = []

        out.append(
            StreamingPatch(
                operation=operation,
                line=line_value,
                delete_count=delete_count,
                insert_text=tuple(body),
                extra={k: v for k, v in meta.items() if k not in KNOWN_KEYS},
                block_index=index,
                closed=close is not None,
            )
        )

    return out


def extract_document_blocks(
    text: str, language: str = DEFAULT_DOCUMENT_LANGUAGE
) -> List[str]:
    """Bodies of closed fenced blocks tagged with the document language."""
    blocks: List[str] = []
    lines = split_reply(text)
    i = 0
    while i < len(lines):
        if not _is_fence_open(lines[i], language):
            i += 1
            continue
        close = _find_fence_close(lines, i + 1)
        if close is None:
            break
        blocks.append("\n".join(lines[i + 1 : close]))
        i = close + 1
    return blocks
