from __future__ import annotations

from typing import Iterable, List

from .models import PatchOperation, PatchRecord, ValidationResult


def validate_patch(line_count: int, record: PatchRecord) -> ValidationResult:
    """
    Check that a record addresses lines that exist in a document of
    line_count lines. An add may also target line_count + 1 (append).
    """
    errors: List[str] = []
    line = record.line

    if line < 1 or line > line_count + 1:
        errors.append(
            f"Line {line} is out of range (document has {line_count} lines)"
        )

    if record.operation in (PatchOperation.REPLACE, PatchOperation.DELETE):
        end_line = line + record.removed_count - 1
        if end_line > line_count:
            errors.append(
                f"Cannot delete/replace lines {line}-{end_line} "
                f"(document has {line_count} lines)"
            )

    return ValidationResult(valid=not errors, errors=errors)


def validate_patches(
    line_count: int, records: Iterable[PatchRecord]
) -> List[ValidationResult]:
    return [validate_patch(line_count, r) for r in records]
