from __future__ import annotations

from typing import Dict, Tuple

from .apply import apply_patches, preview_patches, preview_streaming_patches
from .models import (
    ChangePreview,
    PatchError,
    PatchOperation,
    PatchRecord,
    StreamingPatch,
    ValidationPolicy,
    ValidationResult,
)
from .parser import (
    DEFAULT_DOCUMENT_LANGUAGE,
    DEFAULT_FENCE_TAG,
    extract_document_blocks,
    has_patch_marker,
    parse_patches,
    parse_streaming_patches,
)
from .prompts import (
    DOCUMENT_SYSTEM_INSTRUCTION,
    LATEX_DIFF_SYSTEM_INSTRUCTION,
    number_lines,
)
from .validator import validate_patch, validate_patches

# Supported authoring formats and the instruction that teaches each to the model
_REGISTRY: Dict[str, str] = {
    "latex-diff": LATEX_DIFF_SYSTEM_INSTRUCTION,
    "document": DOCUMENT_SYSTEM_INSTRUCTION,
}


def get_supported_formats() -> Tuple[str, ...]:
    return tuple(_REGISTRY.keys())


def get_system_instruction(fmt: str) -> str:
    key = (fmt or "").lower()
    instruction = _REGISTRY.get(key)
    if instruction is None:
        raise ValueError(f"Unsupported patch format: {fmt}")
    return instruction


__all__ = [
    "ChangePreview",
    "DEFAULT_DOCUMENT_LANGUAGE",
    "DEFAULT_FENCE_TAG",
    "DOCUMENT_SYSTEM_INSTRUCTION",
    "LATEX_DIFF_SYSTEM_INSTRUCTION",
    "PatchError",
    "PatchOperation",
    "PatchRecord",
    "StreamingPatch",
    "ValidationPolicy",
    "ValidationResult",
    "apply_patches",
    "extract_document_blocks",
    "get_supported_formats",
    "get_system_instruction",
    "has_patch_marker",
    "number_lines",
    "parse_patches",
    "parse_streaming_patches",
    "preview_patches",
    "preview_streaming_patches",
    "validate_patch",
    "validate_patches",
]
