from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

from texcode.patch.models import ChangePreview, PatchError, PatchRecord


class SessionState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    RECONCILING = "reconciling"
    CANCELLED = "cancelled"


@dataclass
class StreamUpdate:
    """Emitted for every received chunk while the model reply is streaming."""

    chunk: str
    text: str
    has_patch_marker: bool = False
    # Display-only previews of patch blocks seen so far
    previews: List[ChangePreview] = field(default_factory=list)


@dataclass
class TurnResult:
    conversation_text: str
    document_updated: bool = False
    applied_patches: List[PatchRecord] = field(default_factory=list)
    previews: List[ChangePreview] = field(default_factory=list)
    skipped_patches: List[PatchRecord] = field(default_factory=list)
    validation_errors: List[str] = field(default_factory=list)
    parse_errors: List[PatchError] = field(default_factory=list)
    full_document: bool = False
    error: Optional[str] = None
    cancelled: bool = False


TurnEvent = Union[StreamUpdate, TurnResult]
