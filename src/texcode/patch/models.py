from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import List, Mapping, Optional, Tuple, Union

MetadataValue = Union[int, str]


class PatchOperation(str, Enum):
    ADD = "add"
    REPLACE = "replace"
    DELETE = "delete"


class ValidationPolicy(str, Enum):
    # Apply every record; validation failures are only reported
    ADVISORY = "advisory"
    # Apply records that validate, drop the rest
    SKIP_INVALID = "skip_invalid"
    # Apply nothing if any record fails validation
    REJECT_BATCH = "reject_batch"


def _freeze(extra: Optional[Mapping[str, MetadataValue]]) -> Mapping[str, MetadataValue]:
    return MappingProxyType(dict(extra or {}))


@dataclass(frozen=True)
class PatchRecord:
    """One line-addressed edit parsed from a closed latex-diff block."""

    operation: PatchOperation
    # 1-based, in coordinates of the document before the batch is applied
    line: int
    delete_count: int = 0
    insert_text: Tuple[str, ...] = ()
    raw_source: str = ""
    extra: Mapping[str, MetadataValue] = field(default_factory=dict, hash=False)
    block_index: int = 0

    def __post_init__(self) -> None:
        if self.line < 1:
            raise ValueError(f"Patch line must be >= 1, got {self.line}")
        if self.delete_count < 0:
            raise ValueError(f"Patch delete count must be >= 0, got {self.delete_count}")
        if self.operation == PatchOperation.DELETE and self.insert_text:
            raise ValueError("Delete patches cannot carry insert text")
        object.__setattr__(self, "insert_text", tuple(self.insert_text))
        object.__setattr__(self, "extra", _freeze(self.extra))

    @property
    def removed_count(self) -> int:
        """Number of existing lines the record consumes when applied."""
        if self.operation == PatchOperation.ADD:
            return 0
        return max(self.delete_count, 1)


@dataclass(frozen=True)
class StreamingPatch:
    """
    Display-only view of a latex-diff block that may still be arriving.
    insert_text holds whatever body has been received so far.
    """

    operation: PatchOperation
    line: int
    delete_count: int = 0
    insert_text: Tuple[str, ...] = ()
    extra: Mapping[str, MetadataValue] = field(default_factory=dict, hash=False)
    block_index: int = 0
    closed: bool = False
    streaming: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "insert_text", tuple(self.insert_text))
        object.__setattr__(self, "extra", _freeze(self.extra))

    @property
    def removed_count(self) -> int:
        if self.operation == PatchOperation.ADD:
            return 0
        return max(self.delete_count, 1)


@dataclass(frozen=True)
class ChangePreview:
    operation: PatchOperation
    line: int
    delete_count: int = 0
    before: Tuple[str, ...] = ()
    after: Tuple[str, ...] = ()
    context_before: Tuple[str, ...] = ()
    context_after: Tuple[str, ...] = ()
    streaming: bool = False


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class PatchError:
    msg: str
    line: Optional[int] = None
    hint: Optional[str] = None
    raw: Optional[str] = None
