from __future__ import annotations

from typing import Optional


class TexcodeError(Exception):
    """Base class for errors raised by texcode."""


class SettingsError(TexcodeError, ValueError):
    """Configuration file could not be loaded or interpolated."""


class ModelCallError(TexcodeError):
    """The language model call failed (network, auth, quota or provider error)."""

    def __init__(self, msg: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(msg)
        self.status_code = status_code


class SessionBusyError(TexcodeError):
    """A turn was started while another one is still in flight."""


class PatchRejectedError(TexcodeError):
    """A patch batch failed validation under the reject_batch policy."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors) or "Patch batch rejected")
        self.errors = list(errors)
