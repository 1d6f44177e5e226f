from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, model_validator

from texcode.document.undo import DEFAULT_UNDO_CAPACITY
from texcode.patch.models import ValidationPolicy


class LogLevel(str, Enum):
    debug = "debug"
    info = "info"
    warning = "warning"
    error = "error"
    critical = "critical"


class LoggingSettings(BaseModel):
    # Level for the texcode logger unless overridden below
    default_level: LogLevel = LogLevel.info
    # Mapping of logger name -> level override (e.g., {"LiteLLM": "warning"})
    enabled_loggers: Dict[str, LogLevel] = Field(default_factory=dict)


class ModelSettings(BaseModel):
    """Generation parameters passed to the model backend."""

    model: str = "gpt-4"
    temperature: Optional[float] = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=2048, gt=0)
    stream: bool = True
    # Passed through to litellm as-is (api_base, api_key, reasoning_effort, ...)
    extra: Dict[str, Any] = Field(default_factory=dict)
    max_retries: int = Field(default=3, ge=0)


class SessionSettings(BaseModel):
    undo_capacity: int = Field(default=DEFAULT_UNDO_CAPACITY, ge=1)
    # Conversation messages kept in memory / sent with every request
    history_limit: int = Field(default=20, ge=0)
    prompt_history: int = Field(default=6, ge=0)
    validation_policy: ValidationPolicy = ValidationPolicy.ADVISORY
    document_language: str = "latex"
    patch_fence: str = "latex-diff"
    # Replaces the built-in assistant persona; editing instructions are always appended
    system_prompt: Optional[str] = None

    @model_validator(mode="after")
    def _check_history(self) -> "SessionSettings":
        if self.prompt_history > self.history_limit:
            self.prompt_history = self.history_limit
        if self.patch_fence == self.document_language:
            raise ValueError("patch_fence and document_language must differ")
        return self


class Settings(BaseModel):
    model: ModelSettings = Field(default_factory=ModelSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    logging: Optional[LoggingSettings] = Field(default=None)
