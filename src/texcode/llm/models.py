from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from texcode.settings import ModelSettings


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ChatMessage(BaseModel):
    role: Role = Field(..., description="Sender role")
    text: str = Field(..., description="Message text as sent or received")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_llm_dict(self) -> Dict[str, Any]:
        return {"role": self.role.value, "content": self.text}


class GenerationParams(BaseModel):
    model: str
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    stream: bool = True
    extra: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: ModelSettings) -> "GenerationParams":
        return cls(
            model=settings.model,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
            stream=settings.stream,
            extra=dict(settings.extra),
        )
