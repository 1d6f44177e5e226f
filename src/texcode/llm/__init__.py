from .base import ModelBackend
from .litellm_backend import LiteLLMBackend
from .models import ChatMessage, GenerationParams, Role
from .replay import ReplayBackend

__all__ = [
    "ChatMessage",
    "GenerationParams",
    "LiteLLMBackend",
    "ModelBackend",
    "ReplayBackend",
    "Role",
]
