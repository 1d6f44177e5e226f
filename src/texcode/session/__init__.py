from .models import SessionState, StreamUpdate, TurnEvent, TurnResult
from .session import Session, batch_label, select_patches

__all__ = [
    "Session",
    "SessionState",
    "StreamUpdate",
    "TurnEvent",
    "TurnResult",
    "batch_label",
    "select_patches",
]
