from __future__ import annotations

from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from texcode.errors import ModelCallError

from .base import ModelBackend
from .models import GenerationParams


class ReplayBackend(ModelBackend):
    """
    Replays recorded replies instead of calling a model, one reply per
    generate() call. Used to re-apply a saved reply and for offline runs.
    """

    def __init__(self, replies: Sequence[str], chunk_size: Optional[int] = None) -> None:
        self._replies = list(replies)
        self._chunk_size = chunk_size
        self.requests: List[List[Dict[str, Any]]] = []

    async def generate(
        self, messages: List[Dict[str, Any]], params: GenerationParams
    ) -> AsyncIterator[str]:
        self.requests.append(list(messages))
        if not self._replies:
            raise ModelCallError("No recorded reply left to replay")
        reply = self._replies.pop(0)

        if not params.stream or not self._chunk_size:
            if reply:
                yield reply
            return
        for start in range(0, len(reply), self._chunk_size):
            yield reply[start : start + self._chunk_size]
