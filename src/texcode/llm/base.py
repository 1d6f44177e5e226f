from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List

from .models import GenerationParams


class ModelBackend(ABC):
    """
    Capability interface for talking to a language model.

    generate() returns an async iterator of text fragments in generation
    order. Exhausting the iterator marks the end of the stream; calling
    aclose() on it stops generation early. When params.stream is False the
    iterator yields the complete reply as a single fragment. Failures are
    raised as texcode.errors.ModelCallError.
    """

    @abstractmethod
    def generate(
        self, messages: List[Dict[str, Any]], params: GenerationParams
    ) -> AsyncIterator[str]: ...

    async def complete(
        self, messages: List[Dict[str, Any]], params: GenerationParams
    ) -> str:
        parts: List[str] = []
        async for piece in self.generate(messages, params):
            parts.append(piece)
        return "".join(parts)
