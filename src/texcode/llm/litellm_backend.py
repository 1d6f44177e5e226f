from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Dict, List, Optional

import litellm

from texcode.errors import ModelCallError
from texcode.logger import logger

from .base import ModelBackend
from .models import GenerationParams


def _should_retry(status_code: Optional[int]) -> bool:
    try:
        return bool(litellm._should_retry(status_code))
    except Exception:
        return False


class LiteLLMBackend(ModelBackend):
    """ModelBackend for any provider litellm can reach (OpenAI, Anthropic, vLLM, ...)."""

    def __init__(self, max_retries: int = 3, retry_base_delay: float = 0.5) -> None:
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay

    def _build_args(
        self, messages: List[Dict[str, Any]], params: GenerationParams
    ) -> Dict[str, Any]:
        args = dict(params.extra or {})
        args.update(
            {
                "model": params.model,
                "messages": messages,
                "stream": params.stream,
            }
        )
        if params.temperature is not None:
            args["temperature"] = params.temperature
        if params.max_tokens is not None:
            args["max_tokens"] = params.max_tokens
        return args

    async def generate(
        self, messages: List[Dict[str, Any]], params: GenerationParams
    ) -> AsyncIterator[str]:
        args = self._build_args(messages, params)
        logger.debug("LLM request:", model=params.model, req=messages)

        attempt = 0
        while True:
            emitted = False
            try:
                response = await litellm.acompletion(**args)

                if not params.stream:
                    choices = response.choices
                    if not choices:
                        raise RuntimeError("LLM response missing choices")
                    content = choices[0].message.content
                    if isinstance(content, str) and content:
                        yield content
                    return

                async for chunk in response:
                    choice_list = chunk.choices
                    if not choice_list:
                        continue
                    delta = choice_list[0].delta
                    if not delta:
                        continue
                    content_piece = delta.content
                    if isinstance(content_piece, str) and content_piece:
                        emitted = True
                        yield content_piece
                return
            except Exception as e:
                status_code = getattr(e, "status_code", None)

                # Once text reached the caller a retry would duplicate it
                if not emitted and attempt < self._max_retries and _should_retry(status_code):
                    attempt += 1
                    logger.warning(
                        "LLM retry",
                        attempt=attempt,
                        max_retries=self._max_retries,
                        status_code=status_code,
                        err=str(e),
                    )
                    await asyncio.sleep(self._retry_base_delay * (2 ** (attempt - 1)))
                    continue

                logger.error("LLM error", status_code=status_code, err=str(e))
                raise ModelCallError(f"LLM error: {e}", status_code=status_code) from e
