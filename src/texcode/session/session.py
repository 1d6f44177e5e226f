from __future__ import annotations

import asyncio
from typing import AsyncIterator, Callable, List, Optional, Sequence, Tuple

from texcode.document import DocumentObserver, DocumentStore, UndoLog
from texcode.errors import PatchRejectedError, SessionBusyError, TexcodeError
from texcode.llm.base import ModelBackend
from texcode.llm.models import ChatMessage, GenerationParams, Role
from texcode.logger import logger
from texcode.patch import (
    PatchError,
    PatchRecord,
    ValidationPolicy,
    ValidationResult,
    apply_patches,
    extract_document_blocks,
    has_patch_marker,
    parse_patches,
    parse_streaming_patches,
    preview_patches,
    preview_streaming_patches,
    validate_patches,
)
from texcode.settings import Settings

from . import prompts
from .models import SessionState, StreamUpdate, TurnEvent, TurnResult

ERROR_REPLY_PREFIX = "Sorry, I encountered an error: "
REPLACE_DOCUMENT_LABEL = "Replace document"


def batch_label(count: int) -> str:
    return f"Apply {count} patch" + ("" if count == 1 else "es")


def select_patches(
    records: Sequence[PatchRecord],
    results: Sequence[ValidationResult],
    policy: ValidationPolicy,
) -> Tuple[List[PatchRecord], List[PatchRecord]]:
    """
    Split records into (accepted, skipped) according to the validation policy.
    Raises PatchRejectedError under REJECT_BATCH when any record is invalid.
    """
    invalid = [r for r, res in zip(records, results) if not res.valid]
    if not invalid or policy == ValidationPolicy.ADVISORY:
        return list(records), []
    if policy == ValidationPolicy.REJECT_BATCH:
        raise PatchRejectedError(
            [err for res in results for err in res.errors]
        )
    accepted = [r for r, res in zip(records, results) if res.valid]
    return accepted, invalid


class Session:
    """
    One editing conversation: owns the document store, its undo log and the
    chat history, and drives a model backend turn by turn.
    """

    def __init__(
        self,
        backend: ModelBackend,
        settings: Optional[Settings] = None,
        initial_text: str = "",
        observer: Optional[DocumentObserver] = None,
    ) -> None:
        self._backend = backend
        self._settings = settings or Settings()
        self._undo_log = UndoLog(capacity=self._settings.session.undo_capacity)
        self._store = DocumentStore(
            initial_text, undo_log=self._undo_log, observer=observer
        )
        self._history: List[ChatMessage] = []
        self._state = SessionState.IDLE
        self._cancel_event = asyncio.Event()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def undo_log(self) -> UndoLog:
        return self._undo_log

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def history(self) -> List[ChatMessage]:
        return list(self._history)

    def current_document(self) -> str:
        return self._store.read()

    def can_undo(self) -> bool:
        return self._undo_log.can_undo()

    def undo(self) -> bool:
        entry = self._undo_log.pop()
        if entry is None:
            logger.info("Nothing to undo")
            return False
        self._store.replace(entry.snapshot_text, record_history=False)
        logger.info("Undo", label=entry.label)
        return True

    def cancel(self) -> bool:
        """Request cancellation of the streaming turn. Observed between chunks."""
        if self._state != SessionState.STREAMING:
            return False
        self._cancel_event.set()
        logger.info("Turn cancellation requested")
        return True

    def clear_history(self) -> None:
        self._history.clear()

    def build_messages(self, instruction: str) -> List[dict]:
        return prompts.build_messages(
            self._store.lines(), self._history, instruction, self._settings.session
        )

    async def apply_user_turn(
        self,
        instruction: str,
        on_update: Optional[Callable[[StreamUpdate], None]] = None,
    ) -> TurnResult:
        result: Optional[TurnResult] = None
        async for event in self.run_turn(instruction):
            if isinstance(event, TurnResult):
                result = event
            elif on_update is not None:
                on_update(event)
        if result is None:
            raise TexcodeError("Turn ended without a result")
        return result

    async def run_turn(self, instruction: str) -> AsyncIterator[TurnEvent]:
        """
        Run one user turn. Yields a StreamUpdate per received chunk, then
        exactly one TurnResult.
        """
        if self._state != SessionState.IDLE:
            raise SessionBusyError(f"Session is busy ({self._state.value})")

        self._state = SessionState.STREAMING
        self._cancel_event.clear()
        try:
            session_cfg = self._settings.session
            text = ""
            cancelled = False

            stream: Optional[AsyncIterator[str]] = None
            try:
                messages = self.build_messages(instruction)
                params = GenerationParams.from_settings(self._settings.model)
                stream = self._backend.generate(messages, params)
                async for chunk in stream:
                    if self._cancel_event.is_set():
                        cancelled = True
                        break
                    text += chunk
                    yield self._stream_update(chunk, text)
                    if self._cancel_event.is_set():
                        cancelled = True
                        break
            except Exception as e:
                logger.error("Model call failed", err=str(e))
                yield TurnResult(
                    conversation_text=ERROR_REPLY_PREFIX + str(e),
                    error=str(e),
                )
                return
            finally:
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()

            if cancelled:
                self._state = SessionState.CANCELLED
                logger.info("Turn cancelled", received_chars=len(text))
                yield TurnResult(conversation_text="", cancelled=True)
                return

            self._state = SessionState.RECONCILING
            result = self._reconcile(text, session_cfg.patch_fence, session_cfg.document_language)
            self._remember(instruction, text)
            yield result
        finally:
            self._state = SessionState.IDLE

    def _stream_update(self, chunk: str, text: str) -> StreamUpdate:
        fence = self._settings.session.patch_fence
        marker = has_patch_marker(text, fence)
        previews = []
        if marker:
            previews = preview_streaming_patches(
                self._store.lines(), parse_streaming_patches(text, fence)
            )
        return StreamUpdate(
            chunk=chunk, text=text, has_patch_marker=marker, previews=previews
        )

    def _remember(self, instruction: str, reply: str) -> None:
        limit = self._settings.session.history_limit
        self._history.append(ChatMessage(role=Role.USER, text=instruction))
        self._history.append(ChatMessage(role=Role.ASSISTANT, text=reply))
        overflow = len(self._history) - limit
        if overflow > 0:
            del self._history[0:overflow]

    def _reconcile(self, text: str, fence: str, language: str) -> TurnResult:
        records, parse_errors = parse_patches(text, fence)
        if records:
            return self._apply_batch(text, records, parse_errors)

        blocks = extract_document_blocks(text, language)
        if len(blocks) == 1:
            changed = self._store.replace(
                blocks[0], record_history=True, label=REPLACE_DOCUMENT_LABEL
            )
            return TurnResult(
                conversation_text=text,
                document_updated=changed,
                parse_errors=parse_errors,
                full_document=True,
            )
        if len(blocks) > 1:
            logger.warning(
                "Ignoring ambiguous reply with several full-document blocks",
                blocks=len(blocks),
            )

        return TurnResult(conversation_text=text, parse_errors=parse_errors)

    def _apply_batch(
        self, text: str, records: List[PatchRecord], parse_errors: List[PatchError]
    ) -> TurnResult:
        lines = self._store.lines()
        results = validate_patches(len(lines), records)

        validation_errors: List[str] = []
        for record, res in zip(records, results):
            for err in res.errors:
                logger.warning(
                    "Patch failed validation",
                    operation=record.operation.value,
                    line=record.line,
                    err=err,
                )
                validation_errors.append(
                    f"{record.operation.value} at line {record.line}: {err}"
                )

        try:
            accepted, skipped = select_patches(
                records, results, self._settings.session.validation_policy
            )
        except PatchRejectedError as e:
            logger.warning("Patch batch rejected", errors=len(e.errors))
            return TurnResult(
                conversation_text=text,
                skipped_patches=list(records),
                validation_errors=validation_errors,
                parse_errors=parse_errors,
            )

        previews = preview_patches(lines, accepted)
        changed = False
        if accepted:
            new_lines = apply_patches(lines, accepted)
            changed = self._store.replace_lines(
                new_lines, record_history=True, label=batch_label(len(accepted))
            )

        return TurnResult(
            conversation_text=text,
            document_updated=changed,
            applied_patches=accepted,
            previews=previews,
            skipped_patches=skipped,
            validation_errors=validation_errors,
            parse_errors=parse_errors,
        )
