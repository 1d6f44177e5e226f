import asyncio
from typing import Any, AsyncIterator, Dict, List

import pytest

from texcode.errors import ModelCallError, SessionBusyError, TexcodeError
from texcode.llm import GenerationParams, ModelBackend, ReplayBackend
from texcode.patch import PatchOperation, ValidationPolicy
from texcode.session import (
    Session,
    SessionState,
    StreamUpdate,
    TurnResult,
    batch_label,
)
from texcode.settings import SessionSettings, Settings

DOC = "\n".join(f"L{i}" for i in range(1, 9))


def _settings(**session: Any) -> Settings:
    return Settings(session=SessionSettings(**session))


class FailingBackend(ModelBackend):
    async def generate(
        self, messages: List[Dict[str, Any]], params: GenerationParams
    ) -> AsyncIterator[str]:
        raise ModelCallError("LLM error: quota exceeded", status_code=429)
        yield ""  # pragma: no cover


class GatedBackend(ModelBackend):
    """Yields the first chunk, then waits until released before the rest."""

    def __init__(self, chunks: List[str]) -> None:
        self.chunks = chunks
        self.first_sent = asyncio.Event()
        self.release = asyncio.Event()
        self.closed = False

    async def generate(
        self, messages: List[Dict[str, Any]], params: GenerationParams
    ) -> AsyncIterator[str]:
        try:
            yield self.chunks[0]
            self.first_sent.set()
            await self.release.wait()
            for chunk in self.chunks[1:]:
                yield chunk
        finally:
            self.closed = True


REPLY_WITH_PATCHES = "\n".join(
    [
        "I removed line 7 and added a package.",
        "```latex-diff",
        "@@ operation:delete line:7 @@",
        "```",
        "```latex-diff",
        "@@ operation:add line:2 @@",
        "\\usepackage{amsmath}",
        "```",
    ]
)


@pytest.mark.asyncio
async def test_patch_batch_is_applied_with_one_undo_entry() -> None:
    seen: List[str] = []
    session = Session(ReplayBackend([REPLY_WITH_PATCHES]), initial_text=DOC, observer=seen.append)

    result = await session.apply_user_turn("Add amsmath and drop line 7")

    assert result.document_updated is True
    assert result.error is None
    assert [r.operation for r in result.applied_patches] == [
        PatchOperation.DELETE,
        PatchOperation.ADD,
    ]
    assert session.store.lines() == [
        "L1",
        "\\usepackage{amsmath}",
        "L2",
        "L3",
        "L4",
        "L5",
        "L6",
        "L8",
    ]
    assert len(session.undo_log) == 1
    assert session.undo_log.peek().label == "Apply 2 patches"
    assert seen == [session.current_document()]
    assert [p.line for p in result.previews] == [2, 7]
    assert result.previews[1].before == ("L7",)

    assert session.undo() is True
    assert session.current_document() == DOC
    assert not session.can_undo()
    assert session.undo() is False


@pytest.mark.asyncio
async def test_streaming_updates_carry_marker_and_previews() -> None:
    session = Session(ReplayBackend([REPLY_WITH_PATCHES], chunk_size=16), initial_text=DOC)
    updates: List[StreamUpdate] = []

    result = await session.apply_user_turn("Edit", on_update=updates.append)

    assert "".join(u.chunk for u in updates) == REPLY_WITH_PATCHES
    assert updates[-1].text == REPLY_WITH_PATCHES
    assert updates[0].has_patch_marker is False
    assert updates[-1].has_patch_marker is True
    assert all(p.streaming for p in updates[-1].previews)
    assert len(updates[-1].previews) == 2
    # Previews never touch the document while streaming
    assert result.document_updated is True
    assert len(session.undo_log) == 1


@pytest.mark.asyncio
async def test_full_document_reply_replaces_document() -> None:
    reply = "Here you go:\n```latex\n\\documentclass{article}\n\\begin{document}\n\\end{document}\n```"
    session = Session(ReplayBackend([reply]), initial_text=DOC)

    result = await session.apply_user_turn("Start over")

    assert result.document_updated is True
    assert result.full_document is True
    assert session.store.line_count == 3
    assert session.undo_log.peek().label == "Replace document"
    assert session.undo_log.peek().snapshot_text == DOC


@pytest.mark.asyncio
async def test_several_document_blocks_are_ignored() -> None:
    reply = "Option 1:\n```latex\nA\n```\nOption 2:\n```latex\nB\n```"
    session = Session(ReplayBackend([reply]), initial_text=DOC)

    result = await session.apply_user_turn("Show me two versions")

    assert result.document_updated is False
    assert session.current_document() == DOC


@pytest.mark.asyncio
async def test_patches_win_over_document_block() -> None:
    reply = REPLY_WITH_PATCHES + "\n```latex\nIGNORED\n```"
    session = Session(ReplayBackend([reply]), initial_text=DOC)

    result = await session.apply_user_turn("Edit")

    assert result.full_document is False
    assert "IGNORED" not in session.current_document()


@pytest.mark.asyncio
async def test_conversation_only_reply() -> None:
    session = Session(ReplayBackend(["Use \\emph for emphasis."]), initial_text=DOC)

    result = await session.apply_user_turn("How do I emphasize text?")

    assert result.conversation_text == "Use \\emph for emphasis."
    assert result.document_updated is False
    assert result.applied_patches == []
    assert len(session.undo_log) == 0
    assert session.state == SessionState.IDLE


@pytest.mark.asyncio
async def test_model_error_leaves_document_untouched() -> None:
    session = Session(FailingBackend(), initial_text=DOC)

    result = await session.apply_user_turn("Anything")

    assert result.error is not None
    assert "quota exceeded" in result.error
    assert result.conversation_text.startswith("Sorry, I encountered an error:")
    assert result.document_updated is False
    assert session.current_document() == DOC
    assert session.history == []
    assert session.state == SessionState.IDLE


@pytest.mark.asyncio
async def test_malformed_block_is_skipped_and_reported() -> None:
    reply = "\n".join(
        [
            "```latex-diff",
            "@@ operation:shuffle line:2 @@",
            "```",
            "```latex-diff",
            "@@ operation:delete line:1 @@",
            "```",
        ]
    )
    session = Session(ReplayBackend([reply]), initial_text=DOC)

    result = await session.apply_user_turn("Edit")

    assert len(result.parse_errors) == 1
    assert len(result.applied_patches) == 1
    assert session.store.lines()[0] == "L2"
    assert session.undo_log.peek().label == "Apply 1 patch"


OUT_OF_RANGE_REPLY = "\n".join(
    [
        "```latex-diff",
        "@@ operation:delete line:20 @@",
        "```",
        "```latex-diff",
        "@@ operation:replace line:1 delete:1 @@",
        "First",
        "```",
    ]
)


@pytest.mark.asyncio
async def test_advisory_policy_applies_everything() -> None:
    session = Session(ReplayBackend([OUT_OF_RANGE_REPLY]), initial_text=DOC)

    result = await session.apply_user_turn("Edit")

    assert len(result.applied_patches) == 2
    assert result.skipped_patches == []
    assert len(result.validation_errors) == 2
    assert session.store.lines()[0] == "First"
    assert session.store.line_count == 8


@pytest.mark.asyncio
async def test_skip_invalid_policy_drops_bad_records() -> None:
    settings = _settings(validation_policy=ValidationPolicy.SKIP_INVALID)
    session = Session(ReplayBackend([OUT_OF_RANGE_REPLY]), settings=settings, initial_text=DOC)

    result = await session.apply_user_turn("Edit")

    assert [r.line for r in result.applied_patches] == [1]
    assert [r.line for r in result.skipped_patches] == [20]
    assert result.document_updated is True
    assert session.store.lines()[0] == "First"


@pytest.mark.asyncio
async def test_reject_batch_policy_applies_nothing() -> None:
    settings = _settings(validation_policy=ValidationPolicy.REJECT_BATCH)
    session = Session(ReplayBackend([OUT_OF_RANGE_REPLY]), settings=settings, initial_text=DOC)

    result = await session.apply_user_turn("Edit")

    assert result.document_updated is False
    assert result.applied_patches == []
    assert len(result.skipped_patches) == 2
    assert result.validation_errors
    assert session.current_document() == DOC
    assert len(session.undo_log) == 0


@pytest.mark.asyncio
async def test_cancel_discards_partial_reply() -> None:
    backend = GatedBackend(
        ["```latex-diff\n@@ operation:delete line:1 @@\n", "```\n"]
    )
    session = Session(backend, initial_text=DOC)

    task = asyncio.create_task(session.apply_user_turn("Edit"))
    await backend.first_sent.wait()
    assert session.state == SessionState.STREAMING
    assert session.cancel() is True
    backend.release.set()
    result = await task

    assert result.cancelled is True
    assert result.document_updated is False
    assert session.current_document() == DOC
    assert session.history == []
    assert backend.closed is True
    assert session.state == SessionState.IDLE
    assert session.cancel() is False


@pytest.mark.asyncio
async def test_second_turn_while_streaming_is_rejected() -> None:
    backend = GatedBackend(["Thinking", " done"])
    session = Session(backend, initial_text=DOC)

    task = asyncio.create_task(session.apply_user_turn("First"))
    await backend.first_sent.wait()

    with pytest.raises(SessionBusyError):
        await session.apply_user_turn("Second")

    backend.release.set()
    result = await task
    assert result.conversation_text == "Thinking done"


@pytest.mark.asyncio
async def test_history_is_sent_with_later_turns() -> None:
    backend = ReplayBackend(["Answer one", "Answer two"])
    session = Session(backend, initial_text=DOC)

    await session.apply_user_turn("Question one")
    await session.apply_user_turn("Question two")

    second_request = backend.requests[1]
    assert second_request[0]["role"] == "system"
    assert "   1| L1" in second_request[0]["content"]
    assert [m["content"] for m in second_request[1:]] == [
        "Question one",
        "Answer one",
        "Question two",
    ]
    assert len(session.history) == 4

    session.clear_history()
    assert session.history == []


@pytest.mark.asyncio
async def test_history_is_bounded() -> None:
    settings = _settings(history_limit=4, prompt_history=2)
    backend = ReplayBackend([f"a{i}" for i in range(3)])
    session = Session(backend, settings=settings, initial_text=DOC)

    for i in range(3):
        await session.apply_user_turn(f"q{i}")

    assert [m.text for m in session.history] == ["q1", "a1", "q2", "a2"]
    last_request = backend.requests[-1]
    assert [m["content"] for m in last_request[1:]] == ["q1", "a1", "q2"]


@pytest.mark.asyncio
async def test_undo_capacity_comes_from_settings() -> None:
    replies = [
        f"```latex-diff\n@@ operation:replace line:1 delete:1 @@\nv{i}\n```"
        for i in range(4)
    ]
    settings = _settings(undo_capacity=2)
    session = Session(ReplayBackend(replies), settings=settings, initial_text=DOC)

    for i in range(4):
        await session.apply_user_turn(f"edit {i}")

    assert len(session.undo_log) == 2
    assert session.undo() is True
    assert session.store.lines()[0] == "v2"
    assert session.undo() is True
    assert session.store.lines()[0] == "v1"
    assert session.undo() is False


@pytest.mark.asyncio
async def test_run_turn_yields_exactly_one_result() -> None:
    session = Session(ReplayBackend(["hello"], chunk_size=2), initial_text=DOC)

    events = [e async for e in session.run_turn("hi")]

    assert sum(isinstance(e, TurnResult) for e in events) == 1
    assert isinstance(events[-1], TurnResult)


def test_batch_label() -> None:
    assert batch_label(1) == "Apply 1 patch"
    assert batch_label(3) == "Apply 3 patches"


class RaisingBackend(ModelBackend):
    """generate() fails before returning any iterator."""

    def generate(  # type: ignore[override]
        self, messages: List[Dict[str, Any]], params: GenerationParams
    ) -> AsyncIterator[str]:
        raise ModelCallError("LLM error: connection refused")


@pytest.mark.asyncio
async def test_backend_failing_before_streaming_becomes_error_result() -> None:
    session = Session(RaisingBackend(), initial_text=DOC)

    result = await session.apply_user_turn("Anything")

    assert result.error == "LLM error: connection refused"
    assert result.document_updated is False
    assert session.current_document() == DOC
    assert session.state == SessionState.IDLE


@pytest.mark.asyncio
async def test_full_document_with_control_characters_round_trips() -> None:
    body = "\\documentclass{article}\nA\x0cB\n\\begin{document}\n\\end{document}"
    session = Session(ReplayBackend([f"```latex\n{body}\n```"]), initial_text=DOC)

    result = await session.apply_user_turn("Rewrite")

    assert result.document_updated is True
    assert session.current_document() == body
    assert session.store.line_count == 4


@pytest.mark.asyncio
async def test_patches_keep_crlf_line_endings() -> None:
    doc = "L1\r\nL2\r\nL3\r\n"
    reply = "```latex-diff\r\n@@ operation:add line:2 @@\r\nnew\r\n```\r\n"
    session = Session(ReplayBackend([reply]), initial_text=doc)

    await session.apply_user_turn("Insert")

    assert session.current_document() == "L1\r\nnew\r\nL2\r\nL3\r\n"
    assert "   1| L1\n" in session.build_messages("next")[0]["content"]
    assert session.undo() is True
    assert session.current_document() == doc


@pytest.mark.asyncio
async def test_turn_without_result_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    session = Session(ReplayBackend(["hello"]), initial_text=DOC)

    async def no_result(instruction: str) -> AsyncIterator[StreamUpdate]:
        yield StreamUpdate(chunk="hel", text="hel")

    monkeypatch.setattr(session, "run_turn", no_result)

    with pytest.raises(TexcodeError, match="without a result"):
        await session.apply_user_turn("hi")
