import pytest

from texcode.errors import ModelCallError
from texcode.llm import ChatMessage, GenerationParams, ReplayBackend, Role


@pytest.mark.asyncio
async def test_replays_replies_in_order() -> None:
    backend = ReplayBackend(["first", "second"])
    params = GenerationParams(model="replay")

    assert await backend.complete([{"role": "user", "content": "a"}], params) == "first"
    assert await backend.complete([{"role": "user", "content": "b"}], params) == "second"
    assert [r[0]["content"] for r in backend.requests] == ["a", "b"]

    with pytest.raises(ModelCallError):
        await backend.complete([], params)


@pytest.mark.asyncio
async def test_chunked_replay() -> None:
    backend = ReplayBackend(["abcdefg"], chunk_size=3)
    pieces = []
    async for piece in backend.generate([], GenerationParams(model="replay")):
        pieces.append(piece)
    assert pieces == ["abc", "def", "g"]


@pytest.mark.asyncio
async def test_chunking_ignored_without_streaming() -> None:
    backend = ReplayBackend(["abcdefg"], chunk_size=3)
    pieces = []
    params = GenerationParams(model="replay", stream=False)
    async for piece in backend.generate([], params):
        pieces.append(piece)
    assert pieces == ["abcdefg"]


def test_chat_message_to_llm_dict() -> None:
    msg = ChatMessage(role=Role.ASSISTANT, text="Done.")
    assert msg.to_llm_dict() == {"role": "assistant", "content": "Done."}
