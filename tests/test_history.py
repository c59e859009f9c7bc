import anyio
import pytest

from ollagram.history import ChatHistory, HistoryStore, Turn


@pytest.mark.anyio
async def test_turns_are_kept_in_order() -> None:
    store = HistoryStore()

    await store.append_turn(1, "user", "hi")
    await store.append_turn(1, "assistant", "hello")

    assert await store.read_turns(1) == [
        Turn(role="user", content="hi"),
        Turn(role="assistant", content="hello"),
    ]


@pytest.mark.anyio
async def test_conversations_are_isolated() -> None:
    store = HistoryStore()

    await store.append_turn(1, "user", "one")
    await store.append_turn(2, "user", "two")
    await store.clear(1)

    assert await store.read_turns(1) == []
    assert await store.read_turns(2) == [Turn(role="user", content="two")]


@pytest.mark.anyio
async def test_unknown_conversation_reads_empty_and_clears_quietly() -> None:
    store = HistoryStore()

    await store.clear(99)

    assert await store.read_turns(99) == []
    assert await store.get(99) is None


@pytest.mark.anyio
async def test_get_or_create_returns_same_history() -> None:
    store = HistoryStore()

    first = await store.get_or_create("chat")
    second = await store.get_or_create("chat")

    assert first is second


@pytest.mark.anyio
async def test_read_returns_a_copy() -> None:
    history = ChatHistory()
    await history.append("user", "hi")

    turns = await history.read()
    turns.clear()

    assert await history.read() == [Turn(role="user", content="hi")]


@pytest.mark.anyio
async def test_clear_does_not_wait_for_running_turn() -> None:
    history = ChatHistory()
    await history.extend(
        [Turn(role="user", content="q"), Turn(role="assistant", content="a")]
    )

    async with history.turn_lock:
        with anyio.fail_after(1):
            await history.clear()

    assert await history.read() == []


@pytest.mark.anyio
async def test_turn_lock_serializes_turns() -> None:
    history = ChatHistory()
    order: list[str] = []

    async def turn(name: str) -> None:
        async with history.turn_lock:
            order.append(f"{name}:start")
            await anyio.sleep(0.01)
            await history.append("user", name)
            order.append(f"{name}:end")

    async with anyio.create_task_group() as tg:
        tg.start_soon(turn, "a")
        tg.start_soon(turn, "b")

    assert order[0].endswith(":start")
    assert order[1].endswith(":end")
    assert order[0].split(":")[0] == order[1].split(":")[0]
    assert len(await history.read()) == 2
