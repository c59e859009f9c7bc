from collections.abc import AsyncIterator

import pytest

from ollagram.chunker import CONTINUING, Sealed, SoftFlush
from ollagram.ollama import BackendError
from ollagram.relay import ReplyPublisher, relay_stream
from ollagram.transport import TransportError
from tests.telegram_fakes import _FakeTransport


async def _fragments(*parts: str, error: Exception | None = None) -> AsyncIterator[str]:
    for part in parts:
        yield part
    if error is not None:
        raise error


@pytest.mark.anyio
async def test_short_reply_creates_one_message(fake_transport: _FakeTransport) -> None:
    result = await relay_stream(_fragments("hel", "lo\nwor", "ld"), fake_transport)

    assert fake_transport.calls == [("create", 1, "hello\nworld")]
    assert result.text == "hello\nworld"
    assert result.message_ids == (1,)


@pytest.mark.anyio
async def test_soft_flushes_edit_and_seal_starts_new_message(
    fake_transport: _FakeTransport,
) -> None:
    lines = [chr(ord("a") + i) * 450 for i in range(10)]

    result = await relay_stream(
        _fragments(*(line + "\n" for line in lines)), fake_transport
    )

    expected = [("create", 1, "\n".join(lines[:2]))]
    expected += [("edit", 1, "\n".join(lines[:n])) for n in range(3, 9)]
    expected.append(("create", 2, "\n".join(lines[8:])))
    assert fake_transport.calls == expected
    assert result.message_ids == (1, 2)
    assert result.text == "\n".join(lines)


@pytest.mark.anyio
async def test_code_block_is_closed_and_reopened_across_messages(
    fake_transport: _FakeTransport,
) -> None:
    text = "intro\n```python\n" + "x = 1\n" * 12 + "```\noutro\n"

    await relay_stream(_fragments(text), fake_transport, max_len=60, chunk_unit=1000)

    assert fake_transport.calls == [
        ("create", 1, "intro\n```python\n" + "x = 1\n" * 6 + "```"),
        ("create", 2, "```python\n" + "x = 1\n" * 6 + "```\noutro"),
    ]


@pytest.mark.anyio
async def test_backend_error_propagates_without_final_seal(
    fake_transport: _FakeTransport,
) -> None:
    with pytest.raises(BackendError):
        await relay_stream(
            _fragments("first line\n", "partial", error=BackendError("boom")),
            fake_transport,
            chunk_unit=5,
        )

    assert fake_transport.calls == [("create", 1, "first line")]


@pytest.mark.anyio
async def test_transport_error_propagates() -> None:
    transport = _FakeTransport()
    transport.fail_create = True

    with pytest.raises(TransportError):
        await relay_stream(_fragments("hello\n"), transport)


@pytest.mark.anyio
async def test_blank_reply_sends_nothing(fake_transport: _FakeTransport) -> None:
    result = await relay_stream(_fragments("   \n", "\n"), fake_transport)

    assert fake_transport.calls == []
    assert result.message_ids == ()


@pytest.mark.anyio
async def test_empty_stream_sends_nothing(fake_transport: _FakeTransport) -> None:
    result = await relay_stream(_fragments(), fake_transport)

    assert fake_transport.calls == []
    assert result.text == ""


@pytest.mark.anyio
async def test_publisher_skips_identical_edit(fake_transport: _FakeTransport) -> None:
    publisher = ReplyPublisher(fake_transport)

    await publisher.publish(SoftFlush("draft"))
    await publisher.publish(SoftFlush("draft"))
    await publisher.publish(Sealed("draft"))
    await publisher.publish(CONTINUING)
    await publisher.publish(Sealed("next"))

    assert fake_transport.calls == [("create", 1, "draft"), ("create", 2, "next")]
    assert publisher.message_id is None
    assert publisher.message_ids == [1, 2]


@pytest.mark.anyio
async def test_publisher_edits_held_message(fake_transport: _FakeTransport) -> None:
    publisher = ReplyPublisher(fake_transport)

    await publisher.publish(SoftFlush("one"))
    await publisher.publish(Sealed("one two"))

    assert fake_transport.calls == [("create", 1, "one"), ("edit", 1, "one two")]
    assert fake_transport.working_calls == 2


@pytest.mark.anyio
async def test_working_failure_is_not_fatal() -> None:
    transport = _FakeTransport(fail_working=True)

    result = await relay_stream(_fragments("hi"), transport)

    assert transport.calls == [("create", 1, "hi")]
    assert result.message_ids == (1,)
