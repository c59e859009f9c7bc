from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator


async def iter_lines(fragments: AsyncIterable[str]) -> AsyncIterator[str]:
    """Join streamed text fragments and yield them back as lines.

    Lines are yielded without their terminator. A trailing partial line is
    yielded once the fragment source is exhausted; a trailing newline does not
    produce an extra empty line.
    """
    buffer = ""
    async for chunk in fragments:
        buffer += chunk
        while True:
            split_at = buffer.find("\n")
            if split_at < 0:
                break
            line = buffer[:split_at]
            buffer = buffer[split_at + 1 :]
            yield line.removesuffix("\r")
    if buffer:
        yield buffer.removesuffix("\r")
