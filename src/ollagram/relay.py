"""Drive a model response stream into created and edited outgoing messages."""

from __future__ import annotations

from collections.abc import AsyncIterable
from dataclasses import dataclass

from .chunker import (
    CHUNK_UNIT,
    MSG_MAX_LEN,
    ChunkState,
    MessageChunker,
    Sealed,
    SoftFlush,
)
from .logging import get_logger
from .transport import MessageTransport, TransportError
from .utils.streams import iter_lines

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RelayResult:
    text: str
    message_ids: tuple[int, ...]


class ReplyPublisher:
    """Maps chunk states onto transport calls.

    The first emission of a logical message creates it, later ones edit it,
    and a seal drops the held id so the next emission starts a new message.
    """

    def __init__(self, transport: MessageTransport) -> None:
        self.transport = transport
        self.message_id: int | None = None
        self.last_text: str | None = None
        self.message_ids: list[int] = []

    async def publish(self, state: ChunkState) -> None:
        match state:
            case SoftFlush(text=text):
                await self._emit(text)
            case Sealed(text=text):
                await self._emit(text)
                logger.debug(
                    "relay.sealed", message_id=self.message_id, size=len(text)
                )
                self.message_id = None
                self.last_text = None
            case _:
                return

    async def _working(self) -> None:
        try:
            await self.transport.working()
        except TransportError as exc:
            logger.debug("relay.working_failed", error=str(exc))

    async def _emit(self, text: str) -> None:
        if not text.strip():
            return
        if self.message_id is not None and text == self.last_text:
            return
        await self._working()
        if self.message_id is None:
            self.message_id = await self.transport.create(text)
            self.message_ids.append(self.message_id)
        else:
            await self.transport.edit(self.message_id, text)
        self.last_text = text


async def relay_stream(
    fragments: AsyncIterable[str],
    transport: MessageTransport,
    *,
    max_len: int = MSG_MAX_LEN,
    chunk_unit: int = CHUNK_UNIT,
) -> RelayResult:
    """Stream ``fragments`` to ``transport`` and return the full response.

    Errors from the fragment source or the transport propagate as-is; nothing
    is flushed after a failure.
    """
    chunker = MessageChunker(max_len=max_len, chunk_unit=chunk_unit)
    publisher = ReplyPublisher(transport)
    lines: list[str] = []
    async for line in iter_lines(fragments):
        lines.append(line)
        await publisher.publish(chunker.feed(line))
    final = chunker.finish()
    if final is not None:
        await publisher.publish(final)
    logger.debug(
        "relay.completed", lines=len(lines), messages=len(publisher.message_ids)
    )
    return RelayResult(text="\n".join(lines), message_ids=tuple(publisher.message_ids))
