from __future__ import annotations

from typing import Protocol


class TransportError(RuntimeError):
    """A message could not be sent or edited."""


class RetryAfter(TransportError):
    def __init__(self, retry_after: float, description: str | None = None) -> None:
        super().__init__(description or f"retry after {retry_after}")
        self.retry_after = float(retry_after)
        self.description = description


class MessageTransport(Protocol):
    async def create(self, text: str) -> int: ...

    async def edit(self, message_id: int, text: str) -> None: ...

    async def working(self) -> None: ...
