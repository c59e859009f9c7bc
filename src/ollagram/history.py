from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass
from typing import Literal, TypeAlias

import anyio

Role: TypeAlias = Literal["system", "user", "assistant"]


@dataclass(frozen=True, slots=True)
class Turn:
    role: Role
    content: str


class ChatHistory:
    """Ordered turns of one conversation.

    ``turn_lock`` serializes whole request/response turns of the conversation;
    the turn list itself is guarded by a separate lock so ``clear`` never waits
    for a running turn.
    """

    def __init__(self) -> None:
        self.turn_lock = anyio.Lock()
        self._lock = anyio.Lock()
        self._turns: list[Turn] = []

    async def read(self) -> list[Turn]:
        async with self._lock:
            return list(self._turns)

    async def append(self, role: Role, content: str) -> None:
        async with self._lock:
            self._turns.append(Turn(role=role, content=content))

    async def extend(self, turns: list[Turn]) -> None:
        async with self._lock:
            self._turns.extend(turns)

    async def clear(self) -> None:
        async with self._lock:
            self._turns.clear()


class HistoryStore:
    def __init__(self) -> None:
        self._lock = anyio.Lock()
        self._chats: dict[Hashable, ChatHistory] = {}

    async def get_or_create(self, conversation_id: Hashable) -> ChatHistory:
        async with self._lock:
            history = self._chats.get(conversation_id)
            if history is None:
                history = ChatHistory()
                self._chats[conversation_id] = history
            return history

    async def get(self, conversation_id: Hashable) -> ChatHistory | None:
        async with self._lock:
            return self._chats.get(conversation_id)

    async def clear(self, conversation_id: Hashable) -> None:
        history = await self.get(conversation_id)
        if history is not None:
            await history.clear()

    async def read_turns(self, conversation_id: Hashable) -> list[Turn]:
        history = await self.get(conversation_id)
        if history is None:
            return []
        return await history.read()

    async def append_turn(
        self, conversation_id: Hashable, role: Role, text: str
    ) -> None:
        history = await self.get_or_create(conversation_id)
        await history.append(role, text)
