from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class TelegramIncomingMessage:
    chat_id: int
    message_id: int
    text: str
    sender_id: int | None
    username: str | None
