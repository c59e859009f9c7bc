from __future__ import annotations

from typing import Any

import msgspec

__all__ = [
    "ApiResponse",
    "Chat",
    "Message",
    "ResponseParameters",
    "Update",
    "User",
]


class User(msgspec.Struct, forbid_unknown_fields=False):
    id: int
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None


class Chat(msgspec.Struct, forbid_unknown_fields=False):
    id: int
    type: str


class Message(msgspec.Struct, forbid_unknown_fields=False):
    message_id: int
    chat: Chat
    text: str | None = None
    from_: User | None = msgspec.field(default=None, name="from")


class Update(msgspec.Struct, forbid_unknown_fields=False):
    update_id: int
    message: Message | None = None


class ResponseParameters(msgspec.Struct, forbid_unknown_fields=False):
    retry_after: float | None = None
    migrate_to_chat_id: int | None = None


class ApiResponse(msgspec.Struct, forbid_unknown_fields=False):
    """Envelope every Bot API method answers with."""

    ok: bool
    result: Any = None
    description: str | None = None
    error_code: int | None = None
    parameters: ResponseParameters | None = None
