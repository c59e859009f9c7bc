from __future__ import annotations

from ..logging import get_logger
from ..transport import TransportError
from .client import BotClient
from .render import render_markdown

logger = get_logger(__name__)


class TelegramMessageTransport:
    """Sends and edits the messages of one reply in one chat."""

    def __init__(
        self,
        bot: BotClient,
        *,
        chat_id: int,
        reply_to_message_id: int | None = None,
    ) -> None:
        self.bot = bot
        self.chat_id = chat_id
        self.reply_to_message_id = reply_to_message_id

    async def working(self) -> None:
        await self.bot.send_chat_action(self.chat_id, "typing")

    async def create(self, text: str) -> int:
        rendered, entities = render_markdown(text)
        sent = await self.bot.send_message(
            chat_id=self.chat_id,
            text=rendered,
            entities=entities or None,
            reply_to_message_id=self.reply_to_message_id,
        )
        if sent is None or not isinstance(sent.get("message_id"), int):
            raise TransportError(f"sendMessage failed in chat {self.chat_id}")
        message_id = sent["message_id"]
        logger.debug("transport.created", chat_id=self.chat_id, message_id=message_id)
        return message_id

    async def edit(self, message_id: int, text: str) -> None:
        rendered, entities = render_markdown(text)
        edited = await self.bot.edit_message_text(
            chat_id=self.chat_id,
            message_id=message_id,
            text=rendered,
            entities=entities or None,
        )
        if edited is None:
            raise TransportError(
                f"editMessageText failed for message {message_id} in chat {self.chat_id}"
            )
        logger.debug("transport.edited", chat_id=self.chat_id, message_id=message_id)
