from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from typing import Any

import anyio
import msgspec

from ..logging import get_logger
from .api_models import Update
from .client import BotClient, TelegramRetryAfter
from .types import TelegramIncomingMessage

logger = get_logger(__name__)

ALLOWED_UPDATES = ["message"]
POLL_TIMEOUT_S = 50
POLL_RETRY_DELAY_S = 2.0


def parse_incoming_update(
    update: Update | dict[str, Any],
    *,
    chat_ids: set[int] | None = None,
) -> TelegramIncomingMessage | None:
    if isinstance(update, dict):
        try:
            update = msgspec.convert(update, type=Update)
        except msgspec.ValidationError:
            return None

    msg = update.message
    if msg is None or msg.text is None:
        return None
    if chat_ids is not None and msg.chat.id not in chat_ids:
        logger.debug("telegram.update.ignored", chat_id=msg.chat.id)
        return None
    sender = msg.from_
    return TelegramIncomingMessage(
        chat_id=msg.chat.id,
        message_id=msg.message_id,
        text=msg.text,
        sender_id=sender.id if sender is not None else None,
        username=sender.username if sender is not None else None,
    )


def _update_id(update: dict[str, Any]) -> int | None:
    value = update.get("update_id")
    return value if isinstance(value, int) else None


async def drain_backlog(bot: BotClient, offset: int | None = None) -> int | None:
    drained = 0
    while True:
        updates = await bot.get_updates(
            offset=offset, timeout_s=0, allowed_updates=ALLOWED_UPDATES
        )
        if updates is None:
            logger.info("startup.backlog.failed")
            return offset
        if not updates:
            if drained:
                logger.info("startup.backlog.drained", count=drained)
            return offset
        last_id = _update_id(updates[-1])
        if last_id is None:
            return offset
        offset = last_id + 1
        drained += len(updates)


async def poll_incoming(
    bot: BotClient,
    *,
    chat_ids: Iterable[int] | None = None,
    offset: int | None = None,
    sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
) -> AsyncIterator[TelegramIncomingMessage]:
    allowed = set(chat_ids) if chat_ids is not None else None
    while True:
        try:
            updates = await bot.get_updates(
                offset=offset,
                timeout_s=POLL_TIMEOUT_S,
                allowed_updates=ALLOWED_UPDATES,
            )
        except TelegramRetryAfter as exc:
            await sleep(exc.retry_after)
            continue
        if updates is None:
            logger.info("loop.get_updates.failed")
            await sleep(POLL_RETRY_DELAY_S)
            continue
        logger.debug("loop.updates", count=len(updates))
        for upd in updates:
            update_id = _update_id(upd)
            if update_id is not None:
                offset = update_id + 1
            msg = parse_incoming_update(upd, chat_ids=allowed)
            if msg is not None:
                yield msg
