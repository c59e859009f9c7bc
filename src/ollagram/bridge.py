"""Telegram bridge orchestration: commands, model turns and the polling loop."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable, Iterable
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, Protocol

import anyio

from .commands import (
    DEFAULT_COMMANDS,
    CommandCatalog,
    ParsedCommand,
    parse_command,
    unknown_command_text,
)
from .config import RelaySettings
from .history import HistoryStore, Turn
from .logging import get_logger
from .ollama import BackendError, OllamaClient
from .relay import relay_stream
from .telegram import (
    BotClient,
    TelegramClient,
    TelegramIncomingMessage,
    TelegramMessageTransport,
    drain_backlog,
    poll_incoming,
)
from .transport import TransportError
from .utils.text import truncate

logger = get_logger(__name__)

LOG_TEXT_WIDTH = 20
CLEARED_TEXT = "Context cleared."
EMPTY_REPLY_TEXT = "The model returned an empty response."


class ChatBackend(Protocol):
    def stream_chat(
        self,
        model: str,
        turns: Iterable[Turn],
        *,
        options: dict[str, Any] | None = None,
    ) -> AsyncGenerator[str, None]: ...


@dataclass(frozen=True, slots=True)
class BridgeConfig:
    bot: BotClient
    backend: ChatBackend
    settings: RelaySettings
    history: HistoryStore = field(default_factory=HistoryStore)
    commands: CommandCatalog = DEFAULT_COMMANDS
    bot_username: str | None = None


def build_prompt(
    prior: Iterable[Turn], text: str, *, system_prompt: str | None = None
) -> list[Turn]:
    turns: list[Turn] = []
    if system_prompt:
        turns.append(Turn(role="system", content=system_prompt))
    turns.extend(prior)
    turns.append(Turn(role="user", content=text))
    return turns


async def _reply(cfg: BridgeConfig, msg: TelegramIncomingMessage, text: str) -> None:
    sent = await cfg.bot.send_message(
        chat_id=msg.chat_id, text=text, reply_to_message_id=msg.message_id
    )
    if sent is None:
        logger.warning("handle.reply_failed", chat_id=msg.chat_id)


async def _working(transport: TelegramMessageTransport) -> None:
    try:
        await transport.working()
    except TransportError as exc:
        logger.debug("handle.working_failed", error=str(exc))


async def handle_command(
    cfg: BridgeConfig, msg: TelegramIncomingMessage, parsed: ParsedCommand
) -> None:
    command = cfg.commands.resolve(parsed.name)
    if command is None:
        logger.debug("command.unknown", chat_id=msg.chat_id, token=parsed.token)
        await _reply(cfg, msg, unknown_command_text(parsed.token))
        return
    if command.id == "help":
        await _reply(cfg, msg, cfg.settings.help_text)
    elif command.id == "clear":
        await cfg.history.clear(msg.chat_id)
        logger.info("history.cleared", chat_id=msg.chat_id, user=msg.username)
        await _reply(cfg, msg, CLEARED_TEXT)


async def handle_prompt(cfg: BridgeConfig, msg: TelegramIncomingMessage) -> None:
    settings = cfg.settings
    history = await cfg.history.get_or_create(msg.chat_id)
    async with history.turn_lock:
        logger.info(
            "handle.incoming",
            chat_id=msg.chat_id,
            message_id=msg.message_id,
            user=msg.username,
            text=truncate(msg.text, LOG_TEXT_WIDTH),
        )
        transport = TelegramMessageTransport(
            cfg.bot, chat_id=msg.chat_id, reply_to_message_id=msg.message_id
        )
        await _working(transport)
        turns = build_prompt(
            await history.read(), msg.text, system_prompt=settings.system_prompt
        )
        try:
            async with aclosing(
                cfg.backend.stream_chat(settings.model, turns)
            ) as fragments:
                result = await relay_stream(
                    fragments,
                    transport,
                    max_len=settings.msg_max_len,
                    chunk_unit=settings.chunk_unit,
                )
        except BackendError as exc:
            logger.error("handle.backend_failed", chat_id=msg.chat_id, error=str(exc))
            await _reply(cfg, msg, f"Model error: {truncate(str(exc), 200)}")
            return
        except TransportError as exc:
            logger.error(
                "handle.transport_failed",
                chat_id=msg.chat_id,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return

        if not result.message_ids:
            logger.warning("handle.empty_reply", chat_id=msg.chat_id)
            await _reply(cfg, msg, EMPTY_REPLY_TEXT)
            return
        await history.extend(
            [
                Turn(role="user", content=msg.text),
                Turn(role="assistant", content=result.text),
            ]
        )
        logger.info(
            "handle.completed",
            chat_id=msg.chat_id,
            messages=len(result.message_ids),
            reply=truncate(result.text, LOG_TEXT_WIDTH),
        )


async def handle_message(cfg: BridgeConfig, msg: TelegramIncomingMessage) -> None:
    parsed = parse_command(msg.text, bot_username=cfg.bot_username)
    if parsed is not None:
        await handle_command(cfg, msg, parsed)
        return
    await handle_prompt(cfg, msg)


async def _run_handler(cfg: BridgeConfig, msg: TelegramIncomingMessage) -> None:
    try:
        await handle_message(cfg, msg)
    except Exception:
        logger.exception(
            "handle.failed", chat_id=msg.chat_id, message_id=msg.message_id
        )


async def run_main_loop(
    cfg: BridgeConfig,
    *,
    poller: Callable[..., Any] = poll_incoming,
    sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
) -> None:
    offset = await drain_backlog(cfg.bot)
    if not await cfg.bot.set_my_commands(cfg.commands.menu()):
        logger.warning("startup.commands_failed")
    logger.info("startup.ready", model=cfg.settings.model, user=cfg.bot_username)
    async with anyio.create_task_group() as tg:
        async for msg in poller(
            cfg.bot, chat_ids=cfg.settings.chat_ids, offset=offset, sleep=sleep
        ):
            tg.start_soon(_run_handler, cfg, msg)


async def run_bot(settings: RelaySettings) -> None:
    bot = TelegramClient(settings.bot_token)
    backend = OllamaClient(settings.ollama_url)
    try:
        me = await bot.get_me()
        if me is None:
            raise TransportError("getMe failed; check the bot token")
        username = me.get("username")
        cfg = BridgeConfig(
            bot=bot,
            backend=backend,
            settings=settings,
            bot_username=username if isinstance(username, str) else None,
        )
        await run_main_loop(cfg)
    finally:
        await backend.close()
        await bot.close()
