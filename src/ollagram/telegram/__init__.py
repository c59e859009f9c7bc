from .client import BotClient, TelegramClient, TelegramRetryAfter
from .parsing import drain_backlog, parse_incoming_update, poll_incoming
from .render import render_markdown
from .transport import TelegramMessageTransport
from .types import TelegramIncomingMessage

__all__ = [
    "BotClient",
    "TelegramClient",
    "TelegramIncomingMessage",
    "TelegramMessageTransport",
    "TelegramRetryAfter",
    "drain_backlog",
    "parse_incoming_update",
    "poll_incoming",
    "render_markdown",
]
