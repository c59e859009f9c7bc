from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Literal, TypeAlias

from .logging import get_logger
from .utils.text import truncate

logger = get_logger(__name__)

CommandId: TypeAlias = Literal["help", "clear"]

MAX_UNKNOWN_COMMAND_LEN = 50


@dataclass(frozen=True, slots=True)
class BotCommand:
    id: CommandId
    description: str
    aliases: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ParsedCommand:
    name: str
    args: str
    token: str


@dataclass(frozen=True, slots=True)
class CommandCatalog:
    commands: tuple[BotCommand, ...] = ()
    by_name: dict[str, BotCommand] = field(default_factory=dict)

    @classmethod
    def from_commands(cls, commands: Iterable[BotCommand]) -> "CommandCatalog":
        ordered: list[BotCommand] = []
        by_name: dict[str, BotCommand] = {}
        for command in commands:
            for name in (command.id, *command.aliases):
                key = name.lower()
                if key in by_name:
                    logger.warning(
                        "commands.duplicate",
                        name=key,
                        existing=by_name[key].id,
                        duplicate=command.id,
                    )
                    continue
                by_name[key] = command
            ordered.append(command)
        return cls(commands=tuple(ordered), by_name=by_name)

    def resolve(self, name: str) -> BotCommand | None:
        return self.by_name.get(name.lower())

    def menu(self) -> list[dict[str, Any]]:
        return [
            {"command": command.id, "description": command.description}
            for command in self.commands
        ]


DEFAULT_COMMANDS = CommandCatalog.from_commands(
    [
        BotCommand(id="help", description="Show help", aliases=("h", "?")),
        BotCommand(id="clear", description="Clear context", aliases=("c",)),
    ]
)


def parse_command(
    text: str, *, bot_username: str | None = None
) -> ParsedCommand | None:
    """Split ``/name@bot args`` into its parts; ``None`` for plain text.

    Commands addressed to a different bot are treated as plain text.
    """
    stripped = text.strip()
    if not stripped.startswith("/"):
        return None
    token, *rest = stripped.split(maxsplit=1)
    args = rest[0] if rest else ""
    name, _, target = token[1:].partition("@")
    if target and bot_username and target.lower() != bot_username.lower():
        return None
    return ParsedCommand(name=name, args=args.strip(), token=token)


def unknown_command_text(token: str) -> str:
    shown = truncate(token, MAX_UNKNOWN_COMMAND_LEN)
    return f"Unknown command: {shown}. Use /help to see available commands."
