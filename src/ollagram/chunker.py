"""Incremental chunking of a line stream into length-bounded Telegram messages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeAlias

from .utils.text import truncate

CODE_FENCE = "```"
MSG_MAX_LEN = 4000
CHUNK_UNIT = 500

# smallest room a closing fence line takes: the fence plus its newline
_CLOSE_FENCE_COST = len(CODE_FENCE) + 1
_DEBUG_WIDTH = 20


@dataclass(frozen=True, slots=True)
class Continuing:
    pass


@dataclass(frozen=True, slots=True)
class SoftFlush:
    text: str


@dataclass(frozen=True, slots=True)
class Sealed:
    text: str


ChunkState: TypeAlias = Continuing | SoftFlush | Sealed

CONTINUING = Continuing()


def parse_fence(line: str) -> str | None:
    """Return the info string of a code fence line, or ``None``.

    The info string is kept verbatim (it may be empty), so a fence reopened
    from it matches the original opening line.
    """
    stripped = line.strip()
    if not stripped.startswith(CODE_FENCE):
        return None
    info = stripped[len(CODE_FENCE) :]
    if "`" in info:
        return None
    return info


def _render(text: str) -> str:
    return text.removesuffix("\n")


def _indent_of(line: str) -> str:
    return line[: len(line) - len(line.lstrip())]


class MessageChunker:
    """Accumulates lines for the in-flight message and decides when to emit.

    ``handle`` applies one line; ``poll`` turns the resulting state into a
    ``Continuing``, ``SoftFlush`` or ``Sealed`` snapshot. A seal never leaves a
    code fence dangling: the sealed text gets a closing fence and the next
    buffer starts with the same opening fence.
    """

    def __init__(
        self, *, max_len: int = MSG_MAX_LEN, chunk_unit: int = CHUNK_UNIT
    ) -> None:
        if max_len <= _CLOSE_FENCE_COST:
            raise ValueError(f"max_len must be greater than {_CLOSE_FENCE_COST}")
        if chunk_unit <= 0:
            raise ValueError("chunk_unit must be positive")
        self.max_len = max_len
        self.chunk_unit = chunk_unit
        self.buffer = ""
        self.sealed_text = ""
        self.is_sealed = False
        self.in_code_block = False
        self.lang: str | None = None
        # leading whitespace of the opening fence, reused when closing or reopening
        self.indent = ""
        self.chunk_goal = 1
        # buffer span of the opening fence line of the open block
        self._fence_start = 0
        self._fence_end = 0

    def __repr__(self) -> str:
        return (
            f"MessageChunker(buffer={truncate(self.buffer, _DEBUG_WIDTH)!r}, "
            f"sealed_text={truncate(self.sealed_text, _DEBUG_WIDTH)!r}, "
            f"is_sealed={self.is_sealed}, lang={self.lang!r}, "
            f"in_code_block={self.in_code_block}, chunk_goal={self.chunk_goal})"
        )

    @property
    def chunk_count(self) -> int:
        return len(self.buffer) // self.chunk_unit

    def _append(self, line: str) -> None:
        self.buffer += line + "\n"

    def _open_fence(self, line: str) -> None:
        self._fence_start = len(self.buffer)
        self._append(line)
        self._fence_end = len(self.buffer)

    def _fence_line(self, info: str = "") -> str:
        return f"{self.indent}{CODE_FENCE}{info}"

    def _closed_text(self, *, carry_fence: bool) -> str:
        """The buffer as it would be sealed now.

        With ``carry_fence``, a block holding nothing but its opening line is
        left out entirely; the next buffer reopens it anyway.
        """
        if not self.in_code_block:
            return self.buffer
        if carry_fence and len(self.buffer) == self._fence_end:
            return self.buffer[: self._fence_start]
        return self.buffer + self._fence_line() + "\n"

    def _overflows(self, line: str, *, close_cost: int) -> bool:
        cost = len(line) + 1 + close_cost
        if len(self.buffer) + cost <= self.max_len:
            return False
        return bool(self._closed_text(carry_fence=True))

    def _close_block(self) -> None:
        self.in_code_block = False
        self.lang = None
        self.indent = ""

    def _seal(self, *, carry_fence: bool = True) -> None:
        self.sealed_text = _render(self._closed_text(carry_fence=carry_fence))
        self.buffer = ""
        self.is_sealed = True

    def handle(self, line: str) -> None:
        fence = parse_fence(line)
        opens = fence is not None and not self.in_code_block
        closes = fence == "" and self.in_code_block
        if opens:
            close_cost = len(_indent_of(line)) + _CLOSE_FENCE_COST
        elif self.in_code_block and not closes:
            close_cost = len(self.indent) + _CLOSE_FENCE_COST
        else:
            close_cost = 0

        if not self._overflows(line, close_cost=close_cost):
            self.is_sealed = False
        elif closes:
            # the reserved room fits the opener's fence, not a padded closing line
            self._append(self._fence_line())
            self._close_block()
            self._seal()
            return
        else:
            self._seal()
            if self.in_code_block:
                self._open_fence(self._fence_line(self.lang or ""))

        if opens:
            self.in_code_block = True
            self.lang = fence
            self.indent = _indent_of(line)
            self._open_fence(line)
            return
        if closes:
            self._close_block()
        self._append(line)

    def poll(self) -> ChunkState:
        if self.is_sealed:
            self.chunk_goal = 1
            return Sealed(self.sealed_text)
        if self.chunk_count >= self.chunk_goal:
            self.chunk_goal += 1
            return SoftFlush(_render(self.buffer))
        return CONTINUING

    def feed(self, line: str) -> ChunkState:
        self.handle(line)
        return self.poll()

    def finish(self) -> Sealed | None:
        """Seal whatever is left once the input is exhausted."""
        if not self.buffer:
            return None
        self._seal(carry_fence=False)
        self.chunk_goal = 1
        return Sealed(self.sealed_text)
