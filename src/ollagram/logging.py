from __future__ import annotations

import errno
import logging
import re
import sys
from typing import Any

import structlog

# bot API URLs embed the token as /bot<id>:<secret>/
_REDACTIONS = (
    (re.compile(r"bot\d+:[A-Za-z0-9_-]+"), "bot[REDACTED]"),
    (re.compile(r"\b\d+:[A-Za-z0-9_-]{10,}\b"), "[REDACTED_TOKEN]"),
)

_NOISY_LOGGERS = ("markdown_it", "httpcore", "httpx")


def redact_token(text: str) -> str:
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


def redact_token_processor(_, __, event_dict):
    """Redact Telegram tokens from the event and every string field."""
    for key, value in event_dict.items():
        if isinstance(value, str):
            event_dict[key] = redact_token(value)
    return event_dict


class RedactTokenFilter(logging.Filter):
    """Redact tokens from stdlib records, which httpx fills with request URLs."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        redacted = redact_token(message)
        if redacted != message:
            record.msg, record.args = redacted, ()
        return True


class SafeStreamHandler(logging.StreamHandler):
    """Stream handler that goes quiet once stdout is a closed pipe."""

    def handleError(self, record: logging.LogRecord) -> None:
        exc = sys.exc_info()[1]
        if isinstance(exc, OSError) and exc.errno == errno.EPIPE:
            try:
                self.stream.close()
            except OSError:
                pass
            return
        super().handleError(record)


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)


def _processors(debug: bool) -> list[Any]:
    renderer = (
        structlog.dev.ConsoleRenderer(colors=True)
        if debug
        else structlog.processors.JSONRenderer()
    )
    return [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        redact_token_processor,
        renderer,
    ]


def setup_logging(*, debug: bool = False) -> None:
    """Route structlog through stdlib logging on stdout, with tokens redacted."""
    structlog.configure(
        processors=_processors(debug),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = SafeStreamHandler(sys.stdout)
    handler.addFilter(RedactTokenFilter())
    logging.basicConfig(
        format="%(message)s",
        handlers=[handler],
        level=logging.DEBUG if debug else logging.INFO,
        force=True,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
