from __future__ import annotations

import re
from typing import Any, Protocol

import httpx
import msgspec

from ..logging import get_logger
from ..transport import RetryAfter
from .api_models import ApiResponse

logger = get_logger(__name__)

API_BASE_URL = "https://api.telegram.org"

_RESPONSE_DECODER = msgspec.json.Decoder(ApiResponse)
_RETRY_AFTER_RE = re.compile(r"retry after (\d+)", re.IGNORECASE)


class TelegramRetryAfter(RetryAfter):
    pass


class BotClient(Protocol):
    """The subset of the Bot API the bridge talks to."""

    async def close(self) -> None: ...

    async def get_updates(
        self,
        offset: int | None,
        timeout_s: int = 50,
        allowed_updates: list[str] | None = None,
    ) -> list[dict] | None: ...

    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        reply_to_message_id: int | None = None,
        entities: list[dict] | None = None,
    ) -> dict | None: ...

    async def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        *,
        entities: list[dict] | None = None,
    ) -> dict | None: ...

    async def send_chat_action(self, chat_id: int, action: str = "typing") -> bool: ...

    async def set_my_commands(self, commands: list[dict[str, Any]]) -> bool: ...

    async def get_me(self) -> dict | None: ...


def _params(**values: Any) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def _retry_after(reply: ApiResponse | None, body: str) -> float | None:
    if reply is not None and reply.parameters is not None:
        if reply.parameters.retry_after is not None:
            return reply.parameters.retry_after
    description = reply.description if reply is not None else None
    found = _RETRY_AFTER_RE.search(description or body)
    return float(found.group(1)) if found else None


class TelegramClient:
    """Thin Bot API client.

    Failed calls are logged and come back as ``None``; only rate limiting is
    raised, as ``TelegramRetryAfter``, so callers can decide to wait.
    """

    def __init__(
        self,
        token: str,
        *,
        timeout_s: float = 120,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not token:
            raise ValueError("Telegram token is empty")
        self._base = f"{API_BASE_URL}/bot{token}"
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._owns_client = client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def call(self, method: str, params: dict[str, Any]) -> Any | None:
        logger.debug("telegram.call", method=method, params=params)
        try:
            resp = await self._client.post(f"{self._base}/{method}", json=params)
        except httpx.HTTPError as exc:
            logger.error(
                "telegram.network_error",
                method=method,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return None

        try:
            reply = _RESPONSE_DECODER.decode(resp.content)
        except msgspec.DecodeError:
            reply = None

        if resp.status_code == 429 or (reply is not None and not reply.ok):
            retry_after = _retry_after(reply, resp.text)
            if retry_after is not None:
                logger.info(
                    "telegram.rate_limited", method=method, retry_after=retry_after
                )
                description = reply.description if reply is not None else None
                raise TelegramRetryAfter(retry_after, description)

        if reply is None or not reply.ok or resp.is_error:
            logger.error(
                "telegram.call_failed",
                method=method,
                status=resp.status_code,
                description=reply.description if reply is not None else resp.text,
            )
            return None

        logger.debug("telegram.result", method=method, result=reply.result)
        return reply.result

    async def get_updates(
        self,
        offset: int | None,
        timeout_s: int = 50,
        allowed_updates: list[str] | None = None,
    ) -> list[dict] | None:
        result = await self.call(
            "getUpdates",
            _params(offset=offset, timeout=timeout_s, allowed_updates=allowed_updates),
        )
        return result if isinstance(result, list) else None

    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        reply_to_message_id: int | None = None,
        entities: list[dict] | None = None,
    ) -> dict | None:
        result = await self.call(
            "sendMessage",
            _params(
                chat_id=chat_id,
                text=text,
                reply_to_message_id=reply_to_message_id,
                entities=entities,
            ),
        )
        return result if isinstance(result, dict) else None

    async def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        *,
        entities: list[dict] | None = None,
    ) -> dict | None:
        result = await self.call(
            "editMessageText",
            _params(
                chat_id=chat_id, message_id=message_id, text=text, entities=entities
            ),
        )
        return result if isinstance(result, dict) else None

    async def send_chat_action(self, chat_id: int, action: str = "typing") -> bool:
        return bool(
            await self.call("sendChatAction", {"chat_id": chat_id, "action": action})
        )

    async def set_my_commands(self, commands: list[dict[str, Any]]) -> bool:
        return bool(await self.call("setMyCommands", {"commands": commands}))

    async def get_me(self) -> dict | None:
        result = await self.call("getMe", {})
        return result if isinstance(result, dict) else None
