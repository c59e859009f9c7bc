from __future__ import annotations

from collections.abc import AsyncGenerator, Iterable
from typing import Any

import httpx
import msgspec

from .history import Turn
from .logging import get_logger

logger = get_logger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_MODEL = "qwen2.5-coder:32b"


class BackendError(RuntimeError):
    """The model backend failed before the response stream completed."""


class ChatMessage(msgspec.Struct, forbid_unknown_fields=False):
    role: str
    content: str = ""


class ChatChunk(msgspec.Struct, forbid_unknown_fields=False):
    message: ChatMessage | None = None
    done: bool = False
    done_reason: str | None = None
    error: str | None = None


class ModelInfo(msgspec.Struct, forbid_unknown_fields=False):
    name: str
    size: int | None = None


class ModelList(msgspec.Struct, forbid_unknown_fields=False):
    models: list[ModelInfo] = msgspec.field(default_factory=list)


_CHUNK_DECODER = msgspec.json.Decoder(ChatChunk)
_MODELS_DECODER = msgspec.json.Decoder(ModelList)


def _error_from_body(body: bytes) -> str | None:
    try:
        payload = msgspec.json.decode(body)
    except msgspec.DecodeError:
        return None
    if isinstance(payload, dict) and isinstance(payload.get("error"), str):
        return payload["error"]
    return None


def build_messages(turns: Iterable[Turn]) -> list[dict[str, str]]:
    return [{"role": turn.role, "content": turn.content} for turn in turns]


class OllamaClient:
    def __init__(
        self,
        base_url: str = DEFAULT_OLLAMA_URL,
        *,
        timeout_s: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        # generation can idle for a long time while the model loads
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_s, connect=10.0)
        )
        self._owns_client = client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def stream_chat(
        self,
        model: str,
        turns: Iterable[Turn],
        *,
        options: dict[str, Any] | None = None,
    ) -> AsyncGenerator[str, None]:
        """Yield the content increments of a streamed ``/api/chat`` response."""
        payload: dict[str, Any] = {
            "model": model,
            "messages": build_messages(turns),
            "stream": True,
        }
        if options:
            payload["options"] = options
        url = f"{self.base_url}/api/chat"
        logger.debug("ollama.request", model=model, messages=len(payload["messages"]))
        try:
            async with self._client.stream("POST", url, json=payload) as resp:
                if resp.is_error:
                    body = await resp.aread()
                    detail = _error_from_body(body) or body.decode(errors="replace")
                    logger.error(
                        "ollama.http_error", status=resp.status_code, error=detail
                    )
                    raise BackendError(
                        f"ollama returned {resp.status_code}: {detail}"
                    )
                async for raw in resp.aiter_lines():
                    if not raw.strip():
                        continue
                    try:
                        chunk = _CHUNK_DECODER.decode(raw)
                    except msgspec.DecodeError as exc:
                        raise BackendError(f"invalid ollama chunk: {raw!r}") from exc
                    if chunk.error:
                        logger.error("ollama.stream_error", error=chunk.error)
                        raise BackendError(chunk.error)
                    if chunk.message is not None and chunk.message.content:
                        yield chunk.message.content
                    if chunk.done:
                        logger.debug("ollama.done", reason=chunk.done_reason)
                        return
        except httpx.HTTPError as exc:
            logger.error(
                "ollama.network_error",
                url=url,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            raise BackendError(f"ollama request failed: {exc}") from exc
        raise BackendError("ollama stream ended without a done chunk")

    async def list_models(self) -> list[str]:
        url = f"{self.base_url}/api/tags"
        try:
            resp = await self._client.get(url)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise BackendError(f"ollama request failed: {exc}") from exc
        try:
            listing = _MODELS_DECODER.decode(resp.content)
        except msgspec.DecodeError as exc:
            raise BackendError("invalid ollama model list") from exc
        return [model.name for model in listing.models]
