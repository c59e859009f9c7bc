from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .chunker import CHUNK_UNIT, CODE_FENCE, MSG_MAX_LEN
from .ollama import DEFAULT_MODEL, DEFAULT_OLLAMA_URL

# Environment variable names
ENV_BOT_TOKEN = "OLLAGRAM_BOT_TOKEN"
ENV_MODEL = "OLLAGRAM_MODEL"
ENV_OLLAMA_HOST = "OLLAMA_HOST"

LOCAL_CONFIG_NAME = Path(".ollagram") / "ollagram.toml"
HOME_CONFIG_PATH = Path.home() / ".ollagram" / "ollagram.toml"

# Telegram rejects texts longer than this
TELEGRAM_TEXT_LIMIT = 4096

DEFAULT_HELP_TEXT = (
    "Send me a message and I will answer with a local language model.\n\n"
    "/help - show this message\n"
    "/clear - forget the conversation so far"
)


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class RelaySettings:
    bot_token: str
    model: str = DEFAULT_MODEL
    ollama_url: str = DEFAULT_OLLAMA_URL
    chat_ids: frozenset[int] | None = None
    msg_max_len: int = MSG_MAX_LEN
    chunk_unit: int = CHUNK_UNIT
    system_prompt: str | None = None
    help_text: str = DEFAULT_HELP_TEXT
    config_path: Path | None = None


def _config_candidates() -> list[Path]:
    candidates = [Path.cwd() / LOCAL_CONFIG_NAME, HOME_CONFIG_PATH]
    if candidates[0] == candidates[1]:
        return [candidates[0]]
    return candidates


def _read_config(cfg_path: Path) -> dict:
    try:
        raw = cfg_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Missing config file {cfg_path}.") from None
    except OSError as e:
        raise ConfigError(f"Failed to read config file {cfg_path}: {e}") from e
    try:
        return tomllib.loads(raw)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Malformed TOML in {cfg_path}: {e}") from None


def load_config(path: str | Path | None = None) -> tuple[dict, Path | None]:
    """Read the TOML config; an absent default config yields an empty one."""
    if path:
        cfg_path = Path(path).expanduser()
        return _read_config(cfg_path), cfg_path

    for candidate in _config_candidates():
        if candidate.is_file():
            return _read_config(candidate), candidate
    return {}, None


def _where(config_path: Path | None) -> str:
    return str(config_path) if config_path is not None else "the config"


def _env_str(name: str) -> str | None:
    value = os.environ.get(name)
    if value and value.strip():
        return value.strip()
    return None


def _get_str(
    config: dict[str, Any], key: str, config_path: Path | None, *, default: str
) -> str:
    value = config.get(key, default)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(
            f"Invalid `{key}` in {_where(config_path)}; expected a non-empty string."
        )
    return value.strip()


def _get_positive_int(
    config: dict[str, Any], key: str, config_path: Path | None, *, default: int
) -> int:
    value = config.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(
            f"Invalid `{key}` in {_where(config_path)}; expected a positive integer."
        )
    return value


def get_bot_token(config: dict, config_path: Path | None) -> str:
    """Get bot token from environment variable or config file.

    Environment variable OLLAGRAM_BOT_TOKEN takes precedence over config file.
    """
    env_token = _env_str(ENV_BOT_TOKEN)
    if env_token:
        return env_token

    try:
        token = config["bot_token"]
    except KeyError:
        raise ConfigError(
            f"Missing bot token. Set {ENV_BOT_TOKEN} environment variable "
            f"or add `bot_token` to {_where(config_path)}."
        ) from None

    if not isinstance(token, str) or not token.strip():
        raise ConfigError(
            f"Invalid `bot_token` in {_where(config_path)}; "
            "expected a non-empty string."
        )
    return token.strip()


def get_chat_ids(config: dict, config_path: Path | None) -> frozenset[int] | None:
    value = config.get("chat_ids")
    if value is None:
        return None
    if not isinstance(value, list) or any(
        isinstance(item, bool) or not isinstance(item, int) for item in value
    ):
        raise ConfigError(
            f"Invalid `chat_ids` in {_where(config_path)}; expected a list of integers."
        )
    return frozenset(value)


def get_ollama_url(config: dict, config_path: Path | None) -> str:
    """Ollama base URL; OLLAMA_HOST wins and may omit the scheme."""
    url = _env_str(ENV_OLLAMA_HOST)
    if url is None:
        url = _get_str(config, "ollama_url", config_path, default=DEFAULT_OLLAMA_URL)
    if "://" not in url:
        url = f"http://{url}"
    return url


def parse_settings(
    config: dict[str, Any],
    config_path: Path | None = None,
    *,
    model_override: str | None = None,
) -> RelaySettings:
    bot_token = get_bot_token(config, config_path)
    model = model_override or _env_str(ENV_MODEL)
    if model is None:
        model = _get_str(config, "model", config_path, default=DEFAULT_MODEL)
    ollama_url = get_ollama_url(config, config_path)

    msg_max_len = _get_positive_int(
        config, "msg_max_len", config_path, default=MSG_MAX_LEN
    )
    if msg_max_len <= len(CODE_FENCE) + 1:
        raise ConfigError(
            f"Invalid `msg_max_len` in {_where(config_path)}; "
            "too small to hold a code fence."
        )
    if msg_max_len > TELEGRAM_TEXT_LIMIT:
        raise ConfigError(
            f"Invalid `msg_max_len` in {_where(config_path)}; "
            f"Telegram allows at most {TELEGRAM_TEXT_LIMIT} characters."
        )
    chunk_unit = _get_positive_int(
        config, "chunk_unit", config_path, default=CHUNK_UNIT
    )

    system_prompt = config.get("system_prompt")
    if system_prompt is not None and not isinstance(system_prompt, str):
        raise ConfigError(
            f"Invalid `system_prompt` in {_where(config_path)}; expected a string."
        )
    if system_prompt is not None:
        system_prompt = system_prompt.strip() or None
    help_text = _get_str(config, "help_text", config_path, default=DEFAULT_HELP_TEXT)

    return RelaySettings(
        bot_token=bot_token,
        model=model,
        ollama_url=ollama_url,
        chat_ids=get_chat_ids(config, config_path),
        msg_max_len=msg_max_len,
        chunk_unit=chunk_unit,
        system_prompt=system_prompt,
        help_text=help_text,
        config_path=config_path,
    )


def load_settings(
    path: str | Path | None = None, *, model_override: str | None = None
) -> RelaySettings:
    config, config_path = load_config(path)
    return parse_settings(config, config_path, model_override=model_override)
