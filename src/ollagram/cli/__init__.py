from __future__ import annotations

from pathlib import Path

import anyio
import typer

from .. import __version__
from ..bridge import run_bot
from ..config import (
    ConfigError,
    RelaySettings,
    get_ollama_url,
    load_config,
    load_settings,
)
from ..logging import get_logger, setup_logging
from ..ollama import DEFAULT_MODEL, BackendError, OllamaClient
from ..transport import TransportError

logger = get_logger(__name__)

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Relay Telegram chats to a local Ollama model.",
)

_CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to ollagram.toml (defaults to ./.ollagram or ~/.ollagram).",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


def _load_settings_or_exit(
    config: Path | None, *, model: str | None = None
) -> RelaySettings:
    try:
        return load_settings(config, model_override=model)
    except ConfigError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


@app.callback()
def app_main(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Relay Telegram chats to a local Ollama model."""


@app.command()
def run(
    config: Path | None = _CONFIG_OPTION,
    model: str | None = typer.Option(None, "--model", "-m", help="Ollama model."),
    debug: bool = typer.Option(False, "--debug", help="Verbose console logging."),
) -> None:
    """Start the bot and serve until interrupted."""
    setup_logging(debug=debug)
    settings = _load_settings_or_exit(config, model=model)
    logger.info(
        "startup.settings",
        model=settings.model,
        ollama_url=settings.ollama_url,
        config=str(settings.config_path) if settings.config_path else None,
    )
    try:
        anyio.run(run_bot, settings)
    except KeyboardInterrupt:
        logger.info("shutdown.interrupted")
    except TransportError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


@app.command()
def models(config: Path | None = _CONFIG_OPTION) -> None:
    """List the models available on the Ollama server."""
    try:
        raw, config_path = load_config(config)
        ollama_url = get_ollama_url(raw, config_path)
    except ConfigError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    current = raw.get("model") or DEFAULT_MODEL

    async def _list() -> list[str]:
        client = OllamaClient(ollama_url)
        try:
            return await client.list_models()
        finally:
            await client.close()

    try:
        names = anyio.run(_list)
    except BackendError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    for name in names:
        marker = "*" if name == current else " "
        typer.echo(f"{marker} {name}")


def main() -> None:
    app()
