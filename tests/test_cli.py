from pathlib import Path

import pytest
from typer.testing import CliRunner

from ollagram import __version__, cli
from ollagram.config import ENV_BOT_TOKEN, ENV_MODEL, ENV_OLLAMA_HOST, RelaySettings
from ollagram.ollama import BackendError
from ollagram.transport import TransportError


@pytest.fixture(autouse=True)
def _isolate(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (ENV_BOT_TOKEN, ENV_MODEL, ENV_OLLAMA_HOST):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(cli, "setup_logging", lambda **_: None)


def _config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "ollagram.toml"
    path.write_text(text, encoding="utf-8")
    return path


def test_version() -> None:
    result = CliRunner().invoke(cli.app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_run_starts_bot_with_settings(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    seen: list[RelaySettings] = []

    async def fake_run_bot(settings: RelaySettings) -> None:
        seen.append(settings)

    monkeypatch.setattr(cli, "run_bot", fake_run_bot)
    path = _config(tmp_path, 'bot_token = "123:abc"\nmodel = "file-model"\n')

    result = CliRunner().invoke(
        cli.app, ["run", "--config", str(path), "--model", "cli-model"]
    )

    assert result.exit_code == 0
    assert [s.model for s in seen] == ["cli-model"]
    assert seen[0].bot_token == "123:abc"


def test_run_reports_startup_transport_errors(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    async def fake_run_bot(settings: RelaySettings) -> None:
        raise TransportError("getMe failed; check the bot token")

    monkeypatch.setattr(cli, "run_bot", fake_run_bot)
    path = _config(tmp_path, 'bot_token = "123:abc"\n')

    result = CliRunner().invoke(cli.app, ["run", "--config", str(path)])

    assert result.exit_code == 1
    assert "error: getMe failed" in result.output


def test_run_reports_config_errors(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    async def fake_run_bot(settings: RelaySettings) -> None:
        raise AssertionError("should not start")

    monkeypatch.setattr(cli, "run_bot", fake_run_bot)
    path = _config(tmp_path, 'model = "x"\n')

    result = CliRunner().invoke(cli.app, ["run", "--config", str(path)])

    assert result.exit_code == 1
    assert "error: Missing bot token" in result.output


class _FakeOllama:
    names: list[str] = []
    fail = False

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url

    async def list_models(self) -> list[str]:
        if self.fail:
            raise BackendError("connection refused")
        return list(self.names)

    async def close(self) -> None:
        return None


def test_models_marks_configured_model(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setattr(_FakeOllama, "names", ["llama3", "qwen"])
    monkeypatch.setattr(cli, "OllamaClient", _FakeOllama)
    path = _config(tmp_path, 'model = "qwen"\n')

    result = CliRunner().invoke(cli.app, ["models", "--config", str(path)])

    assert result.exit_code == 0
    assert result.output.splitlines() == ["  llama3", "* qwen"]


def test_models_reports_backend_errors(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setattr(_FakeOllama, "fail", True)
    monkeypatch.setattr(cli, "OllamaClient", _FakeOllama)
    path = _config(tmp_path, "")

    result = CliRunner().invoke(cli.app, ["models", "--config", str(path)])

    assert result.exit_code == 1
    assert "connection refused" in result.output
