from collections.abc import Callable

import pytest

from ollagram.bridge import BridgeConfig
from tests.telegram_fakes import _FakeBackend, _FakeBot, _FakeTransport, _make_cfg


@pytest.fixture
def fake_transport() -> _FakeTransport:
    return _FakeTransport()


@pytest.fixture
def fake_bot() -> _FakeBot:
    return _FakeBot()


@pytest.fixture
def make_cfg() -> Callable[..., BridgeConfig]:
    def _factory(
        bot: _FakeBot, backend: _FakeBackend | None = None, **settings
    ) -> BridgeConfig:
        return _make_cfg(bot, backend, **settings)

    return _factory
