from pathlib import Path

import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from seo_orchestrator.config import AppSettings
from seo_orchestrator.main import create_app
from tests.fakes import FakeGateway, fast_policy


def make_settings(**overrides) -> AppSettings:
    settings = AppSettings(
        ai_provider="gemini",
        ai_api_key="test-key",
        ai_model="gemini-2.5-flash",
        host="127.0.0.1",
        port=8000,
    )
    if overrides:
        settings = settings.model_copy(update=overrides)
    return settings


@pytest.fixture
def settings() -> AppSettings:
    return make_settings()


@pytest.fixture
def app_factory(tmp_path: Path):
    def _factory(
        *,
        fake_gateway: FakeGateway | None = None,
        config_path: Path | None = None,
        **settings_overrides,
    ):
        settings = make_settings(**settings_overrides)
        gateway = fake_gateway or FakeGateway()
        cfg_path = config_path or (tmp_path / "config.json")
        app = create_app(settings, gateway=gateway, retry_policy=fast_policy(), config_path=cfg_path)
        return app, cfg_path, gateway

    return _factory


@pytest.fixture
async def client(app_factory):
    app, config_path, gateway = app_factory()
    async with LifespanManager(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as http_client:
            http_client.app = app  # type: ignore[attr-defined]
            http_client.config_path = config_path  # type: ignore[attr-defined]
            http_client.fake_gateway = gateway  # type: ignore[attr-defined]
            yield http_client
