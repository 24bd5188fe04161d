import json

import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from seo_orchestrator.config import AppSettings, load_settings, save_settings


@pytest.mark.asyncio
async def test_get_settings_masks_api_key(app_factory):
    app, _, _ = app_factory(ai_api_key="secret-key")
    async with LifespanManager(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            res = await client.get("/settings")
            assert res.status_code == 200
            data = res.json()
            assert data["settings"]["ai_api_key"] == "********"
            assert data["settings"]["retry"]["max_attempts"] == 5


@pytest.mark.asyncio
async def test_post_settings_persists_config(client):
    res = await client.post("/settings", json={"ai_provider": "openai", "ai_model": "gpt-4o-mini"})
    assert res.status_code == 200
    saved = json.loads(client.config_path.read_text())
    assert saved["ai_provider"] == "openai"
    assert saved["ai_model"] == "gpt-4o-mini"
    assert client.app.state.settings.ai_provider == "openai"


@pytest.mark.asyncio
async def test_post_settings_keeps_key_when_masked_value_sent(client):
    res = await client.post("/settings", json={"ai_api_key": "********", "port": 9000})
    assert res.status_code == 200
    assert client.app.state.settings.ai_api_key == "test-key"
    assert client.app.state.settings.port == 9000


@pytest.mark.asyncio
async def test_post_settings_rejects_unknown_provider(client):
    res = await client.post("/settings", json={"ai_provider": "cohere"})
    assert res.status_code == 400


@pytest.mark.asyncio
async def test_lifespan_closes_gateway(app_factory):
    app, _, gateway = app_factory()
    async with LifespanManager(app):
        assert gateway.closed is False
    assert gateway.closed is True


def test_config_precedence_configjson_wins_by_default(tmp_path, monkeypatch):
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"ai_model": "from-config"}))
    monkeypatch.setenv("SEO_AI_MODEL", "from-env")
    monkeypatch.delenv("SEO_ENV_OVERRIDES_CONFIG", raising=False)
    settings = load_settings(config_path=config_path)
    assert settings.ai_model == "from-config"


def test_env_override_when_flag_set(tmp_path, monkeypatch):
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"ai_model": "from-config"}))
    monkeypatch.setenv("SEO_AI_MODEL", "from-env")
    monkeypatch.setenv("SEO_ENV_OVERRIDES_CONFIG", "1")
    settings = load_settings(config_path=config_path)
    assert settings.ai_model == "from-env"


def test_env_values_are_parsed(tmp_path, monkeypatch):
    monkeypatch.setenv("SEO_AI_PROVIDER", " OpenRouter ")
    monkeypatch.setenv("SEO_AI_MODELS", "a/one, b/two ,")
    monkeypatch.setenv("SEO_REQUEST_TIMEOUT_S", "30")
    settings = load_settings(config_path=tmp_path / "missing.json")
    assert settings.ai_provider == "openrouter"
    assert settings.ai_models == ["a/one", "b/two"]
    assert settings.request_timeout_s == 30.0
    assert settings.ai_config().candidate_models("default") == ["a/one", "b/two"]


def test_env_key_fills_missing_config_key(tmp_path, monkeypatch):
    config_path = tmp_path / "config.json"
    save_settings(AppSettings(ai_provider="anthropic"), config_path=config_path)
    monkeypatch.setenv("SEO_AI_API_KEY", "env-key")
    monkeypatch.delenv("SEO_ENV_OVERRIDES_CONFIG", raising=False)
    settings = load_settings(config_path=config_path)
    assert settings.ai_provider == "anthropic"
    assert settings.ai_api_key == "env-key"
