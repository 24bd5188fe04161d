import httpx
import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from seo_orchestrator.gateway import ProviderError
from tests.fakes import (
    DETAIL_MARKER,
    PAGE_MARKER,
    SITEWIDE_MARKER,
    SKELETON_MARKER,
    SUMMARY_MARKER,
    FakeGateway,
    sample_details,
    sample_page_analysis,
    sample_sitewide,
    sample_skeleton,
    sample_summary,
)


def _full_run_gateway(**overrides):
    responses = {
        SITEWIDE_MARKER: sample_sitewide(),
        PAGE_MARKER: sample_page_analysis(),
        SKELETON_MARKER: sample_skeleton(1, 2),
        DETAIL_MARKER: sample_details("Task"),
        SUMMARY_MARKER: sample_summary(),
    }
    responses.update(overrides)
    return FakeGateway(responses)


async def _post(app, path, payload):
    async with LifespanManager(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            return await client.post(path, json=payload)


@pytest.mark.asyncio
async def test_analyze_runs_full_pipeline(app_factory):
    app, _, gateway = app_factory(fake_gateway=_full_run_gateway())
    res = await _post(
        app,
        "/api/analyze",
        {"urls": "https://a.test/1\n https://a.test/2 \n\n", "analysis_type": "LOCAL", "location": "Berlin"},
    )
    assert res.status_code == 200
    data = res.json()
    assert data["urls"] == ["https://a.test/1", "https://a.test/2"]
    assert data["analysis_type"] == "local"
    assert len(data["action_plan"][0]["actions"]) == 2
    assert data["executive_summary"]["summaryTitle"] == "Summary"
    assert data["log"][0]["ts"].endswith("Z")


@pytest.mark.asyncio
async def test_analyze_requires_urls(app_factory):
    app, _, gateway = app_factory(fake_gateway=_full_run_gateway())
    res = await _post(app, "/api/analyze", {"urls": []})
    assert res.status_code == 400
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_analyze_requires_api_key(app_factory):
    app, _, _ = app_factory(fake_gateway=_full_run_gateway(), ai_api_key=None)
    res = await _post(app, "/api/analyze", {"urls": ["https://a.test"]})
    assert res.status_code == 400
    assert res.json()["detail"] == "AI API key is not configured."


@pytest.mark.asyncio
async def test_analyze_failure_returns_run_log(app_factory):
    gateway = _full_run_gateway(**{SITEWIDE_MARKER: ProviderError("forbidden", status_code=403)})
    app, _, _ = app_factory(fake_gateway=gateway)
    res = await _post(app, "/api/analyze", {"urls": ["https://a.test"]})
    assert res.status_code == 502
    detail = res.json()["detail"]
    assert detail["message"] == "forbidden"
    assert detail["log"][-1]["status"] == "error"


@pytest.mark.asyncio
async def test_action_plan_route_returns_plan_and_log(app_factory):
    app, _, _ = app_factory(fake_gateway=_full_run_gateway())
    res = await _post(
        app,
        "/api/action-plan",
        {"sitewide_analysis": sample_sitewide(), "seo_analysis": sample_page_analysis()},
    )
    assert res.status_code == 200
    data = res.json()
    assert data["actionPlan"][0]["actions"][1]["id"] == "d1-a2"
    assert "Generating details for task 2 of 2..." in data["log"]


@pytest.mark.asyncio
async def test_action_plan_route_maps_parse_failure_to_502(app_factory):
    app, _, _ = app_factory(fake_gateway=_full_run_gateway(**{SKELETON_MARKER: "nothing useful"}))
    res = await _post(
        app,
        "/api/action-plan",
        {"sitewide_analysis": sample_sitewide(), "seo_analysis": sample_page_analysis()},
    )
    assert res.status_code == 502
    assert res.json()["detail"]["type"] == "JsonParsingError"


@pytest.mark.asyncio
async def test_action_plan_route_maps_exhausted_timeouts_to_502(app_factory):
    gateway = _full_run_gateway(**{SKELETON_MARKER: httpx.ReadTimeout("timed out")})
    app, _, _ = app_factory(fake_gateway=gateway)
    res = await _post(
        app,
        "/api/action-plan",
        {"sitewide_analysis": sample_sitewide(), "seo_analysis": sample_page_analysis()},
    )
    assert res.status_code == 502
    assert res.json()["detail"]["type"] == "ReadTimeout"
    assert len(gateway.calls_for(SKELETON_MARKER)) == 5


@pytest.mark.asyncio
async def test_validate_key_route_merges_request_with_settings(app_factory):
    gateway = FakeGateway({"Reply with one word.": "ok"})
    app, _, _ = app_factory(fake_gateway=gateway)
    res = await _post(app, "/api/validate-key", {"provider": "anthropic", "api_key": "other"})
    assert res.status_code == 200
    assert res.json() == {"success": True, "message": None}
    config = gateway.calls[0]["config"]
    assert config.provider == "anthropic"
    assert config.api_key == "other"
