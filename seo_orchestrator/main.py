import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request

from .action_plan import generate_action_plan
from .config import CONFIG_PATH, AppSettings, load_settings, save_settings
from .gateway import AiGateway, ProviderError, UnsupportedProviderError
from .json_tools import JsonParsingError
from .key_validation import validate_api_key
from .race import AggregateProviderError
from .retry import RetryPolicy
from .runner import AnalysisRunError, run_full_analysis
from .schemas import ActionPlanRequest, AiConfig, AnalyzeRequest, ValidateKeyRequest

MASKED_KEY = "********"


def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_gateway(request: Request) -> AiGateway:
    return request.app.state.gateway


def get_retry_policy(request: Request) -> Optional[RetryPolicy]:
    return request.app.state.retry_policy


def get_config_path(request: Request) -> Path:
    return request.app.state.config_path


def _require_ai_config(settings: AppSettings) -> AiConfig:
    if not settings.ai_api_key:
        raise HTTPException(status_code=400, detail="AI API key is not configured.")
    return settings.ai_config()


def _provider_failure(exc: Exception) -> HTTPException:
    detail: Dict[str, Any] = {"message": str(exc), "type": type(exc).__name__}
    if isinstance(exc, AggregateProviderError):
        detail["errors"] = exc.breakdown()
    if isinstance(exc, ProviderError):
        detail["status_code"] = exc.status_code
    return HTTPException(status_code=502, detail=detail)


router = APIRouter()


@router.get("/settings")
async def get_settings_route(settings: AppSettings = Depends(get_settings)):
    return {"settings": settings.to_safe_dict()}


@router.post("/settings")
async def update_settings_route(
    request: Request,
    settings: AppSettings = Depends(get_settings),
    config_path: Path = Depends(get_config_path),
):
    body = await request.json()
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Settings body must be a JSON object.")
    if body.get("ai_api_key") == MASKED_KEY:
        body.pop("ai_api_key")
    try:
        new_settings = AppSettings(**{**settings.model_dump(), **body})
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    save_settings(new_settings, config_path=config_path)
    request.app.state.settings = new_settings
    return {"ok": True, "settings": new_settings.to_safe_dict()}


@router.post("/api/validate-key")
async def validate_key_route(
    payload: ValidateKeyRequest,
    settings: AppSettings = Depends(get_settings),
    gateway: AiGateway = Depends(get_gateway),
):
    base = settings.ai_config()
    config = AiConfig(
        provider=payload.provider or base.provider,
        api_key=payload.api_key if payload.api_key is not None else base.api_key,
        model=payload.model if payload.model is not None else base.model,
        models=payload.models if payload.models is not None else list(base.models),
    )
    result = await validate_api_key(gateway, config, timeout_s=settings.validation_timeout_s)
    return result.model_dump()


@router.post("/api/analyze")
async def analyze_route(
    payload: AnalyzeRequest,
    settings: AppSettings = Depends(get_settings),
    gateway: AiGateway = Depends(get_gateway),
    retry_policy: Optional[RetryPolicy] = Depends(get_retry_policy),
):
    if not payload.urls:
        raise HTTPException(status_code=400, detail="At least one URL is required.")
    ai_config = _require_ai_config(settings)
    try:
        report = await run_full_analysis(
            gateway,
            settings,
            ai_config,
            payload.urls,
            payload.competitor_urls,
            payload.analysis_type,
            payload.location,
            retry_policy=retry_policy,
        )
    except AnalysisRunError as exc:
        log = [entry.model_dump() for entry in exc.log.entries]
        raise HTTPException(status_code=502, detail={"message": str(exc), "log": log})
    return report.model_dump()


@router.post("/api/action-plan")
async def action_plan_route(
    payload: ActionPlanRequest,
    settings: AppSettings = Depends(get_settings),
    gateway: AiGateway = Depends(get_gateway),
    retry_policy: Optional[RetryPolicy] = Depends(get_retry_policy),
):
    ai_config = _require_ai_config(settings)
    log = []
    try:
        plan = await generate_action_plan(
            gateway,
            settings,
            ai_config,
            payload.sitewide_analysis,
            payload.seo_analysis,
            log.append,
            retry_policy=retry_policy,
        )
    except UnsupportedProviderError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except (
        JsonParsingError,
        AggregateProviderError,
        ProviderError,
        httpx.TimeoutException,
        asyncio.TimeoutError,
    ) as exc:
        raise _provider_failure(exc)
    return {"actionPlan": plan, "log": log}


def create_app(
    settings: AppSettings,
    *,
    gateway: Optional[AiGateway] = None,
    retry_policy: Optional[RetryPolicy] = None,
    config_path: Optional[Path] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            await app.state.gateway.close()

    app = FastAPI(title="SEO Orchestrator", lifespan=lifespan)
    app.state.settings = settings
    app.state.gateway = gateway or AiGateway(timeout=settings.request_timeout_s)
    app.state.retry_policy = retry_policy
    app.state.config_path = config_path or CONFIG_PATH
    app.include_router(router)
    return app


app = create_app(load_settings())


if __name__ == "__main__":
    import os
    import uvicorn

    settings = app.state.settings
    reload_enabled = os.getenv("SEO_RELOAD", "").lower() in ("1", "true", "yes", "on")
    try:
        uvicorn.run(
            "seo_orchestrator.main:app",
            host=settings.host,
            port=settings.port,
            reload=reload_enabled,
        )
    except KeyboardInterrupt:
        pass
