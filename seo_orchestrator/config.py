import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from dotenv import load_dotenv

from .schemas import AiConfig, AiProvider

CONFIG_PATH = Path("config.json")
ENV_OVERRIDE_KEY = "SEO_ENV_OVERRIDES_CONFIG"
ENV_OVERRIDE_TRUE = {"1", "true", "yes", "on"}


class RetryConfig(BaseModel):
    max_attempts: int = 5
    base_delay_s: float = 2.0
    max_jitter_s: float = 1.0


class ConcurrencyConfig(BaseModel):
    detail_concurrency: int = Field(default=5, ge=1)
    analysis_concurrency: int = Field(default=5, ge=1)
    analysis_chunk_size: int = Field(default=15, ge=1)
    max_urls: int = Field(default=200, ge=1)


class AppSettings(BaseModel):
    ai_provider: AiProvider = "gemini"
    ai_api_key: Optional[str] = None
    ai_model: Optional[str] = None
    ai_models: List[str] = Field(default_factory=list)

    request_timeout_s: float = 120.0
    validation_timeout_s: float = 15.0
    detail_max_tokens: int = 8192
    host: str = "0.0.0.0"
    port: int = 8000

    retry: RetryConfig = Field(default_factory=RetryConfig)
    concurrency: ConcurrencyConfig = Field(default_factory=ConcurrencyConfig)

    def ai_config(self) -> AiConfig:
        return AiConfig(
            provider=self.ai_provider,
            api_key=self.ai_api_key or "",
            model=self.ai_model,
            models=list(self.ai_models),
        )

    def to_safe_dict(self) -> dict:
        data = self.model_dump()
        if data.get("ai_api_key"):
            data["ai_api_key"] = "********"
        return data

    model_config = {"protected_namespaces": ()}


def _load_from_env() -> dict:
    load_dotenv()
    env_map = {
        "ai_provider": os.getenv("SEO_AI_PROVIDER"),
        "ai_api_key": os.getenv("SEO_AI_API_KEY"),
        "ai_model": os.getenv("SEO_AI_MODEL"),
        "ai_models": os.getenv("SEO_AI_MODELS"),
        "request_timeout_s": os.getenv("SEO_REQUEST_TIMEOUT_S"),
        "host": os.getenv("HOST"),
        "port": os.getenv("PORT"),
    }
    cleaned = {k: v for k, v in env_map.items() if v not in (None, "")}
    if "ai_provider" in cleaned:
        cleaned["ai_provider"] = str(cleaned["ai_provider"]).strip().lower()
    if "ai_models" in cleaned:
        cleaned["ai_models"] = [m.strip() for m in str(cleaned["ai_models"]).split(",") if m.strip()]
    if "request_timeout_s" in cleaned:
        cleaned["request_timeout_s"] = float(cleaned["request_timeout_s"])
    if "port" in cleaned:
        cleaned["port"] = int(cleaned["port"])
    return cleaned


def _env_overrides_config() -> bool:
    return str(os.getenv(ENV_OVERRIDE_KEY, "")).strip().lower() in ENV_OVERRIDE_TRUE


def load_settings(config_path: Optional[Path] = None) -> AppSettings:
    env_data = _load_from_env()
    path = config_path or CONFIG_PATH
    file_data: Dict[str, Any] = {}
    if path.exists():
        try:
            file_data = json.loads(path.read_text())
        except ValueError:
            file_data = {}
    # Config wins by default; allow env overrides only when explicitly enabled.
    if _env_overrides_config():
        merged = {**file_data, **env_data}
    else:
        merged = {**env_data, **file_data}
    if not merged.get("ai_api_key") and env_data.get("ai_api_key"):
        merged["ai_api_key"] = env_data["ai_api_key"]
    return AppSettings(**merged)


def save_settings(settings: AppSettings, config_path: Optional[Path] = None) -> None:
    path = config_path or CONFIG_PATH
    path.write_text(settings.model_dump_json(indent=2))
