import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from .race import AggregateProviderError, first_success
from .schemas import AiConfig, AiResponse, CallOptions, GroundingSource


logger = logging.getLogger("uvicorn.error")

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
OPENAI_BASE_URL = "https://api.openai.com/v1"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"
ANTHROPIC_DEFAULT_MAX_TOKENS = 4096

DEFAULT_MODELS = {
    "gemini": "gemini-2.5-flash",
    "openai": "gpt-4o",
    "openrouter": "openai/gpt-4o",
    "anthropic": "claude-3-5-sonnet-20240620",
}
OPENROUTER_HEADERS = {
    "HTTP-Referer": "https://orchestrator.ai",
    "X-Title": "Orchestrator AI",
}


class ProviderError(RuntimeError):
    """A provider answered with an HTTP error status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        provider: str = "",
        model: str = "",
        detail: str = "",
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider
        self.model = model
        self.detail = detail


class UnsupportedProviderError(ValueError):
    pass


def _normalize_error_text(detail: str) -> str:
    text = detail or ""
    for _ in range(2):
        try:
            parsed = json.loads(text)
        except ValueError:
            break
        if isinstance(parsed, dict):
            found = False
            for key in ("error", "detail", "message"):
                val = parsed.get(key)
                if isinstance(val, dict):
                    message = str(val.get("message") or "").strip()
                    status = str(val.get("status") or val.get("type") or "").strip()
                    if message or status:
                        text = f"{message} ({status})" if message and status else (message or status)
                        found = True
                        break
                if isinstance(val, str) and val.strip():
                    text = val
                    found = True
                    break
            if not found:
                break
        elif isinstance(parsed, str):
            text = parsed
        else:
            break
    return text


def _extract_error_detail(response: httpx.Response) -> str:
    try:
        return response.text
    except (httpx.ResponseNotRead, UnicodeDecodeError):
        return ""


def _dedupe_sources(sources: List[GroundingSource]) -> List[GroundingSource]:
    seen = set()
    unique: List[GroundingSource] = []
    for source in sources:
        if not source.uri or source.uri in seen:
            continue
        seen.add(source.uri)
        unique.append(source)
    return unique


Handler = Callable[[AiConfig, str, str, str, CallOptions], Awaitable[AiResponse]]


class AiGateway:
    """One request/response contract over every supported provider."""

    def __init__(self, timeout: float = 120.0) -> None:
        # Concurrent detail calls share one connection pool.
        self.client = httpx.AsyncClient(
            timeout=timeout,
            limits=httpx.Limits(max_connections=32, max_keepalive_connections=16),
        )

    def _handler(self, provider: str) -> Handler:
        handlers: Dict[str, Handler] = {
            "gemini": self._call_gemini,
            "openai": self._call_openai,
            "openrouter": self._call_openrouter,
            "anthropic": self._call_anthropic,
        }
        handler = handlers.get(provider)
        if handler is None:
            raise UnsupportedProviderError(f"Unsupported AI provider: {provider}")
        return handler

    async def call(
        self,
        config: AiConfig,
        system_instruction: str,
        user_prompt: str,
        options: Optional[CallOptions] = None,
    ) -> AiResponse:
        options = options or CallOptions()
        handler = self._handler(config.provider)
        models = config.candidate_models(DEFAULT_MODELS[config.provider])
        if len(models) == 1:
            return await handler(config, models[0], system_instruction, user_prompt, options)
        try:
            return await first_success(
                [handler(config, model, system_instruction, user_prompt, options) for model in models],
                labels=models,
            )
        except AggregateProviderError as exc:
            logger.error("All %s models failed: %s", config.provider, exc.breakdown())
            message = "All concurrent models failed. Errors: " + "; ".join(exc.breakdown())
            raise AggregateProviderError(exc.errors, message, labels=models) from exc

    async def _post(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Dict[str, str],
        *,
        provider: str,
        model: str,
        options: CallOptions,
    ) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"json": payload, "headers": headers}
        if options.timeout_s:
            kwargs["timeout"] = options.timeout_s
        resp = await self.client.post(url, **kwargs)
        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = _normalize_error_text(_extract_error_detail(exc.response))
            raise ProviderError(
                f"{provider} request for {model} failed ({exc.response.status_code}): {detail}",
                status_code=exc.response.status_code,
                provider=provider,
                model=model,
                detail=detail,
            ) from exc
        return resp.json()

    async def _call_gemini(
        self,
        config: AiConfig,
        model: str,
        system_instruction: str,
        user_prompt: str,
        options: CallOptions,
    ) -> AiResponse:
        generation_config: Dict[str, Any] = {}
        payload: Dict[str, Any] = {
            "systemInstruction": {"parts": [{"text": system_instruction}]},
            "contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
        }
        # Search grounding and a JSON mime type cannot be combined.
        if options.use_search_grounding:
            payload["tools"] = [{"google_search": {}}]
        elif options.json_mode:
            generation_config["responseMimeType"] = "application/json"
        if options.max_tokens:
            generation_config["maxOutputTokens"] = options.max_tokens
            if model == "gemini-2.5-flash":
                generation_config["thinkingConfig"] = {"thinkingBudget": options.max_tokens // 2}
        if generation_config:
            payload["generationConfig"] = generation_config
        data = await self._post(
            f"{GEMINI_BASE_URL}/models/{model}:generateContent",
            payload,
            {"x-goog-api-key": config.api_key, "Content-Type": "application/json"},
            provider="gemini",
            model=model,
            options=options,
        )
        candidates = data.get("candidates") or []
        first = candidates[0] if candidates else {}
        parts = (first.get("content") or {}).get("parts") or []
        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict) and not p.get("thought"))
        chunks = (first.get("groundingMetadata") or {}).get("groundingChunks") or []
        sources = [
            GroundingSource(uri=web["uri"], title=web.get("title") or "")
            for web in (chunk.get("web") for chunk in chunks if isinstance(chunk, dict))
            if isinstance(web, dict) and web.get("uri")
        ]
        return AiResponse(text=text, sources=_dedupe_sources(sources), model_used=model)

    async def _chat_completion(
        self,
        base_url: str,
        headers: Dict[str, str],
        *,
        provider: str,
        model: str,
        system_instruction: str,
        user_prompt: str,
        options: CallOptions,
    ) -> AiResponse:
        payload: Dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_instruction},
                {"role": "user", "content": user_prompt},
            ],
        }
        if options.json_mode:
            payload["response_format"] = {"type": "json_object"}
        if options.max_tokens:
            payload["max_tokens"] = options.max_tokens
        data = await self._post(
            f"{base_url}/chat/completions",
            payload,
            headers,
            provider=provider,
            model=model,
            options=options,
        )
        choices = data.get("choices") or []
        message = (choices[0].get("message") or {}) if choices else {}
        return AiResponse(text=message.get("content") or "", model_used=model)

    async def _call_openai(
        self,
        config: AiConfig,
        model: str,
        system_instruction: str,
        user_prompt: str,
        options: CallOptions,
    ) -> AiResponse:
        return await self._chat_completion(
            OPENAI_BASE_URL,
            {"Authorization": f"Bearer {config.api_key}"},
            provider="openai",
            model=model,
            system_instruction=system_instruction,
            user_prompt=user_prompt,
            options=options,
        )

    async def _call_openrouter(
        self,
        config: AiConfig,
        model: str,
        system_instruction: str,
        user_prompt: str,
        options: CallOptions,
    ) -> AiResponse:
        return await self._chat_completion(
            OPENROUTER_BASE_URL,
            {"Authorization": f"Bearer {config.api_key}", **OPENROUTER_HEADERS},
            provider="openrouter",
            model=model,
            system_instruction=system_instruction,
            user_prompt=user_prompt,
            options=options,
        )

    async def _call_anthropic(
        self,
        config: AiConfig,
        model: str,
        system_instruction: str,
        user_prompt: str,
        options: CallOptions,
    ) -> AiResponse:
        payload = {
            "model": model,
            "system": system_instruction,
            "messages": [{"role": "user", "content": user_prompt}],
            "max_tokens": options.max_tokens or ANTHROPIC_DEFAULT_MAX_TOKENS,
        }
        data = await self._post(
            f"{ANTHROPIC_BASE_URL}/messages",
            payload,
            {"x-api-key": config.api_key, "anthropic-version": ANTHROPIC_VERSION},
            provider="anthropic",
            model=model,
            options=options,
        )
        blocks = data.get("content") or []
        text = "".join(b.get("text", "") for b in blocks if isinstance(b, dict) and "text" in b)
        return AiResponse(text=text, model_used=model)

    async def close(self) -> None:
        if not self.client.is_closed:
            await self.client.aclose()
