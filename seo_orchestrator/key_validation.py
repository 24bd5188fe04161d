import asyncio
import logging

from .gateway import AiGateway, ProviderError, UnsupportedProviderError
from .race import AggregateProviderError
from .retry import is_timeout_error, status_code_of
from .schemas import AiConfig, CallOptions, KeyValidationResult


logger = logging.getLogger("uvicorn.error")

VALIDATION_PROMPT = "test"


def get_error_message(error: BaseException) -> str:
    """Turn a provider failure into something a user can act on."""
    if isinstance(error, AggregateProviderError):
        return "All configured models failed validation. Please check each model name and your API key."
    status = status_code_of(error)
    message = str(error)
    if isinstance(error, ProviderError) and error.detail:
        message = error.detail
    lower = message.lower()

    if status == 401 or "invalid api key" in lower:
        return "Authentication failed. The API key is incorrect, expired, or not authorized for the requested model."
    if status == 403:
        return "Permission denied. Please check your project/organization permissions."
    if status == 429:
        return "Rate limit exceeded. Please wait a moment or check your plan."
    if "insufficient_quota" in lower or "quota" in lower:
        return "Your account has insufficient quota. Please check your billing."
    if "model_not_found" in lower:
        return "The specified model was not found. Please check the model name."
    if "api key not valid" in lower:
        return "The provided API Key is not valid. Please check and try again."
    if is_timeout_error(error):
        return "Request timed out. Please check your network connection."
    if message:
        return message.split("\n")[0]
    return "An unknown validation error occurred."


async def validate_api_key(
    gateway: AiGateway,
    config: AiConfig,
    timeout_s: float = 15.0,
) -> KeyValidationResult:
    if not config.api_key:
        return KeyValidationResult(success=False, message="API Key cannot be empty.")
    options = CallOptions(max_tokens=1, timeout_s=timeout_s)
    try:
        await asyncio.wait_for(
            gateway.call(config, "Reply with one word.", VALIDATION_PROMPT, options),
            timeout=timeout_s,
        )
    except UnsupportedProviderError as exc:
        return KeyValidationResult(success=False, message=str(exc))
    except Exception as exc:
        logger.warning("API key validation failed for %s: %s", config.provider, exc)
        return KeyValidationResult(success=False, message=get_error_message(exc))
    return KeyValidationResult(success=True)
