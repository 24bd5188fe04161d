import json
import logging
import re
from typing import Any, Callable, Optional


logger = logging.getLogger("uvicorn.error")

Validator = Callable[[Any], bool]

_FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
REFUSAL_MARKERS = ("i apologize", "cannot", "api key not valid", "rate limit")
_PREVIEW_CHARS = 100


class JsonParsingError(ValueError):
    """Raised when an AI response does not contain a usable JSON payload."""

    def __init__(self, message: str, context: str = "") -> None:
        super().__init__(message)
        self.context = context


class AiRefusalError(JsonParsingError):
    """The response carried no JSON and reads like a refusal or provider error."""


def _loads_or_none(candidate: str) -> Optional[str]:
    try:
        json.loads(candidate)
    except (ValueError, RecursionError):
        return None
    return candidate


def _scan_balanced(text: str) -> Optional[str]:
    first_brace = text.find("{")
    first_bracket = text.find("[")
    open_char, close_char, start = "{", "}", first_brace
    if first_bracket != -1 and (first_brace == -1 or first_bracket < first_brace):
        open_char, close_char, start = "[", "]", first_bracket
    if start == -1:
        return None

    depth = 0
    candidate_start = -1
    in_string = False
    escaped = False
    for idx in range(start, len(text)):
        ch = text[idx]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == open_char:
            if depth == 0:
                candidate_start = idx
            depth += 1
        elif ch == close_char and candidate_start != -1:
            depth -= 1
            if depth == 0:
                parsed = _loads_or_none(text[candidate_start : idx + 1])
                if parsed is not None:
                    return parsed
                candidate_start = -1
    return None


def extract_json_from_string(text: str) -> Optional[str]:
    """Return the first substring of text that parses as JSON, or None.

    A fenced ```json block wins when its body parses. Otherwise the text is
    scanned for balanced objects (or arrays, whichever opens first) and each
    balanced candidate is tried in turn, so example snippets that fail to
    parse are skipped.
    """
    match = _FENCED_BLOCK_RE.search(text)
    if match and match.group(1):
        fenced = _loads_or_none(match.group(1).strip())
        if fenced is not None:
            return fenced
    return _scan_balanced(text)


def _accepts(validate: Validator, value: Any) -> bool:
    try:
        return bool(validate(value))
    except Exception as exc:
        logger.debug("Validator rejected payload: %s", exc)
        return False


def robust_parse(text: Any, validate: Validator, context: str) -> Any:
    if not isinstance(text, str) or not text.strip():
        raise JsonParsingError(f"The AI returned an empty or invalid response for {context}.", context)

    candidate = extract_json_from_string(text)
    if candidate is not None:
        data = json.loads(candidate)
        if _accepts(validate, data):
            return data
        if isinstance(data, dict):
            for key, value in data.items():
                if _accepts(validate, value):
                    logger.warning('Resilient parsing: found valid data under key "%s" for %s.', key, context)
                    return value
        raise JsonParsingError(
            f"The AI returned a JSON object with a missing or incorrect structure for {context}.",
            context,
        )

    preview = text[:_PREVIEW_CHARS]
    lowered = text.lower()
    if any(marker in lowered for marker in REFUSAL_MARKERS):
        raise AiRefusalError(f'The AI returned a blocking error for {context}: "{preview}..."', context)
    raise JsonParsingError(
        f'Could not find a valid JSON object in the AI\'s response for {context}. '
        f'The response started with: "{preview}..."',
        context,
    )
