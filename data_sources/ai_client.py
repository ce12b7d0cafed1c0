"""
Generative AI client
Thin wrapper over an OpenAI-compatible chat completions API plus helpers
for pulling JSON out of free-form model output
"""

import json
import os
import re
import threading
from typing import Any, Dict, List, Optional

from openai import OpenAI, OpenAIError

from logging_config import get_logger, log_api_call
from .error_handling import APIError

logger = get_logger(__name__)

DEFAULT_SEARCH_MODEL = "gpt-4o"
DEFAULT_LIGHT_MODEL = "gpt-4o-mini"

_client: Optional[OpenAI] = None
_init_error: Optional[str] = None
_initialized = False
_init_lock = threading.Lock()

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def _initialize() -> None:
    global _client, _init_error, _initialized

    with _init_lock:
        if _initialized:
            return

        api_key = os.getenv("AI_API_KEY") or os.getenv("OPENAI_API_KEY")
        if not api_key:
            _init_error = "AI service is not configured. Missing AI_API_KEY environment variable."
            logger.warning(_init_error)
            _initialized = True
            return

        try:
            _client = OpenAI(api_key=api_key, base_url=os.getenv("AI_BASE_URL") or None)
        except OpenAIError as e:
            logger.error(f"Failed to initialize AI client: {e}")
            _init_error = "Failed to initialize AI service."
        _initialized = True


def reset_client() -> None:
    """Forget the current client so the next call re-reads the environment."""
    global _client, _init_error, _initialized
    with _init_lock:
        _client = None
        _init_error = None
        _initialized = False


def get_client() -> Optional[OpenAI]:
    _initialize()
    return _client


def is_ai_available() -> bool:
    return get_client() is not None


def get_ai_error() -> Optional[str]:
    _initialize()
    return _init_error


def search_model() -> str:
    return os.getenv("AI_SEARCH_MODEL", DEFAULT_SEARCH_MODEL)


def light_model() -> str:
    return os.getenv("AI_LIGHT_MODEL", DEFAULT_LIGHT_MODEL)


def generate_text(messages: List[Dict[str, str]], model: Optional[str] = None,
                  temperature: Optional[float] = None) -> str:
    """
    Run a chat completion and return the assistant text.

    Args:
        messages: Chat messages ({"role", "content"}), history included
        model: Model name (defaults to the search model)
        temperature: Optional sampling temperature

    Raises:
        APIError: AI unavailable, upstream failure or empty output
    """
    client = get_client()
    if client is None:
        raise APIError(get_ai_error() or "AI service is not available", "ai")

    model = model or search_model()
    log_api_call(logger, "ai", "chat.completions", operation=model)

    kwargs: Dict[str, Any] = {"model": model, "messages": messages}
    if temperature is not None:
        kwargs["temperature"] = temperature

    try:
        response = client.chat.completions.create(**kwargs)
    except OpenAIError as e:
        raise APIError(str(e), "ai", getattr(e, "status_code", None)) from e

    text = None
    if response.choices:
        text = response.choices[0].message.content
    if not text or not text.strip():
        raise APIError("No text content received from AI", "ai")
    return text


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json / ``` fence and a trailing ``` fence."""
    cleaned = text.strip()
    cleaned = re.sub(r"^```(?:json)?\s*", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"\s*```$", "", cleaned)
    return cleaned.strip()


def _balanced_segment(text: str, start: int) -> Optional[str]:
    """Return text[start:end] for the bracket pair opening at start, honouring strings."""
    open_char = text[start]
    close_char = "]" if open_char == "[" else "}"
    depth = 0
    in_string = False
    escaped = False

    for i in range(start, len(text)):
        ch = text[i]
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
            depth += 1
        elif ch == close_char:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def extract_json_text(text: str) -> str:
    """
    Find the JSON document inside model output.

    A fenced code block wins; otherwise the first balanced array or object,
    whichever opens first.

    Raises:
        ValueError: nothing that looks like JSON was found
    """
    if not text:
        raise ValueError("Empty AI response")

    match = _FENCED_BLOCK.search(text)
    if match:
        candidate = match.group(1).strip()
    else:
        starts = [i for i in (text.find("["), text.find("{")) if i != -1]
        if not starts:
            raise ValueError("No JSON found in AI response")
        candidate = _balanced_segment(text, min(starts))
        if candidate is None:
            raise ValueError("Unbalanced JSON in AI response")

    if not candidate.startswith(("[", "{")):
        raise ValueError("Extracted text is not JSON")
    return candidate


def parse_json_response(text: str) -> Any:
    """extract_json_text + json.loads; raises ValueError on failure."""
    return json.loads(extract_json_text(text))
