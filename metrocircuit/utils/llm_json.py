"""Helpers for pulling JSON out of free-form LLM responses.

Handles the three shapes models actually return:

1. Clean JSON: ``{"intent": "general"}``
2. Markdown-fenced: ``\\`\\`\\`json\\n{...}\\`\\`\\````
3. JSON embedded in prose: ``Here is the result: [3, 1, 2]``

Both helpers raise :class:`ResponseParseError` so callers can treat a parse
failure exactly like a provider failure.
"""

from __future__ import annotations

import json
import re
from typing import Any

from metrocircuit.utils.errors import ResponseParseError

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)```", re.DOTALL | re.IGNORECASE)


def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or the stripped text."""
    cleaned = text.strip()
    match = _FENCE_RE.search(cleaned)
    if match:
        return match.group(1).strip()
    return cleaned


def _extract_span(text: str, opener: str, closer: str) -> str:
    start = text.find(opener)
    end = text.rfind(closer)
    if start != -1 and end > start:
        return text[start : end + 1]
    return text


def _loads(candidate: str, response: str) -> Any:
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise ResponseParseError(
            f"Malformed JSON in LLM response: {exc.msg} (preview: {response[:120]!r})"
        ) from exc


def parse_json_object(response: str) -> dict[str, Any]:
    """Parse *response* into a JSON object.

    Raises
    ------
    ResponseParseError
        If no JSON object can be decoded.
    """
    if not response or not response.strip():
        raise ResponseParseError("Empty LLM response")
    cleaned = _extract_span(strip_code_fences(response), "{", "}")
    data = _loads(cleaned, response)
    if not isinstance(data, dict):
        raise ResponseParseError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def parse_json_array(response: str) -> list[Any]:
    """Parse *response* into a JSON array.

    Raises
    ------
    ResponseParseError
        If no JSON array can be decoded.
    """
    if not response or not response.strip():
        raise ResponseParseError("Empty LLM response")
    cleaned = _extract_span(strip_code_fences(response), "[", "]")
    data = _loads(cleaned, response)
    if not isinstance(data, list):
        raise ResponseParseError(f"Expected a JSON array, got {type(data).__name__}")
    return data
