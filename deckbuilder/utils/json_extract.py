"""Tolerant JSON extraction from LLM replies.

LLM output is untrusted text: the payload may sit inside a markdown code
fence, be surrounded by prose, or use oddly cased keys.  These helpers
never raise.  They return ``None`` when no usable payload is found and
leave the fallback decision to the caller.

Extraction order:
    1. If a ```json fence is present, only its body is considered.
    2. The first balanced ``{...}`` (or ``[...]``) block is located with a
       string-aware bracket scan, so braces inside quoted strings do not
       confuse the match.
    3. Only that substring is handed to :func:`json.loads`.
"""

from __future__ import annotations

import json
import re
from typing import Any

import structlog

from deckbuilder.utils.logging import get_logger

_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)

_logger: structlog.BoundLogger = get_logger(__name__)


def find_balanced_block(text: str, open_char: str = "{", close_char: str = "}") -> str | None:
    """Return the first balanced ``open_char ... close_char`` substring.

    Characters inside JSON string literals (including escaped quotes) are
    skipped while counting depth.  Returns ``None`` if no opening bracket
    exists or it is never closed.
    """
    start = text.find(open_char)
    if start == -1:
        return None

    depth = 0
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
            depth += 1
        elif ch == close_char:
            depth -= 1
            if depth == 0:
                return text[start : idx + 1]
    return None


def _strip_fence(text: str) -> str:
    fence_match = _JSON_FENCE_RE.search(text)
    if fence_match:
        return fence_match.group(1).strip()
    return text.strip()


def lower_keys(value: Any) -> Any:
    """Recursively lowercase every dict key so field lookup is case-insensitive."""
    if isinstance(value, dict):
        return {str(k).lower(): lower_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [lower_keys(v) for v in value]
    return value


def extract_json_object(response: str) -> dict[str, Any] | None:
    """Extract the first JSON object from *response*, keys lowercased.

    Parameters
    ----------
    response:
        Raw LLM response text.

    Returns
    -------
    dict | None
        The parsed object, or ``None`` if nothing parseable was found.
    """
    if not response:
        return None
    block = find_balanced_block(_strip_fence(response), "{", "}")
    if block is None:
        _logger.warning("json_object_not_found", response_preview=response[:200])
        return None
    try:
        parsed = json.loads(block)
    except json.JSONDecodeError as exc:
        _logger.warning(
            "json_object_parse_failed",
            error=str(exc),
            response_preview=response[:200],
        )
        return None
    if not isinstance(parsed, dict):
        return None
    return lower_keys(parsed)


def extract_json_array(response: str) -> list[Any] | None:
    """Extract the first JSON array from *response*.

    A reply that only holds an object wrapping an array (e.g.
    ``{"cards": [...]}``) yields that array.

    Returns
    -------
    list | None
        The parsed array, or ``None`` if nothing parseable was found.
    """
    if not response:
        return None
    text = _strip_fence(response)

    block = find_balanced_block(text, "[", "]")
    if block is not None:
        try:
            parsed = json.loads(block)
        except json.JSONDecodeError as exc:
            _logger.warning(
                "json_array_parse_failed",
                error=str(exc),
                response_preview=response[:200],
            )
        else:
            if isinstance(parsed, list):
                return parsed

    wrapper = extract_json_object(text)
    if wrapper:
        for value in wrapper.values():
            if isinstance(value, list):
                return value
    return None
