"""Recover a structured JSON value from free-form model text.

Models wrap JSON in prose, markdown fences or both. :func:`extract_structured`
tries a fixed sequence of increasingly loose strategies and returns the first
object or array that parses. It never raises: when nothing parses it returns
an empty dict and the caller falls back to defaults.

Known limitation: the bounded-substring strategies locate delimiters without
tracking string literals, so a ``{`` or ``}`` inside quoted text can make them
pick the wrong span. Later strategies and the empty-dict fallback absorb this.
"""

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)\s*```", re.IGNORECASE)
_FENCE_MARKER = re.compile(r"```(?:json)?", re.IGNORECASE)

_CLOSING = {"{": "}", "[": "]"}


def _loads_structured(candidate: str) -> dict | list | None:
    """Parse ``candidate`` and keep the result only if it is an object or array."""
    candidate = candidate.strip()
    if not candidate:
        return None
    try:
        value = json.loads(candidate)
    except (ValueError, RecursionError):
        return None
    return value if isinstance(value, (dict, list)) else None


def _first_opening(text: str) -> int:
    positions = [i for i in (text.find("{"), text.find("[")) if i != -1]
    return min(positions) if positions else -1


def extract_structured(text: Any) -> Any:
    """Extract the first recoverable JSON object or array from ``text``.

    Strategies, in order:

    1. locate the first ``{`` or ``[``;
    2. parse the interior of a fenced block tagged ``json``;
    3. parse from the first opening delimiter to the last closing delimiter of
       the same kind;
    4. strip residual fence markers and parse what remains;
    5. parse between the first ``{`` and the last ``}``;
    6. give up and return ``{}``.

    Returns:
        The parsed dict or list, or an empty dict when nothing parsed.
    """
    if not isinstance(text, str) or not text.strip():
        return {}

    start = _first_opening(text)

    fenced = _FENCED_JSON.search(text)
    if fenced:
        value = _loads_structured(fenced.group(1))
        if value is not None:
            return value
        logger.debug("Fenced JSON block did not parse, trying bounded extraction")

    if start != -1:
        end = text.rfind(_CLOSING[text[start]])
        if end > start:
            value = _loads_structured(text[start : end + 1])
            if value is not None:
                return value

    cleaned = _FENCE_MARKER.sub("", text)
    value = _loads_structured(cleaned)
    if value is not None:
        return value

    first_curly = text.find("{")
    last_curly = text.rfind("}")
    if first_curly != -1 and last_curly > first_curly:
        value = _loads_structured(text[first_curly : last_curly + 1])
        if value is not None:
            return value

    logger.warning(f"No structured value recovered from model response: {text[:200]!r}")
    return {}
