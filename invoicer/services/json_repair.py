"""
Best-effort recovery of a JSON value from noisy LLM output.

Models are asked for bare JSON but still wrap answers in markdown fences,
prefix them with prose or append a friendly sign-off. The attempts below run
from cheapest to most permissive and stop at the first successful parse.
"""

import json
import re
from typing import Any

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\n(.*?)\n```$", re.MULTILINE | re.DOTALL)
_CLOSERS = {"{": "}", "[": "]"}


def strip_code_fence(text: str) -> str:
    """Unwrap the first fenced block (```json ... ```) and trim whitespace."""
    return _FENCE_RE.sub(r"\1", text, count=1).strip()


def _try_parse(candidate: str) -> Any | None:
    try:
        return json.loads(candidate)
    except ValueError:
        return None


def _first_opening(text: str) -> int:
    positions = [pos for pos in (text.find("{"), text.find("[")) if pos != -1]
    return min(positions) if positions else -1


def _balanced_block(text: str, start: int) -> str | None:
    """
    Return text[start:] up to the delimiter that closes text[start], or None.

    Only the opening delimiter's own type is counted. Delimiters inside JSON
    string literals are ignored.
    """
    opener = text[start]
    closer = _CLOSERS[opener]
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
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def repair_json(text: str | None) -> dict | list | None:
    """
    Recover a JSON object or array from ``text``.

    Returns None when no JSON value can be found. Callers treat None as a hard
    failure for that input; re-sending the same prompt unchanged is pointless.
    """
    if not text:
        return None

    cleaned = strip_code_fence(text)

    # 1) Already clean
    if cleaned.startswith(("{", "[")):
        value = _try_parse(cleaned)
        if isinstance(value, (dict, list)):
            return value

    # 2) First balanced block after any leading prose
    start = _first_opening(cleaned)
    if start == -1:
        return None

    block = _balanced_block(cleaned, start)
    if block is not None:
        value = _try_parse(block)
        if isinstance(value, (dict, list)):
            return value

    # 3) Everything between the first opener and the last closer
    end = max(cleaned.rfind("}"), cleaned.rfind("]"))
    if end > start:
        trimmed = cleaned[start:end + 1]
        if trimmed[-1] == _CLOSERS[trimmed[0]]:
            value = _try_parse(trimmed)
            if isinstance(value, (dict, list)):
                return value

    return None
