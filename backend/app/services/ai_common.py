import json
import re
from typing import Any

from ..utils.error_handlers import ParseFailure


_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)```")
_INT_RE = re.compile(r"-?\d+")


def strip_code_fence(text: str) -> str:
    """Return the body of the first Markdown code fence, or the text unchanged."""
    raw = (text or "").strip()
    m = _FENCE_RE.search(raw)
    if m:
        return m.group(1).strip()
    return raw


def _first_balanced(raw: str, open_ch: str, close_ch: str) -> str | None:
    """
    Find the first balanced open_ch ... close_ch substring.
    Brackets inside JSON string literals are ignored.
    """
    start = raw.find(open_ch)
    while start != -1:
        depth = 0
        in_str = False
        escaped = False
        for i in range(start, len(raw)):
            ch = raw[i]
            if in_str:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_str = False
                continue
            if ch == '"':
                in_str = True
            elif ch == open_ch:
                depth += 1
            elif ch == close_ch:
                depth -= 1
                if depth == 0:
                    return raw[start : i + 1]
        # Unbalanced from this opener; try the next one.
        start = raw.find(open_ch, start + 1)
    return None


def _extract(text: str, open_ch: str, close_ch: str, kind: type) -> Any:
    raw = strip_code_fence(text)
    if not raw:
        raise ParseFailure("Empty AI response")

    # Fast path: pure JSON
    try:
        obj = json.loads(raw)
        if isinstance(obj, kind):
            return obj
    except ValueError:
        pass

    chunk = _first_balanced(raw, open_ch, close_ch)
    if chunk is None:
        raise ParseFailure(f"No JSON {kind.__name__} found in AI response")
    try:
        obj = json.loads(chunk)
    except ValueError as e:
        raise ParseFailure(f"Malformed JSON in AI response: {e}") from e
    if not isinstance(obj, kind):
        raise ParseFailure(f"AI response JSON is not a {kind.__name__}")
    return obj


def extract_first_json_object(text: str) -> dict:
    """
    Best-effort extraction of the first JSON object from a model response.
    Handles code fences and JSON wrapped in prose.
    """
    return _extract(text, "{", "}", dict)


def extract_first_json_array(text: str) -> list:
    """Same as extract_first_json_object, for array replies."""
    return _extract(text, "[", "]", list)


def parse_score_text(text: str) -> int:
    """
    First integer token in the reply, clamped to [0, 100].
    A JSON object with a "score" field takes precedence over prose numbers.
    """
    raw = strip_code_fence(text)
    try:
        obj = extract_first_json_object(raw)
        if "score" in obj:
            raw = str(obj["score"])
    except ParseFailure:
        pass
    m = _INT_RE.search(raw or "")
    if not m:
        raise ParseFailure("No score found in AI response")
    return clamp_score(int(m.group(0)))


def clamp_score(value: Any) -> int:
    try:
        v = int(round(float(value)))
    except (TypeError, ValueError):
        return 0
    if v < 0:
        return 0
    if v > 100:
        return 100
    return v
