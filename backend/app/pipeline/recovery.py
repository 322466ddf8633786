from __future__ import annotations

import json
import re
from typing import Any, Dict

INVALID_JSON_ERROR = "Invalid JSON format"

_LEADING_FENCE = re.compile(r"```json\n?")
_FENCE = "```"


def _reject_constant(name: str) -> Any:
    # NaN/Infinity would not survive strict JSON serialization of the response
    raise ValueError(f"non-standard JSON constant: {name}")


def _loads(text: str) -> Any:
    # RecursionError on runaway nesting is treated like any other parse failure
    return json.loads(text, parse_constant=_reject_constant)


def strip_code_fence(text: str) -> str:
    """Remove the first ```json marker (and one newline after it), then the first remaining ```."""
    text = _LEADING_FENCE.sub("", text, count=1)
    return text.replace(_FENCE, "", 1)


def fallback_record(raw: str) -> Dict[str, Any]:
    return {"error": INVALID_JSON_ERROR, "raw": raw}


def is_fallback_record(record: Any) -> bool:
    return isinstance(record, dict) and record.get("error") == INVALID_JSON_ERROR and "raw" in record


def recover_record(text: str) -> Any:
    """Best-effort recovery of a JSON value from free-form model output.

    Steps:
    1) Strip an optional code fence.
    2) Parse the remainder as JSON.
    3) Parse the span from the first '{' to the last '}'.
    4) Give up and return the fallback record carrying the original text.

    Never raises; an empty string ends up as the fallback record.
    """
    raw = text if isinstance(text, str) else ("" if text is None else str(text))
    cleaned = strip_code_fence(raw)
    try:
        return _loads(cleaned)
    except (ValueError, RecursionError):
        pass

    first = cleaned.find("{")
    last = cleaned.rfind("}")
    if first != -1 and last != -1 and last > first:
        try:
            return _loads(cleaned[first : last + 1])
        except (ValueError, RecursionError):
            pass
    return fallback_record(raw)
