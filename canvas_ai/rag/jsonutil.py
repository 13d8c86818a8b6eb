"""JSON extraction from free-form model output."""

import json
import re
from typing import Any

from canvas_ai.rag.errors import ParseError

_CODE_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def extract_json_object(raw: str) -> dict[str, Any]:
    """Pull the JSON object out of a model response.

    Code fences and surrounding prose are ignored; the text between the first
    ``{`` and the last ``}`` is parsed.

    Raises:
        ParseError: If no JSON object can be parsed
    """
    text = _CODE_FENCE_RE.sub("", raw or "").strip()
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise ParseError("No JSON object in model response", raw=raw)

    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON in model response: {e.msg}", raw=raw) from e

    if not isinstance(data, dict):
        raise ParseError("Model response is not a JSON object", raw=raw)
    return data
