from __future__ import annotations

import json
import re
from typing import Any

from .pattern_errors import (
    EmptyResponseError,
    InvalidStructureError,
    MalformedResponseError,
)

_FENCED_JSON_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", flags=re.DOTALL | re.IGNORECASE)


def parse_model_response(text: Any) -> Any:
    """Decode raw model text into a JSON value.

    Distinguishes truncated output (does not end with a closing brace) from
    garbled output (ends correctly but still fails to decode). The split is a
    heuristic for choosing user guidance, not a proof of what went wrong.
    """
    if not isinstance(text, str) or not text.strip():
        raise EmptyResponseError("No response received from the AI model.")

    stripped = _unwrap_code_fence(text.strip())
    if not stripped:
        raise EmptyResponseError("AI model returned an empty code block.")

    try:
        return json.loads(stripped)
    except json.JSONDecodeError as exc:
        kind = (
            MalformedResponseError.GARBLED
            if stripped.endswith("}")
            else MalformedResponseError.TRUNCATED
        )
        raise MalformedResponseError(
            f"AI response is not valid JSON ({kind}): {exc.msg} at position {exc.pos}",
            kind=kind,
        ) from exc


def require_analysis_shape(payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise InvalidStructureError(
            f"AI response must be a JSON object, got {type(payload).__name__}."
        )
    patterns = payload.get("patterns")
    if not isinstance(patterns, list):
        raise InvalidStructureError("AI response field 'patterns' must be a list.")
    return payload


def _unwrap_code_fence(text: str) -> str:
    match = _FENCED_JSON_RE.match(text)
    if not match:
        return text
    return match.group(1).strip()
