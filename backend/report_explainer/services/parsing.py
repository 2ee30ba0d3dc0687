"""JSON extraction from free-text model output."""

from __future__ import annotations

import json
import re
from typing import Any

_FENCED_BLOCK = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)```")


class MalformedOutputError(Exception):
    """Raised when model output does not contain a parseable JSON object."""


def extract_json_object(text: str) -> dict[str, Any]:
    """Return the JSON object embedded in model output.

    A fenced ```json block wins; otherwise the whole body is parsed. If the
    body carries a preamble or postscript, the outermost ``{...}`` span is
    tried as a last resort.
    """
    match = _FENCED_BLOCK.search(text or "")
    candidate = (match.group(1) if match else text or "").strip()

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError:
        start, end = candidate.find("{"), candidate.rfind("}")
        if start == -1 or end <= start:
            raise MalformedOutputError("No JSON object found in model output")
        try:
            parsed = json.loads(candidate[start : end + 1])
        except json.JSONDecodeError as e:
            raise MalformedOutputError(f"Invalid JSON in model output: {e}") from e

    if not isinstance(parsed, dict):
        raise MalformedOutputError(
            f"Expected a JSON object, got {type(parsed).__name__}"
        )
    return parsed
