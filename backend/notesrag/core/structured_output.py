"""
Parse JSON that a chat model was asked to produce as free text.

Models wrap JSON in ```json fences, prepend chatter or stop mid-object;
every failure surfaces as GenerationFormatError instead of a bare
JSONDecodeError deep inside a route.

The answer path streams free text and never calls this; it is the entry
point for callers that prompt a model in JSON mode.
"""

import json
import logging
from typing import Type, TypeVar

from pydantic import BaseModel, ValidationError

from notesrag.core.exceptions import GenerationFormatError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def extract_json_block(raw: str) -> str:
    """The first ```json fenced block, else the outermost {...} span."""
    if "```json" in raw:
        part = raw.split("```json", 1)[1]
        if "```" in part:
            return part.split("```", 1)[0].strip()
    start = raw.find("{")
    end = raw.rfind("}")
    if start == -1 or end <= start:
        raise GenerationFormatError(raw, "no JSON object found")
    return raw[start:end + 1]


def parse_structured_output(raw: str, model: Type[M] | None = None) -> dict | M:
    """Decode model output as a JSON object, optionally validated into ``model``.

    Raises:
        GenerationFormatError: If no object can be decoded or validation fails.
    """
    block = extract_json_block(raw)
    try:
        data = json.loads(block)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse JSON block: {e}")
        raise GenerationFormatError(raw, f"invalid JSON: {e.msg}") from e
    if not isinstance(data, dict):
        raise GenerationFormatError(raw, f"expected a JSON object, got {type(data).__name__}")
    if model is None:
        return data
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise GenerationFormatError(raw, f"schema mismatch: {e.error_count()} error(s)") from e
