"""
Structured Output Parsing

Chat models are asked to answer with a JSON object, but they sometimes wrap
it in prose or a fenced code block. These helpers pull the object out and
validate it against a pydantic model, so every caller gets either a typed
value or a single, well-defined error.
"""

from __future__ import annotations

import json
import re
from typing import Type, TypeVar

from pydantic import BaseModel, ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class StructuredOutputError(ValueError):
    """Raised when model output is not a valid instance of the expected schema."""


def extract_json_object(content: str) -> dict:
    text = _FENCE.sub("", content.strip())

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise StructuredOutputError("No JSON object found in model output.")

    try:
        value = json.loads(text[start : end + 1])
    except json.JSONDecodeError as exc:
        raise StructuredOutputError(f"Invalid JSON in model output: {exc.msg}") from exc

    if not isinstance(value, dict):
        raise StructuredOutputError("Model output JSON is not an object.")
    return value


def parse_model_output(content: str, model: Type[ModelT]) -> ModelT:
    """
    Parse chat completion content into ``model``.

    Raises
    ------
    StructuredOutputError
        If no JSON object can be extracted or it fails validation.
    """
    data = extract_json_object(content)
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise StructuredOutputError(
            f"Model output failed {model.__name__} validation: {exc.error_count()} error(s)"
        ) from exc
