"""Schema contracts between the agents and the language model.

Every agent output shape is a pydantic model in `daybook.schemas`. This
module turns a model into the strict JSON Schema inlined in prompts and
sent as `response_format`, and validates raw model text against it.

Validation returns a result value instead of raising: callers decide how to
degrade. `require()` converts a failure into a `ContractError` for call
sites that prefer exceptions.
"""

import json
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from .exceptions import ContractError
from .schemas import JournalImport

T = TypeVar("T", bound=BaseModel)


@dataclass(frozen=True)
class Valid(Generic[T]):
    """Model output that satisfied its contract."""

    value: T
    ok: ClassVar[bool] = True


@dataclass(frozen=True)
class Invalid:
    """Model output that failed its contract."""

    message: str
    errors: list[str] = field(default_factory=list)
    ok: ClassVar[bool] = False


_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL)


def strip_json_fences(text: str) -> str:
    """Strip markdown code fences and leading prose from model JSON output."""
    text = text.strip()
    match = _JSON_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    start = text.find("{")
    end = text.rfind("}")
    if start > 0 and end > start:
        return text[start : end + 1]
    return text


def _strictify(node: Any) -> None:
    """Close every object and mark all of its properties required, in place."""
    if isinstance(node, dict):
        node.pop("default", None)
        properties = node.get("properties")
        if node.get("type") == "object" and isinstance(properties, dict):
            node["additionalProperties"] = False
            node["required"] = list(properties)
        for value in node.values():
            _strictify(value)
    elif isinstance(node, list):
        for item in node:
            _strictify(item)


@lru_cache(maxsize=None)
def strict_json_schema(model: type[BaseModel]) -> dict[str, Any]:
    """Build the strict JSON Schema for a model output shape.

    Optional fields stay nullable but become required, as strict
    schema-constrained decoding expects. The result is cached; do not mutate it.
    """
    schema = model.model_json_schema(by_alias=True)
    _strictify(schema)
    return schema


def render_schema(model: type[BaseModel]) -> str:
    """Serialize the strict schema for inlining in a prompt."""
    return json.dumps(strict_json_schema(model), indent=2)


def _format_errors(exc: ValidationError) -> list[str]:
    lines = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error["loc"]) or "<root>"
        lines.append(f"{loc}: {error['msg']}")
    return lines


def validate(raw: str | None, model: type[T]) -> Valid[T] | Invalid:
    """Parse raw model text and validate it against an output shape."""
    if raw is None or not raw.strip():
        return Invalid("Empty response")

    try:
        data = json.loads(strip_json_fences(raw))
    except json.JSONDecodeError as e:
        return Invalid(f"Invalid JSON in model response: {e}")

    try:
        return Valid(model.model_validate(data))
    except ValidationError as e:
        return Invalid(
            f"Response did not match the {model.__name__} schema",
            _format_errors(e),
        )


def check_category_ids(
    result: JournalImport, valid_ids: Iterable[str]
) -> Valid[JournalImport] | Invalid:
    """Reject the whole import result if any activity uses an unknown category."""
    allowed = set(valid_ids)
    unknown: list[str] = []
    for activity in result.activities:
        if activity.category_id not in allowed and activity.category_id not in unknown:
            unknown.append(activity.category_id)

    if unknown:
        return Invalid(
            f"Invalid category ids: {', '.join(unknown)}",
            [f"valid category ids: {', '.join(sorted(allowed))}"],
        )
    return Valid(result)


def validate_import(
    raw: str | None, valid_ids: Iterable[str]
) -> Valid[JournalImport] | Invalid:
    """Validate an extraction response, including the category id cross-check."""
    result = validate(raw, JournalImport)
    if isinstance(result, Invalid):
        return result
    return check_category_ids(result.value, valid_ids)


def require(result: Valid[T] | Invalid) -> T:
    """Unwrap a validation result, raising `ContractError` on failure."""
    if isinstance(result, Invalid):
        raise ContractError(result.message, result.errors)
    return result.value
