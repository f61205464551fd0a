"""Isolate JSON objects from free-form model output and hydrate typed records."""

from __future__ import annotations

import copy
import json
import re
import types
from collections.abc import Mapping, Sequence
from dataclasses import MISSING, fields, is_dataclass
from functools import lru_cache
from typing import Any, Literal, TypeVar, Union, get_args, get_origin, get_type_hints

from pydantic import ValidationError
from pydantic.type_adapter import TypeAdapter

from .errors import InvalidStructuredOutput

__all__ = [
    "EMPTY_OBJECT",
    "contains_json",
    "extract_json",
    "parse_structured",
]

T = TypeVar("T")

EMPTY_OBJECT = "{}"

_FENCE_JSON = "```json"
_FENCE = "```"
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_LEADING_INT = re.compile(r"-?\d+")


def extract_json(raw: str | None) -> str:
    """Return the first balanced ``{...}`` object in ``raw`` or ``"{}"``.

    Commentary before and after the object is ignored, as is a surrounding Markdown
    fence. Braces inside string values do not count towards nesting and a backslash
    consumes the character that follows it. This function never raises.
    """
    if raw is None or not raw.strip():
        return EMPTY_OBJECT

    text = raw.strip()
    if text[: len(_FENCE_JSON)].lower() == _FENCE_JSON:
        text = text[len(_FENCE_JSON) :]
    elif text.startswith(_FENCE):
        text = text[len(_FENCE) :]
    if text.endswith(_FENCE):
        text = text[: -len(_FENCE)]
    text = text.strip()

    start = text.find("{")
    if start < 0:
        return EMPTY_OBJECT
    end = _matching_brace(text, start)
    if end < 0:
        return EMPTY_OBJECT
    return text[start : end + 1].strip()


def _matching_brace(text: str, start: int) -> int:
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
    return -1


def contains_json(raw: str | None) -> bool:
    """Cheap pre-check used before attempting an extraction."""
    if raw is None:
        return False
    text = raw.strip()
    return "{" in text and "}" in text


def parse_structured(raw: str, model: type[T], *, context: str | None = None) -> T:
    """Extract a JSON object from ``raw`` and validate it into ``model``.

    Raises ``InvalidStructuredOutput`` when no object is present, when the object cannot
    be decoded, or when it fails validation. The error carries the raw text and a bounded
    preview of the extracted candidate.
    """
    label = context or getattr(model, "__name__", "JSON")
    extracted = extract_json(raw) if contains_json(raw) else EMPTY_OBJECT
    if extracted == EMPTY_OBJECT:
        raise InvalidStructuredOutput(
            f"Failed to parse {label}: no JSON object found in model output",
            raw=raw,
            attempted=(raw or "").strip(),
        )

    data = _decode(extracted)
    if data is None:
        raise InvalidStructuredOutput(
            f"Failed to parse {label}: extracted text is not valid JSON",
            raw=raw,
            attempted=extracted,
        )
    if not isinstance(data, Mapping) or not data:
        raise InvalidStructuredOutput(
            f"Failed to parse {label}: model returned an empty object",
            raw=raw,
            attempted=extracted,
        )

    payload = _coerce_to_model_schema(model, data)
    payload = _hydrate_response_payload(model, payload)
    try:
        return _cached_type_adapter(model).validate_python(payload)
    except ValidationError as error:
        raise InvalidStructuredOutput(
            f"Failed to parse {label}: {error.error_count()} validation error(s)",
            raw=raw,
            attempted=extracted,
        ) from error


def _decode(candidate: str) -> Any | None:
    """Decode JSON, retrying once after normalising common model artefacts."""
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass
    repaired = _strip_trailing_commas(_normalise_json_string(candidate))
    try:
        return json.loads(repaired)
    except json.JSONDecodeError:
        return None


def _normalise_json_string(payload: str) -> str:
    """Normalise common non-JSON characters emitted by models."""
    translation = {
        0x201C: '"',
        0x201D: '"',
        0x2018: "'",
        0x2019: "'",
        0x00A0: " ",
        0xFEFF: "",
    }
    return payload.translate(str.maketrans(translation))


def _strip_trailing_commas(payload: str) -> str:
    return _TRAILING_COMMA.sub(r"\1", payload)


def _field_key(name: str) -> str:
    return name.replace("_", "").replace("-", "").lower()


def _coerce_to_model_schema(model: type[Any], value: Any) -> Any:
    """Coerce raw mappings into the schema expected by the dataclass model.

    Keys are matched case-insensitively and without separators so ``estimatedMinutes``
    lands on ``estimated_minutes``. Unknown keys are dropped.
    """
    if not is_dataclass(model) or not isinstance(value, Mapping):
        return value
    by_key = {_field_key(str(key)): item for key, item in value.items()}
    hints = _cached_type_hints(model)
    cleaned: dict[str, Any] = {}
    for field_info in fields(model):
        name = field_info.name
        if name in value:
            raw_value = value[name]
        elif _field_key(name) in by_key:
            raw_value = by_key[_field_key(name)]
        else:
            continue
        if raw_value is None and not _type_allows_none(hints.get(name, field_info.type)):
            continue
        cleaned[name] = _coerce_value(hints.get(name, field_info.type), raw_value)
    return cleaned


def _hydrate_response_payload(model: type[Any], payload: Any) -> Any:
    """Populate missing dataclass fields with defaults."""
    if not isinstance(payload, dict) or not is_dataclass(model):
        return payload
    hints = _cached_type_hints(model)
    updated = dict(payload)
    for field_info in fields(model):
        if field_info.name in updated or not field_info.init:
            continue
        if field_info.default is not MISSING:
            updated[field_info.name] = field_info.default
            continue
        if field_info.default_factory is not MISSING:
            updated[field_info.name] = field_info.default_factory()
            continue
        if _type_allows_none(hints.get(field_info.name, field_info.type)):
            updated[field_info.name] = None
    return updated


def _is_union(origin: Any) -> bool:
    return origin is Union or origin is types.UnionType


def _type_allows_none(annotation: Any) -> bool:
    origin = get_origin(annotation)
    if origin is None:
        return annotation in (Any, type(None))
    return _is_union(origin) and any(arg is type(None) for arg in get_args(annotation))


def _coerce_value(annotation: Any, value: Any) -> Any:
    """Recursively coerce nested values to match the annotated structure."""
    origin = get_origin(annotation)
    if _is_dataclass_type(annotation):
        if not isinstance(value, Mapping):
            return {}
        return _hydrate_response_payload(annotation, _coerce_to_model_schema(annotation, value))
    if origin in {list, Sequence}:
        item_type = _first_arg(annotation)
        if value is None:
            return []
        if not isinstance(value, Sequence) or isinstance(value, (str, bytes, bytearray)):
            value = [value]
        items = [_coerce_value(item_type, item) for item in value]
        if item_type is int:
            # Non-numeric references such as "step one" are discarded.
            items = [item for item in items if isinstance(item, int)]
        return items
    if origin in (dict, Mapping):
        if not isinstance(value, Mapping):
            return {}
        return dict(value)
    if _is_union(origin):
        for candidate in get_args(annotation):
            coerced = _coerce_value(candidate, copy.deepcopy(value))
            try:
                _cached_type_adapter(candidate).validate_python(coerced)
            except ValidationError:
                continue
            return coerced
        # Optional fields degrade to None rather than failing the whole payload.
        return None if _type_allows_none(annotation) else value
    return _coerce_scalar(annotation, value)


def _coerce_scalar(annotation: Any, value: Any) -> Any:
    """Coerce scalar-like values according to the provided annotation."""
    if value is None:
        return None
    if get_origin(annotation) is Literal:
        allowed = get_args(annotation)
        return value if value in allowed else next(iter(allowed), None)
    if annotation in {Any, object}:
        return value
    if annotation is str:
        if isinstance(value, str):
            return value
        if isinstance(value, (list, tuple)):
            return ", ".join(str(item) for item in value)
        return str(value)
    if annotation is int:
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, (int, float)):
            return int(value)
        match = _LEADING_INT.search(str(value))
        return int(match.group(0)) if match else value
    if annotation is float:
        try:
            return float(value)
        except (TypeError, ValueError):
            return value
    if annotation is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in {"true", "1", "yes", "on", "approved"}:
                return True
            if lowered in {"false", "0", "no", "off", ""}:
                return False
        return bool(value)
    return value


def _is_dataclass_type(tp: Any) -> bool:
    return isinstance(tp, type) and is_dataclass(tp)


def _first_arg(annotation: Any) -> Any:
    args = get_args(annotation)
    return args[0] if args else Any


@lru_cache(maxsize=None)
def _cached_type_hints(model: type[Any]) -> dict[str, Any]:
    """Cache ``get_type_hints`` lookups to avoid repeated reflection cost."""
    try:
        return get_type_hints(model)
    except (NameError, TypeError):
        return {field.name: field.type for field in fields(model)}


@lru_cache(maxsize=None)
def _cached_type_adapter(annotation: Any) -> TypeAdapter:
    """Reuse ``TypeAdapter`` instances required during validation."""
    return TypeAdapter(annotation)
