"""JSON codec: camelCase, null-omitting serialization and tolerant decoding."""

from __future__ import annotations

import functools
from typing import Any, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError
from pydantic_core import to_json, to_jsonable_python

from genlang.types import GenLangError

T = TypeVar("T")

_PAYLOAD_PREVIEW = 200


class DeserializationError(GenLangError):
    """Raised when JSON is malformed, null, or does not fit the target type.

    Args:
        message: Description of the failure.
        payload: The offending JSON text, truncated for display.
    """

    def __init__(self, message: str, *, payload: str | bytes = "") -> None:
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")
        self.payload = payload[:_PAYLOAD_PREVIEW]
        super().__init__(message)


@functools.lru_cache(maxsize=256)
def _cached_adapter(type_: Any) -> TypeAdapter[Any]:
    return TypeAdapter(type_)


def _adapter(type_: Any) -> TypeAdapter[Any]:
    try:
        return _cached_adapter(type_)
    except TypeError:
        # Unhashable annotation; build one for this call only.
        return TypeAdapter(type_)


def serialize(value: Any, *, pretty: bool = False) -> str:
    """Serialize ``value`` to JSON, omitting ``None`` fields and using wire aliases.

    Args:
        value: A wire model or any JSON-compatible value.
        pretty: Indent the output for logging.

    Returns:
        The JSON text.

    Raises:
        ValueError: If ``value`` is ``None``.
    """
    if value is None:
        raise ValueError("Cannot serialize None")
    indent = 2 if pretty else None
    if isinstance(value, BaseModel):
        return value.model_dump_json(by_alias=True, exclude_none=True, indent=indent)
    return to_json(value, by_alias=True, exclude_none=True, indent=indent).decode("utf-8")


def deserialize(data: str | bytes, type_: type[T] | Any) -> T:
    """Decode JSON text into ``type_``. Unknown fields are ignored.

    Args:
        data: JSON text or UTF-8 bytes.
        type_: Target type (a wire model, ``list[...]``, ``dict``, ...).

    Returns:
        The decoded value.

    Raises:
        DeserializationError: On malformed JSON, a ``null`` document, or a
            value that does not validate against ``type_``.
    """
    name = getattr(type_, "__name__", repr(type_))
    try:
        result = _adapter(type_).validate_json(data)
    except ValidationError as exc:
        raise DeserializationError(f"Failed to deserialize {name}: {exc}", payload=data) from exc
    if result is None:
        raise DeserializationError(f"Failed to deserialize {name}: document is null", payload=data)
    return result


def to_jsonable(value: Any) -> Any:
    """Convert ``value`` to plain JSON data (dicts, lists, scalars).

    Objects with no JSON form fall back to ``str()``.
    """
    return to_jsonable_python(value, by_alias=True, exclude_none=True, fallback=str)
