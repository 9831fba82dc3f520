"""Shared JSON type aliases for event payloads, log context and status records."""

from __future__ import annotations

from typing import Any, Union

import orjson
from pydantic import BaseModel

# JSON type aliases - using Any for recursive types to avoid Pydantic resolution issues
JsonPrimitive = Union[str, int, float, bool, None]
JsonValue = Union[JsonPrimitive, list[Any], dict[str, Any]]  # Any for recursive slots
JsonDict = dict[str, Any]


def to_jsonable(value: BaseModel | Any) -> Any:
    """Plain JSON data for ``value``; anything orjson cannot encode becomes ``str()``."""
    if isinstance(value, BaseModel):
        value = value.model_dump()
    return orjson.loads(orjson.dumps(value, option=orjson.OPT_NON_STR_KEYS, default=str))
