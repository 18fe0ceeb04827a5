# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Value extraction from a loaded scope.

Looks up `CONTAINER_NAME` in the scope namespace and the `FIELD_NAME`
attribute declared on it. A missing container or field means source synthesis
is broken and raises ExtractionError. With `strict=True` the value is checked
against the requested type with a pydantic TypeAdapter in strict mode; the
original object is returned, not the validated copy.
"""

import dataclasses
import functools
import typing
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError
from pydantic.errors import PydanticUserError

from ..core.logging import get_logger
from ..errors import ExtractionError, InvalidExpression
from .source import CONTAINER_NAME, FIELD_NAME

__all__ = ["extract_value"]

log = get_logger("extract")


def _has_own_config(tp: Any) -> bool:
    if isinstance(tp, type) and issubclass(tp, BaseModel):
        return True
    return dataclasses.is_dataclass(tp) or typing.is_typeddict(tp)


def _build_adapter(tp: Any) -> TypeAdapter:
    if _has_own_config(tp):
        return TypeAdapter(tp)
    return TypeAdapter(tp, config=ConfigDict(arbitrary_types_allowed=True))


@functools.lru_cache(maxsize=256)
def _cached_adapter(tp: Any) -> TypeAdapter:
    return _build_adapter(tp)


def _adapter_for(tp: Any) -> TypeAdapter | None:
    try:
        try:
            return _cached_adapter(tp)
        except TypeError:
            # unhashable type expression
            return _build_adapter(tp)
    except PydanticUserError as e:
        log.debug("no validator for result type", event="exprkit.extract.unchecked", result_type=repr(tp), reason=str(e))
        return None


def extract_value(
    namespace: Mapping[str, Any],
    result_type: Any,
    *,
    type_name: str | None = None,
    strict: bool = True,
) -> Any:
    """Return the container field from `namespace`, checked against `result_type` when strict."""
    container = namespace.get(CONTAINER_NAME)
    if not isinstance(container, type):
        raise ExtractionError(f"container {CONTAINER_NAME!r} not found in the loaded scope")
    try:
        value = container.__dict__[FIELD_NAME]
    except KeyError:
        raise ExtractionError(f"field {CONTAINER_NAME}.{FIELD_NAME} not found in the loaded scope") from None

    if not strict:
        return value
    adapter = _adapter_for(result_type)
    if adapter is None:
        return value
    try:
        adapter.validate_python(value, strict=True)
    except ValidationError:
        expected = type_name or repr(result_type)
        raise InvalidExpression(
            f"expression of type {type(value).__name__!r} is not assignable to {expected!r}"
        ) from None
    return value
