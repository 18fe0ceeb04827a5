# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Type-name rendering: turn a type into the text that spells it in source.

Rendering works on `TypeDescriptor`, a small reflected view of a type:

    name         reflected name, possibly carrying an arity marker
                 (``Dict`2`` from foreign metadata, ``Page[int]`` for a
                 parametrised pydantic model)
    generic      whether the type is a generic instantiation
    parameters   number of generic parameter slots the type itself declares
    arguments    flattened argument pool; for a nested generic type this is
                 the concatenation of every enclosing level's arguments,
                 outermost first
    declaring    enclosing type descriptor for nested types

`describe()` builds descriptors from classes and typing objects;
`render_type_name()` accepts either.
"""

import re
import types
import typing
from dataclasses import dataclass, replace
from typing import Any

__all__ = ["TypeDescriptor", "describe", "render_type_name"]

# Everything from the first backtick or bracket is reflection decoration.
_ARITY_MARKER = re.compile(r"[`\[].*\Z", re.DOTALL)

_UNION_ORIGINS: tuple[Any, ...] = (typing.Union, types.UnionType)


@dataclass(frozen=True)
class TypeDescriptor:
    name: str
    generic: bool = False
    parameters: int = 0
    arguments: tuple[TypeDescriptor, ...] = ()
    declaring: TypeDescriptor | None = None


def render_type_name(tp: Any) -> str:
    """Render `tp` (a TypeDescriptor or anything `describe` accepts) as source text."""
    desc = describe(tp)
    if not desc.generic:
        return desc.name
    text, _ = _render(desc, desc.arguments)
    return text


def _render(desc: TypeDescriptor, pool: tuple[TypeDescriptor, ...]) -> tuple[str, tuple[TypeDescriptor, ...]]:
    """Render `desc`, taking its arguments from the front of `pool`; return the text and what is left."""
    if not desc.generic:
        return desc.name, pool

    text = _ARITY_MARKER.sub("", desc.name)
    if desc.declaring is not None:
        # enclosing levels own the front of the flattened pool
        outer, pool = _render(desc.declaring, pool)
        text = f"{outer}.{text}"

    taken: list[str] = []
    for _ in range(desc.parameters):
        if not pool:
            break
        head, pool = pool[0], pool[1:]
        taken.append(render_type_name(head))

    if taken:
        text += "[" + ", ".join(taken) + "]"
    return text, pool


# ---- describe


def describe(tp: Any) -> TypeDescriptor:
    """Build a TypeDescriptor for a class, typing alias, or typing argument value."""
    if isinstance(tp, TypeDescriptor):
        return tp
    if tp is None or tp is type(None):
        return TypeDescriptor("None")
    if tp is Ellipsis:
        return TypeDescriptor("...")
    if isinstance(tp, str):
        return TypeDescriptor(tp)
    if isinstance(tp, typing.ForwardRef):
        return TypeDescriptor(tp.__forward_arg__)
    if isinstance(tp, (typing.TypeVar, typing.ParamSpec)):
        return TypeDescriptor(tp.__name__)
    if isinstance(tp, list):
        # Callable parameter list
        if not tp:
            return TypeDescriptor("[]")
        return TypeDescriptor("", generic=True, parameters=len(tp), arguments=tuple(describe(a) for a in tp))

    origin = typing.get_origin(tp)
    args = typing.get_args(tp)
    if origin is typing.Literal:
        return TypeDescriptor(
            "Literal", generic=True, parameters=len(args), arguments=tuple(TypeDescriptor(repr(a)) for a in args)
        )
    if origin in _UNION_ORIGINS:
        return TypeDescriptor("Union", generic=True, parameters=len(args), arguments=tuple(describe(a) for a in args))
    if origin is not None:
        return _generic(_nested_descriptor(origin), origin, args)

    meta = getattr(tp, "__pydantic_generic_metadata__", None)
    if meta and meta.get("origin") is not None:
        # parametrised pydantic model: a real subclass named like "Page[int]"
        base = _nested_descriptor(meta["origin"])
        return _generic(replace(base, name=tp.__name__), meta["origin"], tuple(meta.get("args") or ()))

    if isinstance(tp, type):
        return TypeDescriptor(_spelled_name(tp))

    special = getattr(tp, "_name", None)
    if isinstance(special, str) and special:
        return TypeDescriptor(special)
    raise TypeError(f"cannot describe {tp!r} as a type")


def _generic(base: TypeDescriptor, origin: Any, args: tuple[Any, ...]) -> TypeDescriptor:
    declared = getattr(origin, "__parameters__", None) or ()
    slots = len(declared) if declared else len(args)
    return replace(base, generic=True, parameters=slots, arguments=tuple(describe(a) for a in args))


def _spelled_name(cls: Any) -> str:
    """Qualified name for nested classes, plain name otherwise (and for function-local classes)."""
    name = getattr(cls, "__name__", None) or repr(cls)
    qualname = getattr(cls, "__qualname__", None) or name
    return name if "<locals>" in qualname else qualname


def _nested_descriptor(cls: Any) -> TypeDescriptor:
    spelled = _spelled_name(cls)
    outer, _, name = spelled.rpartition(".")
    if not outer:
        return TypeDescriptor(spelled)
    # Subscripting a nested class never carries the enclosing arguments,
    # so the enclosing level is spelled by its qualified name.
    return TypeDescriptor(name, declaring=TypeDescriptor(outer))
