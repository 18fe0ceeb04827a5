# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Reference resolution: which modules an expression may use.

A compiler is configured with types, not modules. Each type contributes the
module that declares it; the result is deduplicated by module identity, so
two types from one module yield a single reference. The baseline types cover
the baseline import namespaces, and the foundational modules are always
present.
"""

import collections.abc
import functools
import importlib
import importlib.util
import itertools
import threading
import typing
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType, ModuleType
from typing import Any

from ..core.logging import get_logger
from ..errors import ResolutionError

__all__ = [
    "BASELINE_TYPES",
    "FOUNDATIONAL_MODULES",
    "ModuleReference",
    "ReferenceSet",
    "foundational_references",
    "resolve_references",
]

log = get_logger("references")

BASELINE_TYPES: tuple[Any, ...] = (
    str,
    typing.Generic,
    collections.abc.Iterable,
    collections.abc.Collection,
    itertools.chain,
    functools.partial,
)

FOUNDATIONAL_MODULES: tuple[str, ...] = ("builtins", "types")


@dataclass(frozen=True)
class ModuleReference:
    """A resolvable module; identity is (name, location), the module object rides along."""

    name: str
    location: str
    module: ModuleType = field(compare=False, hash=False, repr=False)


class ReferenceSet:
    """Immutable set of module references keyed by module name."""

    __slots__ = ("_by_name",)

    def __init__(self, references: Iterable[ModuleReference]) -> None:
        by_name: dict[str, ModuleReference] = {}
        for ref in references:
            by_name.setdefault(ref.name, ref)
        self._by_name: Mapping[str, ModuleReference] = MappingProxyType(dict(sorted(by_name.items())))

    @property
    def names(self) -> frozenset[str]:
        return frozenset(self._by_name)

    @property
    def modules(self) -> Mapping[str, ModuleType]:
        return MappingProxyType({name: ref.module for name, ref in self._by_name.items()})

    def get(self, name: str) -> ModuleReference | None:
        return self._by_name.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[ModuleReference]:
        return iter(self._by_name.values())

    def __len__(self) -> int:
        return len(self._by_name)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ReferenceSet):
            return NotImplemented
        return frozenset(self) == frozenset(other)

    def __hash__(self) -> int:
        return hash(frozenset(self))

    def __repr__(self) -> str:
        return f"ReferenceSet({sorted(self._by_name)!r})"


def _declaring_module_name(tp: Any) -> str | None:
    origin = typing.get_origin(tp)
    target = origin if origin is not None else tp
    name = getattr(target, "__module__", None)
    return name if isinstance(name, str) and name else None


def _reference_module(module_name: str, type_name: str) -> ModuleReference:
    try:
        spec = importlib.util.find_spec(module_name)
    except (ImportError, ValueError) as e:
        raise ResolutionError(type_name, module_name, str(e)) from e
    if spec is None:
        raise ResolutionError(type_name, module_name, "module not found")

    location = spec.origin
    if not location and spec.submodule_search_locations:
        location = next(iter(spec.submodule_search_locations), None)
    if not location:
        raise ResolutionError(type_name, module_name, "module has no location")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ResolutionError(type_name, module_name, str(e)) from e
    return ModuleReference(name=module_name, location=location, module=module)


# Process-wide; resolved on first use and never refetched.
_foundation: tuple[ModuleReference, ...] | None = None
_foundation_lock = threading.Lock()


def foundational_references() -> tuple[ModuleReference, ...]:
    """Return the always-present runtime modules, resolving them exactly once."""
    global _foundation
    if _foundation is None:
        with _foundation_lock:
            if _foundation is None:
                _foundation = tuple(_reference_module(name, f"<runtime {name}>") for name in FOUNDATIONAL_MODULES)
    return _foundation


def resolve_references(referenced_types: Iterable[Any] = ()) -> ReferenceSet:
    """
    Build the reference set for the baseline types plus `referenced_types`.

    Raises ResolutionError when a type has no declaring module or the module
    cannot be located.
    """
    refs: dict[str, ModuleReference] = {ref.name: ref for ref in foundational_references()}
    for tp in itertools.chain(BASELINE_TYPES, referenced_types):
        module_name = _declaring_module_name(tp)
        if module_name is None:
            raise ResolutionError(repr(tp), None, "type has no declaring module")
        if module_name not in refs:
            refs[module_name] = _reference_module(module_name, repr(tp))

    result = ReferenceSet(refs.values())
    log.debug(
        "references resolved",
        event="exprkit.references.resolved",
        modules=sorted(result.names),
        count=len(result),
    )
    return result
