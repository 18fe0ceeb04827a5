# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Isolated loading of a compiled image.

Each call gets its own `IsolatedScope`: a module object that is never
registered in `sys.modules`, whose `__builtins__` carries a restricted
`__import__`. Imports resolve against the reference set first and then ask a
`DependencyLoader`; the only loader shipped, `RefusingDependencyLoader`, never
resolves anything, so every dependency has to come through the reference set.

Unloading drops the scope's own references and removes the container. The
module becomes garbage once nothing else points at it; a lambda returned by an
expression keeps its globals alive for as long as the caller holds it.
"""

import builtins
import marshal
import uuid
import weakref
from abc import ABC, abstractmethod
from collections.abc import Mapping
from types import CodeType, MappingProxyType, ModuleType
from typing import Any

from ..core.logging import get_logger
from ..errors import EvaluationError, InternalError
from .references import ReferenceSet
from .source import CONTAINER_NAME

__all__ = [
    "DependencyLoader",
    "IsolatedScope",
    "RefusingDependencyLoader",
    "live_scope_count",
]

log = get_logger("loader")

_live_scopes: weakref.WeakSet[ModuleType] = weakref.WeakSet()


def live_scope_count() -> int:
    """Number of scope modules not yet reclaimed (collected or not)."""
    return len(_live_scopes)


class DependencyLoader(ABC):
    """Fallback for imports that the reference set does not satisfy."""

    @abstractmethod
    def load(self, name: str) -> ModuleType | None:
        """Return the module for `name`, or None when it cannot be provided."""


class RefusingDependencyLoader(DependencyLoader):
    """Never resolves a dependency."""

    def load(self, name: str) -> ModuleType | None:
        return None


class _RestrictedImport:
    """`__import__` replacement bound to one reference set."""

    def __init__(self, references: ReferenceSet, loader: DependencyLoader) -> None:
        self._references = references
        self._loader = loader

    def _resolve(self, name: str) -> ModuleType:
        ref = self._references.get(name)
        if ref is not None:
            return ref.module
        module = self._loader.load(name)
        if module is None:
            raise ModuleNotFoundError(f"No module named {name!r} in the isolated scope", name=name)
        return module

    def __call__(self, name: str, globals=None, locals=None, fromlist=(), level: int = 0) -> ModuleType:
        if level:
            raise ImportError("relative imports are not available in an isolated scope")
        module = self._resolve(name)
        if fromlist or "." not in name:
            return module
        # `import a.b` binds the top-level package, which must be resolvable on its own
        return self._resolve(name.partition(".")[0])


class IsolatedScope:
    """
    One-shot execution scope for a compiled image.

    Usage:
        with IsolatedScope(references) as scope:
            namespace = scope.load(image)
            ...
    The scope is unloaded on exit, whatever happened inside the block.
    """

    def __init__(
        self,
        references: ReferenceSet,
        *,
        prefix: str = "exprkit_expr_",
        loader: DependencyLoader | None = None,
    ) -> None:
        self.name = f"{prefix}{uuid.uuid4().hex}"
        self._loaded = False
        self._module: ModuleType | None = ModuleType(self.name)
        scope_builtins = dict(builtins.__dict__)
        scope_builtins["__import__"] = _RestrictedImport(references, loader or RefusingDependencyLoader())
        self._module.__dict__["__builtins__"] = scope_builtins
        _live_scopes.add(self._module)

    @property
    def is_loaded(self) -> bool:
        return self._module is not None and self._loaded

    @property
    def namespace(self) -> Mapping[str, Any]:
        if self._module is None:
            raise InternalError(f"scope {self.name} is unloaded")
        return MappingProxyType(self._module.__dict__)

    def load(self, image: bytes) -> Mapping[str, Any]:
        """Execute the image inside the scope; return the resulting namespace (read-only)."""
        if self._module is None:
            raise InternalError(f"scope {self.name} is unloaded")
        if self._loaded:
            raise InternalError(f"scope {self.name} already holds an image")
        if not isinstance(image, (bytes, bytearray, memoryview)):
            raise TypeError(f"binary image must be bytes, got {type(image).__name__}")

        code = marshal.loads(image)
        if not isinstance(code, CodeType):
            raise InternalError("binary image does not contain a code object")

        self._loaded = True
        try:
            exec(code, self._module.__dict__)
        except Exception as e:
            raise EvaluationError(f"{type(e).__name__}: {e}") from e
        log.debug("scope loaded", event="exprkit.scope.loaded", scope=self.name)
        return self.namespace

    def unload(self) -> None:
        """Release the scope. Safe to call more than once."""
        module, self._module = self._module, None
        if module is None:
            return
        module.__dict__.pop(CONTAINER_NAME, None)
        log.debug("scope unloaded", event="exprkit.scope.unloaded", scope=self.name)

    def __enter__(self) -> IsolatedScope:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unload()
