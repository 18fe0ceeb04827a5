from __future__ import annotations

import gc
import json
import sys
from types import ModuleType

import pytest

from exprkit.compiler.loader import (
    DependencyLoader,
    IsolatedScope,
    RefusingDependencyLoader,
    live_scope_count,
)
from exprkit.compiler.references import resolve_references
from exprkit.compiler.source import CONTAINER_NAME, FIELD_NAME, build_import_header, synthesize
from exprkit.compiler.toolchain import CompilationRequest, PythonToolchain, invoke
from exprkit.errors import EvaluationError, InternalError

pytestmark = [pytest.mark.unit]

REFS = resolve_references()


def _image(expression: str, type_name: str = "object") -> bytes:
    header = build_import_header()
    request = CompilationRequest(header=header, source=synthesize(header, type_name, expression), references=REFS)
    return invoke(PythonToolchain(), request)


class _JsonOnlyLoader(DependencyLoader):
    def load(self, name: str) -> ModuleType | None:
        return json if name == "json" else None


def test_load_exposes_container_and_unload_releases_it():
    with IsolatedScope(REFS) as scope:
        namespace = scope.load(_image("1 + 1", "int"))
        assert scope.is_loaded
        assert getattr(namespace[CONTAINER_NAME], FIELD_NAME) == 2
    assert not scope.is_loaded
    with pytest.raises(InternalError):
        scope.namespace


def test_scope_module_is_not_registered_globally():
    with IsolatedScope(REFS, prefix="probe_") as scope:
        assert scope.name.startswith("probe_")
        scope.load(_image("0"))
        assert scope.name not in sys.modules


def test_image_must_be_bytes():
    with IsolatedScope(REFS) as scope:
        with pytest.raises(TypeError):
            scope.load("1 + 1")  # type: ignore[arg-type]


def test_scope_loads_only_one_image():
    with IsolatedScope(REFS) as scope:
        scope.load(_image("1"))
        with pytest.raises(InternalError):
            scope.load(_image("2"))


def test_unload_is_idempotent():
    scope = IsolatedScope(REFS)
    scope.load(_image("1"))
    scope.unload()
    scope.unload()
    with pytest.raises(InternalError):
        scope.load(_image("1"))


def test_refusing_loader_resolves_nothing():
    assert RefusingDependencyLoader().load("os") is None


def test_unreferenced_import_fails_inside_scope():
    with IsolatedScope(REFS) as scope:
        with pytest.raises(EvaluationError) as ei:
            scope.load(_image("__import__('json')"))
    assert isinstance(ei.value.__cause__, ModuleNotFoundError)


def test_dotted_import_needs_its_top_level_package_referenced():
    assert "collections.abc" in REFS
    assert "collections" not in REFS
    with IsolatedScope(REFS) as scope:
        with pytest.raises(EvaluationError) as ei:
            scope.load(_image("__import__('collections.abc')"))
    assert isinstance(ei.value.__cause__, ModuleNotFoundError)
    assert ei.value.__cause__.name == "collections"


def test_dotted_import_with_fromlist_returns_the_submodule():
    with IsolatedScope(REFS) as scope:
        namespace = scope.load(_image("__import__('collections.abc', fromlist=['Iterable'])"))
        assert getattr(namespace[CONTAINER_NAME], FIELD_NAME).__name__ == "collections.abc"


def test_referenced_modules_import_inside_scope():
    with IsolatedScope(REFS) as scope:
        namespace = scope.load(_image("__import__('functools').reduce"))
        assert getattr(namespace[CONTAINER_NAME], FIELD_NAME).__name__ == "reduce"


def test_dependency_loader_is_consulted_after_references():
    with IsolatedScope(REFS, loader=_JsonOnlyLoader()) as scope:
        namespace = scope.load(_image("__import__('json').dumps([1])"))
        assert getattr(namespace[CONTAINER_NAME], FIELD_NAME) == "[1]"


def test_errors_while_evaluating_are_wrapped():
    with IsolatedScope(REFS) as scope:
        with pytest.raises(EvaluationError) as ei:
            scope.load(_image("1 // 0"))
    assert isinstance(ei.value.__cause__, ZeroDivisionError)


def test_unloaded_scopes_are_reclaimed():
    gc.collect()
    before = live_scope_count()
    for i in range(25):
        with IsolatedScope(REFS) as scope:
            scope.load(_image(f"{i} * 2"))
        del scope
    gc.collect()
    assert live_scope_count() <= before
