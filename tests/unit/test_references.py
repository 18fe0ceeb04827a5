from __future__ import annotations

import decimal
import fractions
import sys
from types import ModuleType

import pytest

from exprkit.compiler.references import (
    FOUNDATIONAL_MODULES,
    ModuleReference,
    ReferenceSet,
    foundational_references,
    resolve_references,
)
from exprkit.errors import ResolutionError
from tests.helpers.models import Box, Order, Pair

pytestmark = [pytest.mark.unit]

BASELINE_MODULES = {"builtins", "types", "typing", "collections.abc", "itertools", "functools"}


def test_empty_configuration_has_baseline_and_foundational_modules():
    refs = resolve_references()
    assert refs.names == BASELINE_MODULES
    assert set(FOUNDATIONAL_MODULES) <= refs.names


def test_types_from_one_module_share_one_reference():
    refs = resolve_references([Order, Box, Pair])
    assert refs.names == BASELINE_MODULES | {"tests.helpers.models"}
    assert len(refs) == len(BASELINE_MODULES) + 1


def test_resolution_is_order_independent():
    forward = resolve_references([Order, decimal.Decimal, fractions.Fraction, str])
    backward = resolve_references([str, fractions.Fraction, decimal.Decimal, Order])
    assert forward == backward
    assert len(forward) == len(backward)
    assert forward.names == backward.names


def test_generic_alias_resolves_through_its_origin():
    refs = resolve_references([list[Order]])
    assert refs.names == BASELINE_MODULES


def test_foundational_modules_are_resolved_once():
    assert foundational_references() is foundational_references()


def test_reference_identity_ignores_module_object():
    a = ModuleReference("m", "/x/m.py", ModuleType("m"))
    b = ModuleReference("m", "/x/m.py", ModuleType("m"))
    assert a == b
    assert len(ReferenceSet([a, b])) == 1


def test_reference_set_lookup_and_iteration():
    refs = resolve_references([decimal.Decimal])
    assert "decimal" in refs
    assert refs.get("decimal").module is decimal
    assert refs.modules["decimal"] is decimal
    assert [r.name for r in refs] == sorted(refs.names)


def test_unknown_module_raises_resolution_error():
    ghost = type("Ghost", (), {"__module__": "exprkit_no_such_module"})
    with pytest.raises(ResolutionError) as ei:
        resolve_references([ghost])
    assert ei.value.module_name == "exprkit_no_such_module"


def test_module_without_spec_raises_resolution_error(monkeypatch):
    fake = ModuleType("exprkit_specless")
    monkeypatch.setitem(sys.modules, "exprkit_specless", fake)
    orphan = type("Orphan", (), {"__module__": "exprkit_specless"})
    with pytest.raises(ResolutionError):
        resolve_references([orphan])
