from __future__ import annotations

import typing
from collections.abc import Callable
from typing import Literal, Optional, TypeVar

import pytest

from exprkit.compiler.typenames import TypeDescriptor, describe, render_type_name
from tests.helpers.models import Box, Catalog, Order, Page, Pair, Shelf

pytestmark = [pytest.mark.unit]

T = TypeVar("T")

INT = TypeDescriptor("int")
STR = TypeDescriptor("str")


@pytest.mark.parametrize(
    "tp, expected",
    [
        (int, "int"),
        (str, "str"),
        (Order, "Order"),
        (type(None), "None"),
        (list[int], "list[int]"),
        (typing.List[int], "list[int]"),
        (dict[str, list[int]], "dict[str, list[int]]"),
        (tuple[int, str, float], "tuple[int, str, float]"),
        (Callable[[int, str], bool], "Callable[[int, str], bool]"),
        (Callable[[], int], "Callable[[], int]"),
        (Callable[..., int], "Callable[..., int]"),
        (Optional[int], "Union[int, None]"),
        (int | str, "Union[int, str]"),
        (Literal["a", 1], "Literal['a', 1]"),
        (Box[int], "Box[int]"),
        (Pair[list[int], dict[str, int]], "Pair[list[int], dict[str, int]]"),
        (Box[T], "Box[T]"),
    ],
)
def test_render_python_types(tp, expected):
    assert render_type_name(tp) == expected


def test_nested_classes_render_with_their_enclosing_name():
    assert render_type_name(Catalog.Entry[str]) == "Catalog.Entry[str]"
    assert render_type_name(Shelf.Slot[Order]) == "Shelf.Slot[Order]"
    assert render_type_name(Catalog.Note) == "Catalog.Note"


def test_parametrised_pydantic_model_has_its_marker_stripped():
    assert Page[int].__name__ == "Page[int]"
    assert render_type_name(Page[int]) == "Page[int]"
    assert render_type_name(Page[list[str]]) == "Page[list[str]]"


def test_non_generic_descriptor_renders_bare_name():
    assert render_type_name(TypeDescriptor("Widget")) == "Widget"


def test_arity_marker_is_stripped():
    desc = TypeDescriptor("Dict`2", generic=True, parameters=2, arguments=(STR, INT))
    assert render_type_name(desc) == "Dict[str, int]"


def test_flattened_pool_is_distributed_outer_to_inner():
    """C<int>.N<string>: the enclosing level takes the first argument."""
    outer = TypeDescriptor("C`1", generic=True, parameters=1)
    inner = TypeDescriptor("N`1", generic=True, parameters=1, arguments=(INT, STR), declaring=outer)
    assert render_type_name(inner) == "C[int].N[str]"


def test_flattened_pool_with_two_parameter_outer_level():
    outer = TypeDescriptor("Map`2", generic=True, parameters=2)
    inner = TypeDescriptor("Cursor`1", generic=True, parameters=1, arguments=(STR, INT, STR), declaring=outer)
    assert render_type_name(inner) == "Map[str, int].Cursor[str]"


def test_generic_arguments_are_rendered_recursively():
    list_of_int = TypeDescriptor("list", generic=True, parameters=1, arguments=(INT,))
    outer = TypeDescriptor("C`1", generic=True, parameters=1)
    inner = TypeDescriptor("N`1", generic=True, parameters=1, arguments=(list_of_int, STR), declaring=outer)
    assert render_type_name(inner) == "C[list[int]].N[str]"


def test_exhausted_pool_renders_only_filled_slots():
    partial = TypeDescriptor("Dict`2", generic=True, parameters=2, arguments=(STR,))
    assert render_type_name(partial) == "Dict[str]"

    empty = TypeDescriptor("Dict`2", generic=True, parameters=2)
    assert render_type_name(empty) == "Dict"

    outer = TypeDescriptor("C`1", generic=True, parameters=1)
    inner = TypeDescriptor("N`1", generic=True, parameters=1, arguments=(INT,), declaring=outer)
    assert render_type_name(inner) == "C[int].N"


def test_describe_counts_declared_parameters():
    desc = describe(Pair[int, str])
    assert desc.generic is True
    assert desc.parameters == 2
    assert desc.arguments == (INT, STR)


def test_describe_rejects_non_types():
    with pytest.raises(TypeError):
        describe(42)


@pytest.mark.parametrize("tp", [list[int], dict[str, list[int]], tuple[int, str], Optional[int]])
def test_rendered_builtin_generics_round_trip(tp):
    namespace: dict = {}
    exec("from typing import *", namespace)
    assert eval(render_type_name(tp), namespace) == tp
