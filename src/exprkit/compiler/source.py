# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Source synthesis.

The compiled unit is always the same shape:

    from typing import *
    ...
    class _Expression:
        value: <rendered type> = (
    <expression text, verbatim>
        )

`CONTAINER_NAME` and `FIELD_NAME` are the only contract between this module
and the extractor. The expression sits on its own lines inside parentheses so
that trailing comments and line breaks in the caller's text stay harmless,
while statements (`;`, assignments) still fail to compile.
"""

from collections.abc import Iterable
from typing import Final

__all__ = [
    "BASELINE_NAMESPACES",
    "CONTAINER_NAME",
    "FIELD_NAME",
    "build_import_header",
    "synthesize",
]

CONTAINER_NAME: Final[str] = "_Expression"
FIELD_NAME: Final[str] = "value"

BASELINE_NAMESPACES: Final[tuple[str, ...]] = (
    "typing",
    "collections.abc",
    "itertools",
    "functools",
)


def build_import_header(usings: Iterable[str] = ()) -> str:
    """One wildcard import per namespace: baseline first, then `usings` in order (duplicates kept)."""
    lines = [f"from {ns} import *\n" for ns in (*BASELINE_NAMESPACES, *usings)]
    return "".join(lines)


def synthesize(header: str, type_name: str, expression: str) -> str:
    """Wrap `expression` into the container declaration. The text is not inspected."""
    return (
        f"{header}"
        f"class {CONTAINER_NAME}:\n"
        f"    {FIELD_NAME}: {type_name} = (\n"
        f"{expression}\n"
        f"    )\n"
    )
