# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Error taxonomy for exprkit.

Only `InvalidExpression` and `EvaluationError` are caused by the caller's
expression text. `ResolutionError` is a configuration problem detected while a
compiler is constructed. `InternalError` and its subclasses signal a broken
invariant inside exprkit itself and must never be reported as bad input.
"""

__all__ = [
    "EvaluationError",
    "ExprkitError",
    "ExtractionError",
    "InternalError",
    "InvalidExpression",
    "ResolutionError",
]


class ExprkitError(Exception):
    """Base class for all exprkit errors."""

    ...


class ResolutionError(ExprkitError):
    """A referenced type's declaring module has no resolvable location."""

    def __init__(self, type_name: str, module_name: str | None, reason: str | None = None) -> None:
        self.type_name = type_name
        self.module_name = module_name
        detail = f": {reason}" if reason else ""
        super().__init__(f"cannot resolve module {module_name!r} declaring {type_name}{detail}")


class InvalidExpression(ExprkitError):
    """
    The expression did not compile, or its value does not fit the requested type.

    Carries the message of the first error diagnostic only.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Error in expression: {message}")


class EvaluationError(ExprkitError):
    """The expression compiled but raised while its value was being computed."""

    ...


class InternalError(ExprkitError):
    """An exprkit invariant was violated (a defect, not bad input)."""

    ...


class ExtractionError(InternalError):
    """The loaded scope does not contain the synthetic container or its field."""

    ...
