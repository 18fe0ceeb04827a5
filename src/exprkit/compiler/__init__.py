# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Expression compiler.

    compiler = Compiler([Order], ["shop.models"])
    is_big = compiler.evaluate(Callable[[Order], bool], "lambda o: o.total > 100")

Construction resolves the reference set and import header once; every
`evaluate` call renders the result type, synthesizes a module, compiles it,
loads it into a fresh isolated scope, reads the value and unloads the scope.
Calls share nothing mutable and may run concurrently on one compiler.
"""

import time
import uuid
from collections.abc import Iterable
from typing import Any, TypeVar, overload

from ..core.config import CompilerConfig
from ..core.logging import get_logger, log_context
from .extract import extract_value
from .loader import IsolatedScope
from .references import ReferenceSet, resolve_references
from .source import build_import_header, synthesize
from .toolchain import CompilationRequest, PythonToolchain, Toolchain, invoke
from .typenames import render_type_name

__all__ = ["Compiler"]

T = TypeVar("T")

log = get_logger("compiler")


class Compiler:
    """Compiles single expressions against a fixed set of referenced types and namespaces."""

    def __init__(
        self,
        referenced_types: Iterable[Any] = (),
        usings: Iterable[str] = (),
        *,
        config: CompilerConfig | None = None,
        toolchain: Toolchain | None = None,
    ) -> None:
        self._config = config or CompilerConfig()
        self._references = resolve_references(referenced_types)
        self._header = build_import_header(usings)
        self._toolchain: Toolchain = toolchain or PythonToolchain(
            optimize=self._config.optimize,
            warnings_as_errors=self._config.warnings_as_errors,
        )

    @property
    def config(self) -> CompilerConfig:
        return self._config

    @property
    def references(self) -> ReferenceSet:
        return self._references

    @property
    def header(self) -> str:
        return self._header

    def synthesize(self, result_type: Any, expression: str) -> str:
        """Return the source unit `evaluate` would compile for these arguments."""
        return synthesize(self._header, render_type_name(result_type), expression)

    @overload
    def evaluate(self, result_type: type[T], expression: str) -> T: ...

    @overload
    def evaluate(self, result_type: Any, expression: str) -> Any: ...

    def evaluate(self, result_type: Any, expression: str) -> Any:
        """
        Compile `expression` and return its value as `result_type`.

        Raises:
            InvalidExpression: the expression does not compile, or its value is
                not assignable to `result_type`.
            EvaluationError: computing the value raised.
        """
        compilation_id = uuid.uuid4().hex[:12]
        with log_context(compilation_id=compilation_id):
            started = time.perf_counter()
            type_name = render_type_name(result_type)
            source = synthesize(self._header, type_name, expression)
            log.debug("evaluate", event="exprkit.evaluate.start", result_type=type_name)
            if self._config.log_source:
                log.debug("synthesized source", event="exprkit.evaluate.source", source=source)

            request = CompilationRequest(
                header=self._header,
                source=source,
                references=self._references,
                filename=f"<exprkit:{compilation_id}>",
                expression=expression,
            )
            try:
                image = invoke(self._toolchain, request)
            except Exception:
                log.debug("compile failed", event="exprkit.evaluate.compile_failed", exc_info=True)
                raise

            with IsolatedScope(self._references, prefix=self._config.module_prefix) as scope:
                with log_context(scope=scope.name):
                    namespace = scope.load(image)
                    value = extract_value(
                        namespace,
                        result_type,
                        type_name=type_name,
                        strict=self._config.strict_result,
                    )

            log.debug(
                "evaluated",
                event="exprkit.evaluate.done",
                elapsed_ms=round((time.perf_counter() - started) * 1000, 3),
            )
            return value
