# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Compilation: source unit -> binary image.

The `Toolchain` protocol is the boundary to whatever actually compiles the
source. `PythonToolchain` is the default: it compiles with the builtin
`compile()`, checks that every import and free name is satisfied by the
reference set, and emits the code object serialised with `marshal`.

`invoke()` is the only caller-facing entry point. It turns an unsuccessful
result into `InvalidExpression` (first error diagnostic only) and treats a
successful result without an image as an internal defect.
"""

import ast
import builtins
import io
import marshal
import threading
import tokenize
import warnings
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from types import ModuleType
from typing import Protocol

from pydantic import BaseModel, ConfigDict

from ..core.logging import get_logger
from ..errors import InternalError, InvalidExpression
from .references import ReferenceSet
from .source import CONTAINER_NAME, FIELD_NAME

__all__ = [
    "CompilationRequest",
    "CompilationResult",
    "Diagnostic",
    "OutputKind",
    "PythonToolchain",
    "Severity",
    "Toolchain",
    "invoke",
]

log = get_logger("toolchain")


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class OutputKind(str, Enum):
    LIBRARY = "library"


class Diagnostic(BaseModel):
    """One compiler message; line/column refer to the synthesized unit."""

    model_config = ConfigDict(frozen=True)

    severity: Severity
    message: str
    line: int | None = None
    column: int | None = None


class CompilationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    diagnostics: tuple[Diagnostic, ...] = ()
    image: bytes | None = None


@dataclass(frozen=True)
class CompilationRequest:
    header: str
    source: str
    references: ReferenceSet
    output_kind: OutputKind = OutputKind.LIBRARY
    filename: str = "<exprkit>"
    # caller text as given; when set, it must not close the synthetic parentheses
    expression: str | None = None


class Toolchain(Protocol):
    """Compiles a request. Must not raise for bad source; report diagnostics instead."""

    def compile(self, request: CompilationRequest) -> CompilationResult: ...


def invoke(toolchain: Toolchain, request: CompilationRequest) -> bytes:
    """Compile `request` and return the image, or raise InvalidExpression."""
    result = toolchain.compile(request)
    if not result.success:
        first = next((d for d in result.diagnostics if d.severity is Severity.ERROR), None)
        log.debug(
            "compilation failed",
            event="exprkit.toolchain.failed",
            diagnostics=[d.model_dump(mode="json") for d in result.diagnostics],
        )
        raise InvalidExpression(first.message if first else "compilation failed")
    if result.image is None:
        raise InternalError("toolchain reported success without a binary image")
    return result.image


# ---- default toolchain

# warnings.catch_warnings() swaps process-global state; keep it to one compile at a time.
_WARNINGS_LOCK = threading.Lock()

_BUILTIN_NAMES: frozenset[str] = frozenset(dir(builtins))


def _exported_names(module: ModuleType) -> frozenset[str]:
    """Names a wildcard import of `module` binds."""
    public = getattr(module, "__all__", None)
    if public is not None:
        return frozenset(public)
    return frozenset(n for n in vars(module) if not n.startswith("_"))


class PythonToolchain:
    """Compiles with the running interpreter."""

    def __init__(self, *, optimize: int = -1, warnings_as_errors: bool = False) -> None:
        self.optimize = optimize
        self.warnings_as_errors = warnings_as_errors

    def compile(self, request: CompilationRequest) -> CompilationResult:
        if request.output_kind is not OutputKind.LIBRARY:
            raise ValueError(f"unsupported output kind: {request.output_kind!r}")

        diagnostics: list[Diagnostic] = []
        code = None
        tree: ast.Module | None = None
        with _WARNINGS_LOCK, warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                tree = ast.parse(request.source, filename=request.filename)
                code = compile(tree, request.filename, "exec", dont_inherit=True, optimize=self.optimize)
            except SyntaxError as e:
                diagnostics.append(Diagnostic(severity=Severity.ERROR, message=e.msg, line=e.lineno, column=e.offset))
            except (ValueError, RecursionError) as e:
                diagnostics.append(Diagnostic(severity=Severity.ERROR, message=str(e) or type(e).__name__))

        warn_severity = Severity.ERROR if self.warnings_as_errors else Severity.WARNING
        for w in caught:
            diagnostics.append(Diagnostic(severity=warn_severity, message=str(w.message), line=w.lineno))

        if code is not None and tree is not None:
            escaped = None
            if request.expression is not None:
                escaped = _escapes_wrapper(request.expression, request.header)
            if escaped is not None:
                diagnostics.append(escaped)
            else:
                diagnostics.extend(_BindingCheck(request.references).run(tree))

        success = code is not None and not any(d.severity is Severity.ERROR for d in diagnostics)
        return CompilationResult(
            success=success,
            diagnostics=tuple(diagnostics),
            image=marshal.dumps(code) if success else None,
        )


# ---- shape checks

_OPENERS = frozenset("([{")
_CLOSERS = frozenset(")]}")
_TRAILING = frozenset({tokenize.NEWLINE, tokenize.NL, tokenize.COMMENT, tokenize.ENDMARKER})


def _escapes_wrapper(expression: str, header: str) -> Diagnostic | None:
    """
    Report text that closes the parentheses it is wrapped in.

    `1) + (2` compiles once wrapped, yet is not an expression on its own; with
    line breaks the same trick ends the container and smuggles in statements.
    """
    # the expression starts two lines below the header (class line, field line)
    first_line = header.count("\n") + 3
    depth = 0
    closer: str | None = None
    readline = io.StringIO(f"(\n{expression}\n)").readline
    try:
        for tok in tokenize.generate_tokens(readline):
            if closer is not None and tok.type not in _TRAILING:
                return Diagnostic(
                    severity=Severity.ERROR,
                    message=f"unmatched {closer!r}",
                    line=first_line + tok.start[0] - 2,
                    column=tok.start[1],
                )
            if tok.type != tokenize.OP:
                continue
            if tok.string in _OPENERS:
                depth += 1
            elif tok.string in _CLOSERS:
                depth -= 1
                if depth == 0:
                    closer = tok.string
    except (tokenize.TokenError, SyntaxError) as e:
        return _error(f"malformed expression: {e.args[0] if e.args else type(e).__name__}")
    return None



# ---- binding analysis


def _error(message: str, node: ast.AST | None = None) -> Diagnostic:
    return Diagnostic(
        severity=Severity.ERROR,
        message=message,
        line=getattr(node, "lineno", None),
        column=getattr(node, "col_offset", None),
    )


def _target_names(target: ast.AST) -> set[str]:
    return {n.id for n in ast.walk(target) if isinstance(n, ast.Name)}


class _FreeNames(ast.NodeVisitor):
    """Collect loaded names not bound by an enclosing lambda or comprehension."""

    def __init__(self) -> None:
        self.free: list[ast.Name] = []
        self.bound: set[str] = set()
        self._scopes: list[set[str]] = []

    def _is_bound(self, name: str) -> bool:
        return name in self.bound or any(name in scope for scope in self._scopes)

    def visit_Name(self, node: ast.Name) -> None:
        if isinstance(node.ctx, ast.Load) and not self._is_bound(node.id):
            self.free.append(node)

    def visit_NamedExpr(self, node: ast.NamedExpr) -> None:
        self.visit(node.value)
        (self._scopes[-1] if self._scopes else self.bound).add(node.target.id)

    def visit_Lambda(self, node: ast.Lambda) -> None:
        a = node.args
        for default in [*a.defaults, *(d for d in a.kw_defaults if d is not None)]:
            self.visit(default)
        params = {arg.arg for arg in (*a.posonlyargs, *a.args, *a.kwonlyargs)}
        params.update(arg.arg for arg in (a.vararg, a.kwarg) if arg is not None)
        self._scopes.append(params)
        self.visit(node.body)
        self._scopes.pop()

    def _comprehension(self, generators: list[ast.comprehension], results: Iterable[ast.AST]) -> None:
        # the outermost iterable is evaluated in the enclosing scope
        self.visit(generators[0].iter)
        scope: set[str] = set()
        self._scopes.append(scope)
        for i, gen in enumerate(generators):
            if i:
                self.visit(gen.iter)
            scope.update(_target_names(gen.target))
            for cond in gen.ifs:
                self.visit(cond)
        for node in results:
            self.visit(node)
        self._scopes.pop()

    def visit_ListComp(self, node: ast.ListComp) -> None:
        self._comprehension(node.generators, (node.elt,))

    def visit_SetComp(self, node: ast.SetComp) -> None:
        self._comprehension(node.generators, (node.elt,))

    def visit_GeneratorExp(self, node: ast.GeneratorExp) -> None:
        self._comprehension(node.generators, (node.elt,))

    def visit_DictComp(self, node: ast.DictComp) -> None:
        self._comprehension(node.generators, (node.key, node.value))


class _BindingCheck:
    """
    The unit must be the header imports followed by the container alone, holding
    only its field. Every import must be referenced; every free name must be
    importable or builtin.
    """

    def __init__(self, references: ReferenceSet) -> None:
        self.references = references

    def run(self, tree: ast.Module) -> list[Diagnostic]:
        out: list[Diagnostic] = []
        visible: set[str] = set(_BUILTIN_NAMES)
        container: ast.ClassDef | None = None

        for stmt in tree.body:
            if container is not None or not isinstance(stmt, (ast.ImportFrom, ast.ClassDef)):
                out.append(_error("only a single expression is allowed", stmt))
                return out
            if isinstance(stmt, ast.ClassDef):
                container = stmt
                continue
            ref = self.references.get(stmt.module or "") if stmt.level == 0 else None
            if ref is None:
                out.append(_error(f"module {stmt.module!r} is not referenced", stmt))
                continue
            if any(alias.name == "*" for alias in stmt.names):
                visible |= _exported_names(ref.module)
            visible.update(alias.asname or alias.name for alias in stmt.names if alias.name != "*")

        field = _container_field(container)
        if field is None:
            out.append(_error(f"{CONTAINER_NAME}.{FIELD_NAME} is missing from the compiled unit", container))
            return out

        value = field.value
        if isinstance(value, ast.Tuple) and not value.elts and value.lineno == field.lineno:
            # only the synthetic parentheses are left: the caller supplied nothing
            out.append(_error("expression expected", value))
            return out

        collector = _FreeNames()
        collector.visit(field.annotation)
        collector.visit(value)
        reported: set[str] = set()
        for name in collector.free:
            if name.id not in visible and name.id not in reported:
                reported.add(name.id)
                out.append(_error(f"name {name.id!r} is not defined", name))
        return out


def _container_field(container: ast.ClassDef | None) -> ast.AnnAssign | None:
    """The field declaration, provided it is the container's only statement."""
    if container is None or container.name != CONTAINER_NAME:
        return None
    if container.bases or container.keywords or container.decorator_list or len(container.body) != 1:
        return None
    field = container.body[0]
    if not isinstance(field, ast.AnnAssign) or field.value is None:
        return None
    if not isinstance(field.target, ast.Name) or field.target.id != FIELD_NAME:
        return None
    return field
