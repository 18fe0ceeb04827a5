from __future__ import annotations

# Runtime package version, provided by setuptools_scm during build.
try:
    # created at build time by setuptools_scm (see [tool.setuptools_scm].version_file)
    from ._version import __version__
except ImportError:  # pragma: no cover
    # editable installs / missing file
    try:
        from importlib.metadata import version as _pkg_version

        __version__ = _pkg_version("exprkit")
    except Exception:
        __version__ = "0.0.0"

from .compiler import Compiler
from .core.config import CompilerConfig
from .errors import (
    EvaluationError,
    ExprkitError,
    ExtractionError,
    InternalError,
    InvalidExpression,
    ResolutionError,
)

__all__ = [
    "Compiler",
    "CompilerConfig",
    "EvaluationError",
    "ExprkitError",
    "ExtractionError",
    "InternalError",
    "InvalidExpression",
    "ResolutionError",
    "__version__",
]
