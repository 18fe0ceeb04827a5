from __future__ import annotations

"""
exprkit.core.config
===================

Compiler configuration.
- Plain dataclass, validated in __post_init__.
- Optional JSON file loading, then EXPRKIT_* environment overrides,
  then explicit overrides.

Without a config file the defaults below are used.
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

_TRUTHY = ("1", "true", "yes", "on")
_FALSY = ("0", "false", "no", "off")


def _parse_bool_env(name: str) -> bool | None:
    val = os.getenv(name)
    if val is None or not val.strip():
        return None
    low = val.strip().lower()
    if low in _TRUTHY:
        return True
    if low in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean flag, got {val!r}")


def _try_load_json(path: Path | None) -> dict[str, Any]:
    if not path or not path.exists():
        return {}
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path}: config root must be a JSON object")
    return data


@dataclass(frozen=True)
class CompilerConfig:
    """Per-compiler settings; shared read-only by every evaluate call."""

    # Name prefix of the per-call isolated module; a uuid hex is appended.
    module_prefix: str = "exprkit_expr_"

    # Passed to compile(); -1 means the interpreter's own level.
    optimize: int = -1

    # Treat warning diagnostics (SyntaxWarning, DeprecationWarning) as errors.
    warnings_as_errors: bool = False

    # Check the extracted value against the requested type.
    strict_result: bool = True

    # Debug-log the synthesized source of every call.
    log_source: bool = False

    def __post_init__(self) -> None:
        if not self.module_prefix or not self.module_prefix.isidentifier():
            raise ValueError("module_prefix must be a non-empty identifier")
        if self.optimize not in (-1, 0, 1, 2):
            raise ValueError("optimize must be one of -1, 0, 1, 2")

    @classmethod
    def load(cls, path: Path | str | None = None, *, overrides: dict[str, Any] | None = None) -> CompilerConfig:
        """
        Load config from a JSON file (if given and present), then apply env and overrides.

        Env overrides:
          - EXPRKIT_OPTIMIZE
          - EXPRKIT_WARNINGS_AS_ERRORS
          - EXPRKIT_STRICT_RESULT
          - EXPRKIT_LOG_SOURCE
        """
        data: dict[str, Any] = {}
        data.update(_try_load_json(Path(path) if path else None))

        if os.getenv("EXPRKIT_OPTIMIZE"):
            data["optimize"] = int(os.environ["EXPRKIT_OPTIMIZE"])
        for key, env in (
            ("warnings_as_errors", "EXPRKIT_WARNINGS_AS_ERRORS"),
            ("strict_result", "EXPRKIT_STRICT_RESULT"),
            ("log_source", "EXPRKIT_LOG_SOURCE"),
        ):
            flag = _parse_bool_env(env)
            if flag is not None:
                data[key] = flag

        if overrides:
            data.update(overrides)

        return cls(**data)
