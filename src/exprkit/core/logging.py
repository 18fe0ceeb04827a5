from __future__ import annotations

"""
exprkit.core.logging
====================

Structured logging for exprkit, built on the standard `logging` package:
- Per-call context (compilation_id, scope) propagated through contextvars.
- JSON formatter for services; compact human formatter for local runs and tests.
- A LoggerAdapter that turns arbitrary keyword arguments into record extras.
- Library-silent by default: only a NullHandler is installed on import.
"""

import contextvars
import json
import logging
import os
import sys
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, ClassVar, Final

__all__ = [
    "bind_context",
    "configure_from_env",
    "disable_stdout_logging",
    "enable_stdout_logging",
    "get_logger",
    "log_context",
    "set_level",
]

_ROOT_LOGGER_NAME: Final[str] = "exprkit"
_STDOUT_HANDLER_NAME: Final[str] = "_exprkit_stdout_handler"

_TRUTHY = ("1", "true", "yes", "on")

# ---------- Context ----------

_log_context: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar("exprkit_log_ctx", default=None)


def _current_context() -> dict[str, Any]:
    ctx = _log_context.get()
    return dict(ctx) if ctx else {}


def bind_context(**fields: Any) -> None:
    """Merge fields into the structured log context of the current thread/task."""
    ctx = _current_context()
    ctx.update({k: v for k, v in fields.items() if v is not None})
    _log_context.set(ctx)


@contextmanager
def log_context(**fields: Any):
    """Add fields to the log context for the duration of the block."""
    token = _log_context.set({**_current_context(), **{k: v for k, v in fields.items() if v is not None}})
    try:
        yield
    finally:
        _log_context.reset(token)


# ---------- Formatters ----------

# Attributes every LogRecord carries; anything else on a record is an extra.
_RECORD_ATTRS: Final[frozenset[str]] = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "asctime",
        "taskName",
    }
)


def _utc_timestamp(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class JsonFormatter(logging.Formatter):
    """One JSON object per record: envelope, context, extras, error."""

    def __init__(self, *, include_stack: bool = False) -> None:
        super().__init__()
        self.include_stack = include_stack

    def format(self, record: logging.LogRecord) -> str:
        out: dict[str, Any] = {
            "ts": _utc_timestamp(record.created),
            "level": record.levelname,
            "logger": record.name,
        }
        msg = record.getMessage()
        if msg:
            out["message"] = msg

        ctx = _log_context.get()
        if ctx:
            out.update(ctx)

        for k, v in record.__dict__.items():
            if k not in _RECORD_ATTRS and k not in out:
                out[k] = v

        if record.exc_info:
            exc_type, exc, _ = record.exc_info
            out["error"] = {
                "type": exc_type.__name__ if exc_type else "Exception",
                "message": str(exc) if exc else None,
            }
            if self.include_stack:
                out["error"]["stack"] = self.formatException(record.exc_info)

        return json.dumps(out, ensure_ascii=False, separators=(",", ":"), default=repr)


class HumanFormatter(logging.Formatter):
    """Single-line records with the compilation id appended when known."""

    default_time_format = "%H:%M:%S"
    default_msec_format = "%s.%03d"

    def format(self, record: logging.LogRecord) -> str:
        line = f"{self.formatTime(record)} {record.levelname:<5} {record.name}: {record.getMessage()}"
        ctx = _log_context.get()
        if ctx:
            shown = {k: ctx[k] for k in ("compilation_id", "scope") if ctx.get(k) is not None}
            if shown:
                line += "  [" + ", ".join(f"{k}={v}" for k, v in shown.items()) + "]"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ContextFilter(logging.Filter):
    """Copy the current log context onto each record so handlers can use it."""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = _log_context.get()
        if ctx:
            for k, v in ctx.items():
                record.__dict__.setdefault(k, v)
        return True


class _KwExtraAdapter(logging.LoggerAdapter):
    """
    Adapter accepting keyword fields, e.g.:
        log.debug("compiled", event="exprkit.evaluate.done", elapsed_ms=3)
    Unknown keywords move into `extra`; names clashing with record attributes
    are prefixed with `field_`.
    """

    _passthrough: ClassVar[frozenset[str]] = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})

    def process(self, msg, kwargs):
        extra = kwargs.get("extra")
        if not isinstance(extra, dict):
            extra = {}
        for k in [k for k in kwargs if k not in self._passthrough]:
            key = f"field_{k}" if k in _RECORD_ATTRS else k
            extra.setdefault(key, kwargs.pop(k))
        kwargs["extra"] = extra
        return msg, kwargs


# ---------- Configuration ----------

_configured = False


def _bootstrap_minimal() -> None:
    global _configured
    if _configured:
        return
    lg = logging.getLogger(_ROOT_LOGGER_NAME)
    if not any(isinstance(h, logging.NullHandler) for h in lg.handlers):
        lg.addHandler(logging.NullHandler())
    if not any(isinstance(f, ContextFilter) for f in lg.filters):
        lg.addFilter(ContextFilter())
    _configured = True


def _coerce_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"invalid log level: {level!r}")
    return resolved


def get_logger(name: str | None = None) -> logging.LoggerAdapter:
    """Return an `exprkit.<name>` logger adapter accepting keyword fields."""
    _bootstrap_minimal()
    base = logging.getLogger(_ROOT_LOGGER_NAME)
    return _KwExtraAdapter(base.getChild(name) if name else base, {})


def set_level(level: int | str) -> None:
    logging.getLogger(_ROOT_LOGGER_NAME).setLevel(_coerce_level(level))


def enable_stdout_logging(
    *,
    level: int | str = logging.DEBUG,
    json_output: bool = True,
    include_stack: bool = False,
    pretty: bool = False,
) -> None:
    """
    Attach a stdout handler to the exprkit logger tree.
    pretty=True selects HumanFormatter, otherwise JsonFormatter (json_output=True)
    or a plain logging.Formatter.
    """
    lvl = _coerce_level(level)
    _bootstrap_minimal()
    lg = logging.getLogger(_ROOT_LOGGER_NAME)
    disable_stdout_logging()

    fmt: logging.Formatter
    if pretty:
        fmt = HumanFormatter()
    elif json_output:
        fmt = JsonFormatter(include_stack=include_stack)
    else:
        fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_STDOUT_HANDLER_NAME)
    handler.setLevel(lvl)
    handler.setFormatter(fmt)
    lg.addHandler(handler)
    if lg.level == logging.NOTSET or lg.level > lvl:
        lg.setLevel(lvl)


def disable_stdout_logging() -> None:
    lg = logging.getLogger(_ROOT_LOGGER_NAME)
    for h in list(lg.handlers):
        if h.get_name() == _STDOUT_HANDLER_NAME:
            lg.removeHandler(h)


def configure_from_env() -> None:
    """
    Configure from environment; call once from an application entrypoint.
      - EXPRKIT_LOG_STDOUT=1   attach a stdout handler
      - EXPRKIT_LOG_LEVEL=...  level name (default WARNING)
      - EXPRKIT_LOG_PRETTY=1   human formatter instead of JSON
      - EXPRKIT_LOG_STACK=1    include stack traces in JSON output
    """
    level = os.getenv("EXPRKIT_LOG_LEVEL", "WARNING")
    pretty = os.getenv("EXPRKIT_LOG_PRETTY", "").lower() in _TRUTHY
    with_stack = os.getenv("EXPRKIT_LOG_STACK", "").lower() in _TRUTHY

    _bootstrap_minimal()
    set_level(level)
    if os.getenv("EXPRKIT_LOG_STDOUT", "").lower() in _TRUTHY:
        enable_stdout_logging(level=level, json_output=not pretty, include_stack=with_stack, pretty=pretty)
    else:
        disable_stdout_logging()


_bootstrap_minimal()
