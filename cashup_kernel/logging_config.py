"""
JSON-lines logging for the cash-up kernel.

Every record under the ``cashup_kernel`` logger becomes one JSON object:
timestamp, level, logger, message, the bound trip/guide context and any
``extra={}`` fields the caller passed.  Kernel errors logged with
``exc_info`` contribute their code and attributes as ``exc_*`` keys.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

_ROOT = "cashup_kernel"


# ---------------------------------------------------------------------------
# Bound context
# ---------------------------------------------------------------------------


class LogContext:
    """Trip and guide ids attached to every record logged inside ``bind()``."""

    _vars: dict[str, ContextVar[str | None]] = {
        "trip_id": ContextVar("cashup_log_trip_id", default=None),
        "guide_id": ContextVar("cashup_log_guide_id", default=None),
    }

    @classmethod
    def get_all(cls) -> dict[str, str]:
        bound: dict[str, str] = {}
        for name, var in cls._vars.items():
            value = var.get()
            if value is not None:
                bound[name] = value
        return bound

    @classmethod
    def clear(cls) -> None:
        for var in cls._vars.values():
            var.set(None)

    @classmethod
    def bind(cls, **fields: Any) -> "_Binding":
        unknown = sorted(set(fields) - set(cls._vars))
        if unknown:
            raise TypeError(f"Unknown log context field(s): {unknown}")
        return _Binding({name: str(value) for name, value in fields.items() if value is not None})


class _Binding:
    def __init__(self, values: dict[str, str]):
        self._values = values
        self._tokens: list[tuple[ContextVar[str | None], Any]] = []

    def __enter__(self) -> type[LogContext]:
        for name, value in self._values.items():
            var = LogContext._vars[name]
            self._tokens.append((var, var.set(value)))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

# Attributes every LogRecord carries; anything else came from ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _jsonable(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                line.setdefault(key, value)

        error = record.exc_info[1] if record.exc_info else None
        if error is not None:
            line["exc_type"] = type(error).__name__
            line["exc_message"] = str(error)
            code = getattr(error, "code", None)
            if code is not None:
                line["exc_code"] = code
            for key, value in vars(error).items():
                if not key.startswith("_") and key != "code":
                    line[f"exc_{key}"] = value
            line["traceback"] = self.formatException(record.exc_info)

        return json.dumps(line, default=_jsonable)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger named ``cashup_kernel.<name>``."""
    return logging.getLogger(f"{_ROOT}.{name}")


_setup_lock = threading.Lock()
_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the kernel logger.  Later calls are no-ops."""
    global _handler
    with _setup_lock:
        if _handler is not None:
            return
        _handler = handler if handler is not None else logging.StreamHandler(sys.stderr)

    _handler.setFormatter(StructuredFormatter())
    kernel = logging.getLogger(_ROOT)
    kernel.setLevel(level)
    kernel.propagate = False
    kernel.addHandler(_handler)


def reset_logging() -> None:
    """Detach the kernel handler so tests can configure again."""
    global _handler
    with _setup_lock:
        _handler = None
    kernel = logging.getLogger(_ROOT)
    kernel.handlers.clear()
    kernel.setLevel(logging.WARNING)
