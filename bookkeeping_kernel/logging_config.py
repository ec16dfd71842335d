"""
Structured JSON logging for the books.

Every line is one JSON object: ``ts``, ``level``, ``logger`` and
``message``, then whatever book context is bound (which ledger, which
actor, which voucher or bank line), then the event's ``extra`` fields.
Amounts are written as plain decimal text so they keep their digits;
dates, financial years, voucher types and ids are written as their codes.

Kernel exceptions logged with ``exc_info`` add ``exc_code``, the family
they belong to (``exc_family``, e.g. ``ReversalError``) and their context
attributes as ``exc_<name>``.
"""

__all__ = [
    "CONTEXT_FIELDS",
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
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from contextvars import ContextVar, Token
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from bookkeeping_kernel.domain.financial_year import FinancialYear
from bookkeeping_kernel.exceptions import BookkeepingError

# ---------------------------------------------------------------------------
# Book context
# ---------------------------------------------------------------------------

CONTEXT_FIELDS: tuple[str, ...] = (
    "ledger",
    "correlation_id",
    "actor_id",
    "voucher_number",
    "entry_id",
    "bank_txn_id",
    "trace_id",
)

_CONTEXT: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"bookkeeping_{name}", default=None) for name in CONTEXT_FIELDS
}


def _context_var(name: str) -> ContextVar[str | None]:
    try:
        return _CONTEXT[name]
    except KeyError:
        raise TypeError(
            f"Unknown log context field {name!r}; expected one of {', '.join(CONTEXT_FIELDS)}"
        ) from None


class LogContext:
    """
    Per-thread / per-task fields stamped on every log line.

    ``Bookkeeper`` binds the ledger, actor and a correlation id for each
    call; the posting engine binds the voucher it is writing and the
    reconciliation service binds the bank line it is matching.  Values are
    stored as text; None leaves a field untouched.
    """

    @classmethod
    def set(cls, **fields: Any) -> None:
        for name, value in fields.items():
            var = _context_var(name)
            if value is not None:
                var.set(str(value))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        """Bound fields in CONTEXT_FIELDS order, unset ones omitted."""
        ctx: dict[str, str] = {}
        for name in CONTEXT_FIELDS:
            value = _CONTEXT[name].get()
            if value is not None:
                ctx[name] = value
        return ctx

    @classmethod
    def clear(cls) -> None:
        for var in _CONTEXT.values():
            var.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of the block, then restore them."""
        tokens: list[tuple[ContextVar[str | None], Token]] = []
        try:
            for name, value in fields.items():
                var = _context_var(name)
                if value is not None:
                    tokens.append((var, var.set(str(value))))
            yield cls
        finally:
            for var, token in reversed(tokens):
                var.reset(token)

    @classmethod
    def voucher(
        cls, voucher_number: str, entry_id: UUID | str
    ) -> AbstractContextManager[type["LogContext"]]:
        """Bind the voucher being written or corrected."""
        return cls.bind(voucher_number=voucher_number, entry_id=entry_id)


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        # 1E+3 -> "1000"; trailing zeros kept so scale survives
        return format(obj, "f")
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, FinancialYear):
        return obj.code
    if isinstance(obj, Enum):
        return obj.value
    return str(obj)


def _error_family(exc: BookkeepingError) -> str:
    """Name of the direct BookkeepingError subclass *exc* descends from."""
    for cls in reversed(type(exc).__mro__):
        if cls is not BookkeepingError and issubclass(cls, BookkeepingError):
            return cls.__name__
    return BookkeepingError.__name__


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)

    @staticmethod
    def _exception_fields(exc: BaseException) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        if isinstance(exc, BookkeepingError):
            fields["exc_code"] = exc.code
            fields["exc_family"] = _error_family(exc)
            for name, value in vars(exc).items():
                if not name.startswith("_") and name != "args":
                    fields[f"exc_{name}"] = value
        return fields


# ---------------------------------------------------------------------------
# Logger factory
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "bookkeeping_kernel"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the bookkeeping_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the bookkeeping_kernel logger; later calls are no-ops."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root_logger = logging.getLogger(_LOGGER_PREFIX)
    root_logger.setLevel(level)
    root_logger.propagate = False

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    root_logger.addHandler(h)


def reset_logging() -> None:
    """Reset logging configuration. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
