"""
Structured JSON logging for the textile kernel.

Every record under the ``textile_kernel`` logger is rendered as one JSON
line: a fixed envelope (ts, level, logger, message), the request-scoped
fields held in ``LogContext``, then whatever the caller passed in
``extra``.  Kernel exceptions logged with ``exc_info`` contribute their
``code`` and public attributes as ``exc_*`` keys.

    logger = get_logger("services.inventory_store")
    with LogContext.bind(actor_id="200", txn_id="TXN-1"):
        logger.info("than_sold", extra={"package_no": "5801", "than_no": 3})
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
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import date, datetime, timezone
from types import MappingProxyType
from typing import Any, Iterator, Mapping

_LOGGER_PREFIX = "textile_kernel"

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_EMPTY: Mapping[str, str] = MappingProxyType({})

_fields: ContextVar[Mapping[str, str]] = ContextVar("textile_log_fields", default=_EMPTY)


class LogContext:
    """
    Request-scoped log fields, safe across threads and tasks.

    Only the names in ``FIELDS`` are carried; anything else passed to
    ``set``/``bind`` raises TypeError.
    """

    FIELDS = ("correlation_id", "request_id", "actor_id", "txn_id", "action")

    @classmethod
    def _merged(cls, updates: Mapping[str, str | None]) -> Mapping[str, str]:
        unknown = set(updates) - set(cls.FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context fields: {sorted(unknown)}")
        merged = dict(_fields.get())
        merged.update({k: str(v) for k, v in updates.items() if v is not None})
        return MappingProxyType(merged)

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Set fields for the rest of the current context.  None leaves a field as is."""
        _fields.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_fields.get())

    @classmethod
    def clear(cls) -> None:
        _fields.set(_EMPTY)

    @classmethod
    @contextmanager
    def bind(cls, **fields: str | None) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of the block, then restore the previous ones."""
        token = _fields.set(cls._merged(fields))
        try:
            yield cls
        finally:
            _fields.reset(token)


# ---------------------------------------------------------------------------
# JSON rendering
# ---------------------------------------------------------------------------

# Attributes every LogRecord carries; anything else came from ``extra``
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    # Decimal, UUID and anything else
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if not name.startswith("_") and name != "code":
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_fields.get())
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger ``textile_kernel.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_state = {"configured": False}
_state_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``textile_kernel`` logger.

    Later calls are no-ops until ``reset_logging``.  ``level`` may be a
    number or a name such as ``"DEBUG"``.
    """
    with _state_lock:
        if _state["configured"]:
            return
        _state["configured"] = True

    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.setLevel(level.upper() if isinstance(level, str) else level)
    kernel_logger.propagate = False

    target = handler or logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    kernel_logger.addHandler(target)


def reset_logging() -> None:
    """Detach handlers and forget configuration.  Tests only."""
    with _state_lock:
        _state["configured"] = False
    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.handlers.clear()
    kernel_logger.setLevel(logging.WARNING)
    kernel_logger.propagate = True
