"""Queue-backed logging setup: selectable sinks, JSON lines and structlog routing."""

from __future__ import annotations

import atexit
import contextvars
import json
import logging
import logging.handlers
import math
import os
import queue
import sys
import threading
import time
from collections.abc import Iterator, Mapping, MutableMapping
from contextlib import contextmanager, suppress
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any, Final, cast

import structlog

JSONValue = str | int | float | bool | None | list["JSONValue"] | dict[str, "JSONValue"]

NOTICE: Final[int] = 25
ALERT: Final[int] = 45

logging.addLevelName(NOTICE, "NOTICE")
logging.addLevelName(ALERT, "ALERT")

_TEXT_FORMAT: Final[str] = "[%(name)s] %(asctime)s [p=%(levelname)s]: %(message)s"
_JOURNAL_FORMAT: Final[str] = "[p=%(levelname)s]: %(message)s"
_SYSLOG_FORMAT: Final[str] = "greenbay: [p=%(levelname)s]: %(message)s"
_SYSLOG_SOCKET: Final[str] = "/dev/log"

# Attributes every LogRecord carries; anything else on a record is a structured extra.
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "correlation"}
_STRUCTLOG_PASSTHROUGH: Final[frozenset[str]] = frozenset(
    {"event", "exc_info", "stack_info", "stacklevel"}
)

_CORRELATION: contextvars.ContextVar[tuple[tuple[str, str], ...]] = contextvars.ContextVar(
    "greenbay_log_correlation", default=()
)

_ACTIVE_HANDLE_LOCK = threading.Lock()
_ACTIVE_HANDLE: StructuredLoggingHandle | None = None
_ATEXIT_REGISTERED = False


class LogSink(StrEnum):
    STDOUT = "stdout"
    STDERR = "stderr"
    FILE = "file"
    JSON_STDOUT = "json-stdout"
    JSON_FILE = "json-file"
    SYSLOG = "syslog"
    SYSTEMD = "systemd"


LOG_SINK_NAMES: Final[tuple[str, ...]] = tuple(sink.value for sink in LogSink)
_FILE_SINKS: Final[frozenset[LogSink]] = frozenset({LogSink.FILE, LogSink.JSON_FILE})


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Where diagnostic logs go and how much of them."""

    sink: str = LogSink.STDOUT.value
    level: int | str = "INFO"
    log_file: Path | str | None = None
    logger_name: str = "greenbay"
    queue_size: int = 4096
    run_id: str | None = None


class _DroppingQueueHandler(logging.handlers.QueueHandler):
    """Never blocks the caller; a full queue drops the record and counts it."""

    def __init__(self, log_queue: queue.Queue[object]) -> None:
        super().__init__(log_queue)
        self._dropped_lock = threading.Lock()
        self.dropped = 0

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # Correlation lives in a context variable, so capture it on the caller's thread.
        context = get_correlation_context()
        if context:
            record.correlation = context
        return cast("logging.LogRecord", super().prepare(record))

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._dropped_lock:
                self.dropped += 1


class _TextLineFormatter(logging.Formatter):
    """Plain-text lines with structured extras appended as ``key=value``."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields: dict[str, object] = dict(_record_correlation(record, {}))
        fields.update(_record_extras(record))
        if not fields:
            return line
        rendered = " ".join(f"{key}={_render_text(value)}" for key, value in sorted(fields.items()))
        return f"{line} {rendered}"


class _JsonLineFormatter(logging.Formatter):
    def __init__(self, *, base_context: Mapping[str, str]) -> None:
        super().__init__()
        self._base_context = dict(base_context)

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=UTC)
        event: dict[str, JSONValue] = {
            "timestamp": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        event.update(_record_correlation(record, self._base_context))
        extras = _record_extras(record)
        if extras:
            event["fields"] = extras
        if record.exc_info is not None:
            event["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            event["stack"] = str(record.stack_info)
        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class StructuredLoggingHandle:
    """Runtime handle for an active logging setup."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        sink: LogSink,
        log_path: Path | None,
        queue_handler: _DroppingQueueHandler,
        sink_handler: logging.Handler,
        listener: logging.handlers.QueueListener,
    ) -> None:
        self.logger = logger
        self.sink = sink
        self.log_path = log_path
        self._queue_handler = queue_handler
        self._sink_handler = sink_handler
        self._listener = listener
        self._shutdown_lock = threading.Lock()
        self._is_shutdown = False

    @property
    def dropped_records(self) -> int:
        return self._queue_handler.dropped

    @property
    def is_shutdown(self) -> bool:
        return self._is_shutdown

    def flush(self, *, timeout_seconds: float = 2.0) -> None:
        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        pending = cast("queue.Queue[object]", self._queue_handler.queue)
        while pending.unfinished_tasks > 0 and time.monotonic() < deadline:
            time.sleep(0.01)
        self._sink_handler.flush()

    def shutdown(self, *, timeout_seconds: float = 2.0) -> None:
        """Stop the listener and close the sink.

        A sink whose stream was closed underneath it must not keep the
        handle alive, so flush and close failures are ignored here.
        """

        with self._shutdown_lock:
            if self._is_shutdown:
                return
            try:
                with suppress(ValueError, OSError):
                    self.flush(timeout_seconds=timeout_seconds)
                self._listener.stop()
            finally:
                self.logger.removeHandler(self._queue_handler)
                self._queue_handler.close()
                with suppress(ValueError, OSError):
                    self._sink_handler.close()
                self._is_shutdown = True


def resolve_sink(name: str) -> LogSink | None:
    """Map a sink name to :class:`LogSink`; ``None`` when the name is unknown."""

    try:
        return LogSink(name.strip().lower())
    except ValueError:
        return None


def setup_logging(config: LoggingConfig | None = None) -> StructuredLoggingHandle:
    """Configure queue-backed logging for the process and route structlog into it."""

    config = config if config is not None else LoggingConfig()
    shutdown_logging()

    sink = resolve_sink(config.sink)
    unknown_sink = sink is None
    if sink is None:
        sink = LogSink.STDOUT
    if not isinstance(config.queue_size, int) or config.queue_size <= 0:
        raise ValueError("queue_size must be a positive integer")
    logger_name = config.logger_name.strip()
    if not logger_name:
        raise ValueError("logger_name must not be empty")
    level = _parse_log_level(config.level)
    log_path = _resolve_log_path(sink, config.log_file)

    base_context = {"run_id": config.run_id} if config.run_id else {}
    sink_handler = _build_sink_handler(sink, log_path, base_context)
    sink_handler.setLevel(level)

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    logger.propagate = False
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()

    log_queue: queue.Queue[object] = queue.Queue(maxsize=config.queue_size)
    queue_handler = _DroppingQueueHandler(log_queue)
    queue_handler.setLevel(level)
    listener = logging.handlers.QueueListener(log_queue, sink_handler, respect_handler_level=True)
    listener.start()

    logger.addHandler(queue_handler)
    configure_structlog()

    handle = StructuredLoggingHandle(
        logger=logger,
        sink=sink,
        log_path=log_path,
        queue_handler=queue_handler,
        sink_handler=sink_handler,
        listener=listener,
    )
    global _ACTIVE_HANDLE, _ATEXIT_REGISTERED
    with _ACTIVE_HANDLE_LOCK:
        _ACTIVE_HANDLE = handle
        if not _ATEXIT_REGISTERED:
            atexit.register(shutdown_logging)
            _ATEXIT_REGISTERED = True

    if unknown_sink:
        structlog.get_logger(__name__).warning(
            "unknown_log_sink", requested=config.sink, fallback=sink.value
        )
    return handle


def configure_structlog() -> None:
    """Send structlog events through the standard library ``logging`` tree."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            _rename_reserved_keys,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def shutdown_logging(
    handle: StructuredLoggingHandle | None = None,
    *,
    timeout_seconds: float = 2.0,
) -> None:
    """Shut down ``handle`` (default: the active one) and forget it if it was active."""

    global _ACTIVE_HANDLE
    resolved = handle if handle is not None else get_active_logging_handle()
    if resolved is None:
        return
    try:
        resolved.shutdown(timeout_seconds=timeout_seconds)
    finally:
        with _ACTIVE_HANDLE_LOCK:
            if _ACTIVE_HANDLE is resolved:
                _ACTIVE_HANDLE = None


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    with _ACTIVE_HANDLE_LOCK:
        return _ACTIVE_HANDLE


def get_correlation_context() -> dict[str, str]:
    return dict(_CORRELATION.get())


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields (``run_id``, ``job_id`` ...) to records logged in scope.

    A ``None`` value removes an inherited field for the duration of the scope.
    """

    state = get_correlation_context()
    for key, value in fields.items():
        if value is None:
            state.pop(key, None)
        elif not isinstance(value, str) or not value.strip():
            raise ValueError(f"correlation field {key!r} must be a non-empty string")
        else:
            state[key] = value.strip()
    token = _CORRELATION.set(tuple(state.items()))
    try:
        yield
    finally:
        _CORRELATION.reset(token)


def _build_sink_handler(
    sink: LogSink,
    log_path: Path | None,
    base_context: Mapping[str, str],
) -> logging.Handler:
    handler: logging.Handler
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_path, encoding="utf-8")
    elif sink is LogSink.SYSLOG:
        address: str | tuple[str, int] = (
            _SYSLOG_SOCKET if os.path.exists(_SYSLOG_SOCKET) else ("localhost", 514)
        )
        handler = logging.handlers.SysLogHandler(address=address)
    elif sink in (LogSink.STDERR, LogSink.SYSTEMD):
        handler = logging.StreamHandler(sys.stderr)
    else:
        handler = logging.StreamHandler(sys.stdout)

    if sink in (LogSink.JSON_STDOUT, LogSink.JSON_FILE):
        handler.setFormatter(_JsonLineFormatter(base_context=base_context))
    elif sink is LogSink.SYSTEMD:
        handler.setFormatter(_TextLineFormatter(_JOURNAL_FORMAT))
    elif sink is LogSink.SYSLOG:
        handler.setFormatter(_TextLineFormatter(_SYSLOG_FORMAT))
    else:
        handler.setFormatter(_TextLineFormatter(_TEXT_FORMAT))
    return handler


def _resolve_log_path(sink: LogSink, log_file: Path | str | None) -> Path | None:
    if sink not in _FILE_SINKS:
        return None
    if log_file is None or not str(log_file).strip():
        raise ValueError(f"log sink '{sink.value}' requires a log file name")
    return Path(log_file).expanduser()


def _rename_reserved_keys(
    _logger: object,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    # stdlib refuses extras that shadow LogRecord attributes.
    for key in [key for key in event_dict if key in _RECORD_ATTRIBUTES]:
        if key not in _STRUCTLOG_PASSTHROUGH:
            event_dict[f"{key}_"] = event_dict.pop(key)
    return event_dict


def _parse_log_level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    normalized = str(value).strip().upper()
    if normalized == "WARN":
        normalized = "WARNING"
    parsed = logging.getLevelName(normalized)
    if isinstance(parsed, int):
        return parsed
    raise ValueError(f"unsupported logging level {value!r}")


def _record_correlation(
    record: logging.LogRecord, base_context: Mapping[str, str]
) -> dict[str, str]:
    merged = dict(base_context)
    captured = getattr(record, "correlation", None)
    if isinstance(captured, Mapping):
        merged.update(captured)
    return merged


def _record_extras(record: logging.LogRecord) -> dict[str, JSONValue]:
    return {
        key: _to_json(value)
        for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRIBUTES and not key.startswith("_")
    }


def _render_text(value: object) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _to_json(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json(item) for item in value]
    return repr(value)


__all__ = [
    "ALERT",
    "LOG_SINK_NAMES",
    "NOTICE",
    "JSONValue",
    "LogSink",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "get_active_logging_handle",
    "get_correlation_context",
    "resolve_sink",
    "setup_logging",
    "shutdown_logging",
]
