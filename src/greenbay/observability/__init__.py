"""Observability primitives: logging setup and host statistics."""

from greenbay.observability.logging import (
    ALERT,
    LOG_SINK_NAMES,
    NOTICE,
    LoggingConfig,
    LogSink,
    StructuredLoggingHandle,
    correlation_scope,
    get_active_logging_handle,
    get_correlation_context,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "ALERT",
    "LOG_SINK_NAMES",
    "NOTICE",
    "LogSink",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "correlation_scope",
    "get_active_logging_handle",
    "get_correlation_context",
    "setup_logging",
    "shutdown_logging",
]
