"""Registration of every built-in check family."""

from __future__ import annotations

import threading

import structlog

from greenbay.check import (
    containers,
    file_exists,
    file_group,
    limits,
    mock,
    packages,
    programs,
    python_module,
    shell,
)
from greenbay.check.registry import DEFAULT_CHECK_REGISTRY, CheckRegistry

logger = structlog.get_logger(__name__)

_FAMILIES = (
    mock,
    file_exists,
    file_group,
    shell,
    packages,
    limits,
    programs,
    python_module,
    containers,
)

_default_lock = threading.Lock()
_default_loaded = False


def register_builtin_checks(registry: CheckRegistry) -> CheckRegistry:
    for family in _FAMILIES:
        family.register(registry)
    logger.debug("builtin_checks_registered", count=len(registry))
    return registry


def load_builtin_checks() -> CheckRegistry:
    """Populate :data:`DEFAULT_CHECK_REGISTRY` once per process and return it."""

    global _default_loaded
    with _default_lock:
        if not _default_loaded:
            register_builtin_checks(DEFAULT_CHECK_REGISTRY)
            _default_loaded = True
    return DEFAULT_CHECK_REGISTRY


def builtin_registry() -> CheckRegistry:
    """A private registry holding only the built-in families."""

    return register_builtin_checks(CheckRegistry())


__all__ = ["builtin_registry", "load_builtin_checks", "register_builtin_checks"]
