"""Programmatic construction of :class:`Configuration` objects."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from greenbay.config.configuration import Configuration
from greenbay.config.loader import Options, RawConfiguration, RawTest

if TYPE_CHECKING:
    from greenbay.check.base import Check
    from greenbay.check.registry import CheckRegistry


class ConfigurationBuilder:
    """Collects checks and produces independent configurations from them.

    Each added check is serialised (type, id, suites, ``to_args``); ``build``
    re-resolves those entries, so every built configuration owns fresh check
    instances and later changes to the builder do not affect it.
    """

    def __init__(
        self,
        *,
        options: Options | None = None,
        registry: CheckRegistry | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._options = options if options is not None else Options()
        self._registry = registry
        self._tests: list[RawTest] = []

    def add_check(self, check: Check) -> ConfigurationBuilder:
        if check is None:
            raise ValueError("check must not be None")
        entry = RawTest(
            name=check.id,
            type=check.name,
            suites=tuple(check.suites),
            args=check.to_args(),
        )
        with self._lock:
            self._tests.append(entry)
        return self

    def __len__(self) -> int:
        with self._lock:
            return len(self._tests)

    def build(self) -> Configuration:
        with self._lock:
            raw = RawConfiguration(options=self._options, tests=tuple(self._tests))
        return Configuration(raw, registry=self._registry)


__all__ = ["ConfigurationBuilder"]
