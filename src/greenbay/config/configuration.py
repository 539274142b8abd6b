"""
greenbay - resolved configuration.

File: src/greenbay/config/configuration.py

Purpose
- Turn raw test entries into hydrated checks through the check registry, keep
  the name and suite indexes, and serve selections of checks by suite or name.

Functional requirements
- Every problem found while resolving tests (unknown type, malformed args,
  duplicate name) is collected and raised together as one ``ConfigLoadError``.
- ``reload`` swaps in a freshly resolved state under the exclusive lock; a
  failed reload leaves the previous state in place.
- Selections are computed under the shared lock and streamed after it is
  released, so an abandoned iterator can never hold the lock.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from greenbay.check.args import ArgumentError
from greenbay.check.catalog import load_builtin_checks
from greenbay.check.registry import UnknownCheckTypeError
from greenbay.config.loader import (
    ConfigLoadError,
    Options,
    RawConfiguration,
    RawTest,
    load_raw_config,
    parse_document,
)
from greenbay.utils.concurrency import ReadWriteLock

if TYPE_CHECKING:
    from greenbay.check.base import Check
    from greenbay.check.registry import CheckRegistry

logger = structlog.get_logger(__name__)


class SelectionError(LookupError):
    """A requested suite or test could not be resolved."""


@dataclass(frozen=True, slots=True)
class Selection:
    """One item of a selection stream: a check, or the reason there is none."""

    check: Check | None = None
    error: SelectionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.check is not None


@dataclass(frozen=True, slots=True)
class _ResolvedState:
    options: Options
    raw_tests: tuple[RawTest, ...]
    tests: dict[str, Check]
    suites: dict[str, list[str]]


class Configuration:
    """Options, hydrated checks and the suite index of one check-suite file."""

    def __init__(
        self,
        raw: RawConfiguration | None = None,
        *,
        registry: CheckRegistry | None = None,
    ) -> None:
        self._registry = registry if registry is not None else load_builtin_checks()
        self._lock = ReadWriteLock()
        self._path = raw.path if raw is not None else None
        self._state = self._resolve(raw if raw is not None else RawConfiguration(Options(), ()))

    @classmethod
    def from_file(
        cls,
        path: str | Path,
        *,
        registry: CheckRegistry | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> Configuration:
        raw = load_raw_config(path, environ=environ)
        configuration = cls(raw, registry=registry)
        logger.info("config_loaded", path=str(raw.path), tests=len(configuration))
        return configuration

    @classmethod
    def from_document(
        cls,
        document: Mapping[str, Any],
        *,
        registry: CheckRegistry | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> Configuration:
        return cls(parse_document(document, environ=environ), registry=registry)

    # state ---------------------------------------------------------------

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def registry(self) -> CheckRegistry:
        return self._registry

    @property
    def options(self) -> Options:
        with self._lock.read_locked():
            return self._state.options

    @property
    def tests(self) -> dict[str, Check]:
        with self._lock.read_locked():
            return dict(self._state.tests)

    @property
    def suites(self) -> dict[str, list[str]]:
        with self._lock.read_locked():
            return {name: list(members) for name, members in self._state.suites.items()}

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._state.tests)

    def reload(self, *, environ: Mapping[str, str] | None = None) -> None:
        """Re-read the backing file and atomically replace options, tests and suites."""

        if self._path is None:
            raise ConfigLoadError("configuration was not loaded from a file; nothing to reload")
        raw = load_raw_config(self._path, environ=environ)
        state = self._resolve(raw)
        with self._lock.write_locked():
            self._state = state
        logger.info("config_reloaded", path=str(self._path), tests=len(state.tests))

    def to_document(self) -> dict[str, Any]:
        """Serialise options and tests back to a JSON-compatible check-suite document."""

        with self._lock.read_locked():
            state = self._state
            tests = [
                {
                    "name": raw.name,
                    "type": raw.type,
                    "suites": list(raw.suites),
                    "args": state.tests[raw.name].to_args() if raw.name in state.tests else {},
                }
                for raw in state.raw_tests
            ]
            return {"options": state.options.to_dict(), "tests": tests}

    # selection -----------------------------------------------------------

    def tests_for_suites(self, *names: str) -> Iterator[Selection]:
        """Yield the checks of each suite once, in declaration order.

        A check in several requested suites is yielded only for the first one.
        """

        with self._lock.read_locked():
            items = _select_suites(self._state, names)
        yield from items

    def tests_by_name(self, *names: str) -> Iterator[Selection]:
        with self._lock.read_locked():
            items = _select_names(self._state, names)
        yield from items

    def all_tests(
        self,
        tests: Sequence[str] = (),
        suites: Sequence[str] = (),
    ) -> Iterator[Selection]:
        """Checks named in ``tests`` followed by the members of ``suites``."""

        yield from self.tests_by_name(*tests)
        yield from self.tests_for_suites(*suites)

    # resolution ----------------------------------------------------------

    def _resolve(self, raw: RawConfiguration) -> _ResolvedState:
        tests: dict[str, Check] = {}
        suites: dict[str, list[str]] = {}
        problems: list[str] = []

        for entry in raw.tests:
            for suite in dict.fromkeys(entry.suites):
                suites.setdefault(suite, []).append(entry.name)

            try:
                check = self._build_check(entry)
            except (UnknownCheckTypeError, ArgumentError, TypeError) as exc:
                problems.append(f"problem resolving {entry.name}: {exc}")
                continue

            if entry.name in tests:
                problems.append(f"two tests named '{entry.name}'")
                logger.error("duplicate_test_name", test=entry.name)
                continue

            tests[entry.name] = check
            logger.debug("test_added", test=entry.name, check_type=check.name)

        if problems:
            source = str(raw.path) if raw.path is not None else "<memory>"
            raise ConfigLoadError(
                f"problem parsing tests from '{source}':\n" + "\n".join(problems),
                problems=tuple(problems),
            )

        return _ResolvedState(
            options=raw.options,
            raw_tests=raw.tests,
            tests=tests,
            suites=suites,
        )

    def _build_check(self, entry: RawTest) -> Check:
        check = self._registry.create(entry.type)
        check.hydrate(entry.args)
        check.set_id(entry.name)
        check.set_suites(entry.suites)
        return check


def _select_suites(state: _ResolvedState, names: Iterable[str]) -> list[Selection]:
    seen: set[str] = set()
    items: list[Selection] = []
    for suite in names:
        members = state.suites.get(suite)
        if members is None:
            items.append(Selection(error=SelectionError(f"suite named '{suite}' does not exist")))
            continue

        for name in members:
            if name in seen:
                continue
            seen.add(name)

            check = state.tests.get(name)
            if check is None:
                items.append(
                    Selection(
                        error=SelectionError(
                            f"test name {name} is specified in suite {suite} but does not exist"
                        )
                    )
                )
                continue
            items.append(Selection(check=check))
    return items


def _select_names(state: _ResolvedState, names: Iterable[str]) -> list[Selection]:
    items: list[Selection] = []
    for name in names:
        check = state.tests.get(name)
        if check is None:
            items.append(Selection(error=SelectionError(f"no test named {name}")))
            continue
        items.append(Selection(check=check))
    return items


__all__ = ["Configuration", "Selection", "SelectionError"]
