"""Process-wide registry mapping check type-names to factories."""

from __future__ import annotations

import inspect
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TypeVar

import structlog

from greenbay.check.base import Check

logger = structlog.get_logger(__name__)

CheckFactory = Callable[[], Check]

CheckClass = TypeVar("CheckClass", bound=type[Check])


class UnknownCheckTypeError(LookupError):
    """Raised when a type-name has no registered factory."""

    def __init__(self, type_name: str) -> None:
        super().__init__(f"no check type named '{type_name}' is registered")
        self.type_name = type_name


@dataclass(frozen=True, slots=True)
class CheckRegistration:
    type_name: str
    factory: CheckFactory


class CheckRegistry:
    """Thread-safe ``type-name -> factory`` map.

    Registering an existing name replaces the factory and logs the overwrite.
    The registry only ever holds factories, never live checks.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._registrations: dict[str, CheckRegistration] = {}

    def register(self, type_name: str, factory: CheckFactory) -> None:
        if not isinstance(type_name, str) or not type_name.strip():
            raise ValueError("type_name must be a non-empty string")
        if not callable(factory):
            raise ValueError(f"factory for '{type_name}' must be callable")

        with self._lock:
            overwrite = type_name in self._registrations
            self._registrations[type_name] = CheckRegistration(type_name, factory)

        if overwrite:
            logger.warning("check_type_overwritten", check_type=type_name)

    def register_many(self, factories: Mapping[str, CheckFactory]) -> None:
        for type_name in sorted(factories):
            self.register(type_name, factories[type_name])

    def contains(self, type_name: str) -> bool:
        with self._lock:
            return type_name in self._registrations

    def __contains__(self, type_name: object) -> bool:
        return isinstance(type_name, str) and self.contains(type_name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._registrations)

    def get_factory(self, type_name: str) -> CheckFactory:
        with self._lock:
            registration = self._registrations.get(type_name)
        if registration is None:
            raise UnknownCheckTypeError(type_name)
        return registration.factory

    def create(self, type_name: str) -> Check:
        check = self.get_factory(type_name)()
        if not isinstance(check, Check):
            raise TypeError(f"factory for '{type_name}' did not return a Check")
        if check.name != type_name:
            raise TypeError(
                f"factory for '{type_name}' produced a check of type '{check.name}'"
            )
        return check

    def clone(self, check: Check) -> Check:
        """Return a fresh, unexecuted check with the same type, id, suites and args."""

        copy = self.create(check.name)
        copy.hydrate(check.to_args())
        copy.set_id(check.id)
        copy.set_suites(check.suites)
        return copy

    def registered_names(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(sorted(self._registrations))


DEFAULT_CHECK_REGISTRY = CheckRegistry()


def register_check(
    type_name: str,
    *,
    registry: CheckRegistry | None = None,
) -> Callable[[CheckClass], CheckClass]:
    """Class decorator registering a check whose constructor takes no arguments."""

    target = registry if registry is not None else DEFAULT_CHECK_REGISTRY

    def decorator(check_cls: CheckClass) -> CheckClass:
        _validate_zero_arg_constructor(check_cls, type_name=type_name)
        target.register(type_name, factory=lambda: check_cls())
        return check_cls

    return decorator


def _validate_zero_arg_constructor(check_cls: type[object], *, type_name: str) -> None:
    signature = inspect.signature(check_cls)
    for parameter in signature.parameters.values():
        if (
            parameter.kind
            in {
                inspect.Parameter.POSITIONAL_ONLY,
                inspect.Parameter.POSITIONAL_OR_KEYWORD,
                inspect.Parameter.KEYWORD_ONLY,
            }
            and parameter.default is inspect.Signature.empty
        ):
            raise ValueError(
                f"{type_name!r} check decorator requires a zero-arg constructor; "
                f"parameter '{parameter.name}' is required"
            )


__all__ = [
    "DEFAULT_CHECK_REGISTRY",
    "CheckFactory",
    "CheckRegistration",
    "CheckRegistry",
    "UnknownCheckTypeError",
    "register_check",
]
