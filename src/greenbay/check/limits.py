"""System limit checks: ``open-files``, ``address-size`` and ``irp-stack-size``.

Every limit name is registered on every platform. Where a limit has no meaning
the check fails with an "undefined on this platform" error, so one configuration
file loads unchanged on Linux, macOS and Windows.
"""

from __future__ import annotations

import sys
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING

from greenbay.check.args import as_int
from greenbay.check.base import Check, CheckError
from greenbay.check.registry import DEFAULT_CHECK_REGISTRY, CheckRegistry

if sys.platform == "win32":
    import winreg
else:
    import resource

if TYPE_CHECKING:
    from greenbay.utils.concurrency import CancellationToken

OPEN_FILES_MAX = 128_000
ADDRESS_SIZE_MAX = 18_446_744_073_709_551_000 if sys.maxsize > 2**32 else 2_147_483_600
IRP_STACK_SIZE_MAX = 50

_IRP_KEY = r"SYSTEM\CurrentControlSet\Services\LanmanServer\Parameters"


class LimitUndefinedError(CheckError):
    def __init__(self, name: str) -> None:
        super().__init__(f"limit check '{name}' is not defined on this platform ({sys.platform})")
        self.limit_name = name


@dataclass(frozen=True, slots=True)
class LimitProbe:
    """Reads one platform limit. ``read is None`` marks the limit as undefined here."""

    name: str
    maximum: int
    read: Callable[[], int] | None = None

    @property
    def defined(self) -> bool:
        return self.read is not None

    def expected(self, value: int) -> int:
        return self.maximum if value < 0 else value


class LimitCheck(Check):
    def __init__(self, type_name: str, probe: LimitProbe) -> None:
        super().__init__(type_name)
        self.value = 0
        self.probe = probe

    def hydrate(self, args: Mapping[str, object]) -> None:
        self.value = as_int(args.get("value", 0), "args.value")

    def to_args(self) -> dict[str, object]:
        return {"value": self.value}

    def execute(self, cancel_token: CancellationToken) -> None:
        if self.probe.read is None:
            self.set_state(False)
            self.add_error(LimitUndefinedError(self.probe.name))
            return

        try:
            actual = self.probe.read()
        except OSError as exc:
            self.set_state(False)
            self.add_error(CheckError(f"finding '{self.probe.name}' limit: {exc}"))
            return

        expected = self.probe.expected(self.value)
        if actual < expected:
            self.set_state(False)
            self.set_message(
                f"'{self.probe.name}' limit is {actual} which is less than {expected}"
            )
            self.add_error(CheckError(f"limit in check '{self.id}' is incorrect"))
            return

        self.set_state(True)


def _rlimit_reader(limit: int, maximum: int) -> Callable[[], int]:
    def read() -> int:
        _, hard = resource.getrlimit(limit)
        if hard == resource.RLIM_INFINITY:
            return maximum
        return hard

    return read


def _read_irp_stack_size() -> int:
    with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, _IRP_KEY, 0, winreg.KEY_QUERY_VALUE) as key:
        value, _ = winreg.QueryValueEx(key, "IRPStackSize")
    return int(value)


def platform_limit_probes() -> tuple[LimitProbe, ...]:
    if sys.platform == "win32":
        return (
            LimitProbe("open-files", OPEN_FILES_MAX),
            LimitProbe("address-size", ADDRESS_SIZE_MAX),
            LimitProbe("irp-stack-size", IRP_STACK_SIZE_MAX, _read_irp_stack_size),
        )
    return (
        LimitProbe(
            "open-files",
            OPEN_FILES_MAX,
            _rlimit_reader(resource.RLIMIT_NOFILE, OPEN_FILES_MAX),
        ),
        LimitProbe(
            "address-size",
            ADDRESS_SIZE_MAX,
            _rlimit_reader(resource.RLIMIT_AS, ADDRESS_SIZE_MAX),
        ),
        LimitProbe("irp-stack-size", IRP_STACK_SIZE_MAX),
    )


def register(registry: CheckRegistry = DEFAULT_CHECK_REGISTRY) -> None:
    for probe in platform_limit_probes():
        registry.register(probe.name, partial(LimitCheck, probe.name, probe))


__all__ = [
    "ADDRESS_SIZE_MAX",
    "IRP_STACK_SIZE_MAX",
    "OPEN_FILES_MAX",
    "LimitCheck",
    "LimitProbe",
    "LimitUndefinedError",
    "platform_limit_probes",
    "register",
]
