"""``lxc-containers-configured`` and the container probe abstraction behind it."""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import structlog

from greenbay.check.args import as_str_list
from greenbay.check.base import Check, CheckError
from greenbay.check.command import DEFAULT_EXECUTOR, CommandExecutor, CommandSpec
from greenbay.check.registry import DEFAULT_CHECK_REGISTRY, CheckRegistry

if TYPE_CHECKING:
    from greenbay.utils.concurrency import CancellationToken

logger = structlog.get_logger(__name__)

LXC_CONTAINERS_CONFIGURED = "lxc-containers-configured"


class ContainerUnreachableError(CheckError):
    def __init__(self, message: str, *, host: str) -> None:
        super().__init__(message)
        self.host = host


@runtime_checkable
class ContainerProbe(Protocol):
    """Reachability and program lookups for one isolation mechanism."""

    def reachable(self, host: str, cancel_token: CancellationToken) -> None:
        """Return when ``host`` answers; raise :class:`ContainerUnreachableError` otherwise."""

    def missing_programs(
        self,
        host: str,
        programs: Sequence[str],
        cancel_token: CancellationToken,
    ) -> list[str]:
        """Return one message per program that ``host`` does not provide."""


class LxcProbe:
    """Probes LXC containers via ``lxc-wait`` and ``ssh``."""

    def __init__(
        self,
        *,
        attempts: int = 20,
        interval_seconds: float = 5.0,
        executor: CommandExecutor | None = None,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        if interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")
        self.attempts = attempts
        self.interval_seconds = interval_seconds
        self._executor = executor if executor is not None else DEFAULT_EXECUTOR

    def reachable(self, host: str, cancel_token: CancellationToken) -> None:
        running = self._executor.run(
            CommandSpec(argv=("sudo", "lxc-wait", "-n", host, "-s", "RUNNING", "-t", "0")),
            cancel_token,
        )
        if not running.is_success():
            raise ContainerUnreachableError(
                f"lxc host is not running. [host='{host}', "
                f"error='{running.describe_failure()}', output='{running.trimmed_output}']",
                host=host,
            )

        started = time.monotonic()
        ssh = (
            "ssh",
            "-o",
            "ConnectTimeout=20",
            "-o",
            "ConnectionAttempts=20",
            host,
            "hostname",
        )
        for attempt in range(1, self.attempts + 1):
            if self._executor.run(CommandSpec(argv=ssh), cancel_token).is_success():
                return
            logger.debug("container_unreachable", host=host, attempt=attempt)
            if attempt < self.attempts and cancel_token.wait(self.interval_seconds):
                break

        raise ContainerUnreachableError(
            f"lxc host {host} was not reachable after {time.monotonic() - started:.1f}s",
            host=host,
        )

    def missing_programs(
        self,
        host: str,
        programs: Sequence[str],
        cancel_token: CancellationToken,
    ) -> list[str]:
        messages: list[str] = []
        for program in programs:
            result = self._executor.run(
                CommandSpec(argv=("ssh", host, "which", program)), cancel_token
            )
            if not result.is_success():
                messages.append(f"program '{program}' is not installed on '{host}'")
        return messages


class ContainerCheck(Check):
    def __init__(
        self,
        type_name: str = LXC_CONTAINERS_CONFIGURED,
        *,
        probe: ContainerProbe | None = None,
    ) -> None:
        super().__init__(type_name)
        self.hostnames: list[str] = []
        self.programs: list[str] = []
        self.probe: ContainerProbe = probe if probe is not None else LxcProbe()

    def hydrate(self, args: Mapping[str, object]) -> None:
        self.hostnames = as_str_list(args.get("hostnames"), "args.hostnames")
        self.programs = as_str_list(args.get("programs"), "args.programs")

    def to_args(self) -> dict[str, object]:
        return {"hostnames": list(self.hostnames), "programs": list(self.programs)}

    def execute(self, cancel_token: CancellationToken) -> None:
        if not self.hostnames:
            self.set_state(False)
            self.add_error(CheckError(f"no hostnames configured for {self.id} ({self.name})"))
            return

        failed = False
        messages: list[str] = []
        for host in self.hostnames:
            try:
                self.probe.reachable(host, cancel_token)
            except ContainerUnreachableError as exc:
                self.add_error(exc)
                failed = True
                continue

            missing = self.probe.missing_programs(host, self.programs, cancel_token)
            if missing:
                self.add_error(CheckError(f"host {host} is missing {len(missing)} programs"))
                messages.extend(missing)
                failed = True

        if messages:
            self.set_message(messages)
        self.set_state(not failed)


def register(registry: CheckRegistry = DEFAULT_CHECK_REGISTRY) -> None:
    registry.register(LXC_CONTAINERS_CONFIGURED, ContainerCheck)


__all__ = [
    "LXC_CONTAINERS_CONFIGURED",
    "ContainerCheck",
    "ContainerProbe",
    "ContainerUnreachableError",
    "LxcProbe",
    "register",
]
