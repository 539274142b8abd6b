"""Package-manager probes and the ``{mgr}-installed`` / ``{mgr}-group-*`` checks."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING

from greenbay.check.args import as_str, as_str_list
from greenbay.check.base import Check, CheckError
from greenbay.check.command import DEFAULT_EXECUTOR, CommandExecutor, CommandSpec
from greenbay.check.group import GroupMode, GroupRequirements
from greenbay.check.registry import DEFAULT_CHECK_REGISTRY, CheckRegistry

if TYPE_CHECKING:
    from greenbay.utils.concurrency import CancellationToken


@dataclass(frozen=True, slots=True)
class ProbeResult:
    installed: bool
    message: str


@dataclass(frozen=True, slots=True)
class PackageProbe:
    """A package manager query; the package name is appended to ``argv``."""

    manager: str
    argv: tuple[str, ...]

    def query(
        self,
        package: str,
        *,
        executor: CommandExecutor | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ProbeResult:
        runner = executor if executor is not None else DEFAULT_EXECUTOR
        argv = (*self.argv, package)
        result = runner.run(CommandSpec(argv=argv), cancel_token)
        output = result.trimmed_output
        if result.is_success():
            return ProbeResult(installed=True, message=output)
        return ProbeResult(
            installed=False,
            message=(
                f"{argv[0]} package '{package}' is not installed "
                f"({result.describe_failure()}) ({output}): {' '.join(argv)}"
            ),
        )


PACKAGE_PROBES: tuple[PackageProbe, ...] = (
    PackageProbe("yum", ("yum", "list", "installed")),
    PackageProbe("dpkg", ("dpkg", "-l")),
    PackageProbe("brew", ("brew", "list")),
    PackageProbe("pacman", ("pacman", "-Q")),
    PackageProbe("pip", ("pip", "show")),
    PackageProbe("gem", ("gem", "list", "-i")),
)


class PackageInstalledCheck(Check):
    def __init__(
        self,
        type_name: str,
        probe: PackageProbe,
        *,
        installed: bool = True,
        executor: CommandExecutor | None = None,
    ) -> None:
        super().__init__(type_name)
        self.package = ""
        self.probe = probe
        self.installed = installed
        self._executor = executor

    def hydrate(self, args: Mapping[str, object]) -> None:
        self.package = as_str(args.get("package"), "args.package")

    def to_args(self) -> dict[str, object]:
        return {"package": self.package}

    def execute(self, cancel_token: CancellationToken) -> None:
        result = self.probe.query(
            self.package, executor=self._executor, cancel_token=cancel_token
        )

        if not self.installed:
            self.set_state(not result.installed)
            if result.installed:
                self.set_message(result.message)
                self.add_error(
                    CheckError(
                        f"package '{self.package}' exists (check={self.name}) and should not"
                    )
                )
            return

        self.set_state(result.installed)
        if not result.installed:
            self.set_message(result.message)
            self.add_error(CheckError(f"package {self.package} does not exist and should"))


class PackageGroupCheck(Check):
    def __init__(
        self,
        type_name: str,
        probe: PackageProbe,
        requirements: GroupRequirements,
        *,
        executor: CommandExecutor | None = None,
    ) -> None:
        super().__init__(type_name)
        self.packages: list[str] = []
        self.probe = probe
        self.requirements = requirements
        self._executor = executor

    def hydrate(self, args: Mapping[str, object]) -> None:
        self.packages = as_str_list(args.get("packages"), "args.packages")

    def to_args(self) -> dict[str, object]:
        return {"packages": list(self.packages)}

    def execute(self, cancel_token: CancellationToken) -> None:
        self.requirements.validate()

        if not self.packages:
            self.set_state(False)
            self.add_error(CheckError(f"no packages for '{self.id}' ({self.name}) check"))
            return

        installed = 0
        missing = 0
        messages: list[str] = []
        for package in self.packages:
            result = self.probe.query(
                package, executor=self._executor, cancel_token=cancel_token
            )
            if result.installed:
                installed += 1
            else:
                missing += 1
            messages.append(result.message)

        ok = self.requirements.evaluate(installed, missing)
        self.set_state(ok)
        if not ok:
            self.set_message(messages)
            self.add_error(CheckError("group of packages does not satisfy check requirements"))


def register(registry: CheckRegistry = DEFAULT_CHECK_REGISTRY) -> None:
    for probe in PACKAGE_PROBES:
        installed_name = f"{probe.manager}-installed"
        missing_name = f"{probe.manager}-not-installed"
        registry.register(
            installed_name,
            partial(PackageInstalledCheck, installed_name, probe, installed=True),
        )
        registry.register(
            missing_name,
            partial(PackageInstalledCheck, missing_name, probe, installed=False),
        )
        for mode in GroupMode:
            group_name = f"{probe.manager}-group-{mode.value}"
            requirements = GroupRequirements.for_mode(mode, name=group_name)
            registry.register(
                group_name, partial(PackageGroupCheck, group_name, probe, requirements)
            )


__all__ = [
    "PACKAGE_PROBES",
    "PackageGroupCheck",
    "PackageInstalledCheck",
    "PackageProbe",
    "ProbeResult",
    "register",
]
