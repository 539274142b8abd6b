"""Package-manager checks driven by a scripted executor."""

from __future__ import annotations

import pytest
from conftest import FakeExecutor, FakeOutcome

from greenbay.check.group import GroupRequirements
from greenbay.check.packages import (
    PACKAGE_PROBES,
    PackageGroupCheck,
    PackageInstalledCheck,
    PackageProbe,
)

DPKG = PackageProbe("dpkg", ("dpkg", "-l"))


def _installed(
    executor: FakeExecutor, package: str, *, installed: bool = True
) -> PackageInstalledCheck:
    name = "dpkg-installed" if installed else "dpkg-not-installed"
    check = PackageInstalledCheck(name, DPKG, installed=installed, executor=executor)
    check.hydrate({"package": package})
    check.set_id(f"{name}-{package}")
    check.run()
    return check


def test_probe_table_covers_every_manager() -> None:
    assert [probe.manager for probe in PACKAGE_PROBES] == [
        "yum",
        "dpkg",
        "brew",
        "pacman",
        "pip",
        "gem",
    ]


def test_installed_package_passes() -> None:
    executor = FakeExecutor({("dpkg", "-l", "curl"): FakeOutcome(output="ii curl 7.0\n")})

    check = _installed(executor, "curl")

    assert check.passed
    assert executor.argvs == [("dpkg", "-l", "curl")]


def test_missing_package_fails_with_query_in_message() -> None:
    executor = FakeExecutor(default=FakeOutcome(exit_code=1, output="no packages found"))

    check = _installed(executor, "ghost")

    output = check.output()
    assert not output.passed
    assert output.error == "package ghost does not exist and should"
    assert "dpkg package 'ghost' is not installed" in output.message
    assert "no packages found" in output.message
    assert output.message.endswith("dpkg -l ghost")


def test_not_installed_variant_inverts_outcome() -> None:
    executor = FakeExecutor({("dpkg", "-l", "curl"): FakeOutcome(output="ii curl")})

    present = _installed(executor, "curl", installed=False)
    absent = _installed(executor, "ghost", installed=False)

    assert not present.passed
    assert "exists (check=dpkg-not-installed) and should not" in present.output().error
    assert absent.passed


@pytest.mark.parametrize(
    ("mode", "expected"),
    [("all", False), ("any", True), ("one", True), ("none", False)],
)
def test_package_group_quorum(mode: str, expected: bool) -> None:
    executor = FakeExecutor({("dpkg", "-l", "curl"): FakeOutcome(output="ii curl")})
    requirements = GroupRequirements.for_mode(mode, name=f"dpkg-group-{mode}")
    check = PackageGroupCheck(f"dpkg-group-{mode}", DPKG, requirements, executor=executor)
    check.hydrate({"packages": ["curl", "ghost"]})
    check.set_id("group")

    check.run()

    assert check.passed is expected
    assert executor.argvs == [("dpkg", "-l", "curl"), ("dpkg", "-l", "ghost")]
    if not expected:
        assert "does not satisfy check requirements" in check.output().error


def test_package_group_without_packages_fails() -> None:
    requirements = GroupRequirements.for_mode("all", name="dpkg-group-all")
    check = PackageGroupCheck("dpkg-group-all", DPKG, requirements, executor=FakeExecutor())
    check.set_id("empty")

    check.run()

    assert not check.passed
    assert "no packages" in check.output().error
