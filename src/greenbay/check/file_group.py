"""``file-group-{all,any,one,none}``: quorum checks over a list of paths."""

from __future__ import annotations

from collections.abc import Mapping
from functools import partial
from typing import TYPE_CHECKING

from greenbay.check.args import as_str_list
from greenbay.check.base import Check, CheckError
from greenbay.check.file_exists import path_exists
from greenbay.check.group import GroupMode, GroupRequirements
from greenbay.check.registry import DEFAULT_CHECK_REGISTRY, CheckRegistry

if TYPE_CHECKING:
    from greenbay.utils.concurrency import CancellationToken


class FileGroupCheck(Check):
    def __init__(self, type_name: str, requirements: GroupRequirements) -> None:
        super().__init__(type_name)
        self.file_names: list[str] = []
        self.requirements = requirements

    def hydrate(self, args: Mapping[str, object]) -> None:
        self.file_names = as_str_list(args.get("file_names"), "args.file_names")

    def to_args(self) -> dict[str, object]:
        return {"file_names": list(self.file_names)}

    def execute(self, cancel_token: CancellationToken) -> None:
        self.requirements.validate()

        if not self.file_names:
            self.set_state(False)
            self.add_error(CheckError(f"no files specified for '{self.id}' ({self.name}) check"))
            return

        existing: list[str] = []
        missing: list[str] = []
        for file_name in self.file_names:
            if path_exists(file_name):
                existing.append(file_name)
            else:
                missing.append(file_name)

        if self.requirements.evaluate(len(existing), len(missing)):
            self.set_state(True)
            return

        self.set_state(False)
        self.add_error(CheckError("group of files do not satisfy check requirements"))
        self.set_message(
            f"'{self.name}' check. {len(existing)} files exist, {len(missing)} do not exist. "
            f"[existing=({', '.join(existing)}), missing=({', '.join(missing)})]"
        )


def register(registry: CheckRegistry = DEFAULT_CHECK_REGISTRY) -> None:
    for mode in GroupMode:
        type_name = f"file-group-{mode.value}"
        requirements = GroupRequirements.for_mode(mode, name=type_name)
        registry.register(type_name, partial(FileGroupCheck, type_name, requirements))


__all__ = ["FileGroupCheck", "register"]
