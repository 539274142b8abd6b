"""File presence checks: ``file-exists`` and ``file-does-not-exist``."""

from __future__ import annotations

import os
from collections.abc import Mapping
from functools import partial
from typing import TYPE_CHECKING

from greenbay.check.args import as_str
from greenbay.check.base import Check, CheckError
from greenbay.check.registry import DEFAULT_CHECK_REGISTRY, CheckRegistry

if TYPE_CHECKING:
    from greenbay.utils.concurrency import CancellationToken

FILE_EXISTS = "file-exists"
FILE_DOES_NOT_EXIST = "file-does-not-exist"


class FileExistsCheck(Check):
    def __init__(self, type_name: str = FILE_EXISTS, *, should_exist: bool = True) -> None:
        super().__init__(type_name)
        self.file_name = ""
        self.should_exist = should_exist

    def hydrate(self, args: Mapping[str, object]) -> None:
        self.file_name = as_str(args.get("name"), "args.name")

    def to_args(self) -> dict[str, object]:
        return {"name": self.file_name}

    def execute(self, cancel_token: CancellationToken) -> None:
        found = path_exists(self.file_name)
        verb = "should" if self.should_exist else "should not"

        if found != self.should_exist:
            self.set_state(False)
            self.add_error(CheckError("file existence check did not detect expected state"))
            self.set_message(f"file '{self.file_name}' {verb} exist. (found={found})")
            return

        self.set_state(True)


def path_exists(path: str) -> bool:
    """Whether ``path`` resolves to something; a dangling symlink does not."""

    if not path:
        return False
    return os.path.exists(os.path.expanduser(path))


def register(registry: CheckRegistry = DEFAULT_CHECK_REGISTRY) -> None:
    registry.register(FILE_EXISTS, partial(FileExistsCheck, FILE_EXISTS, should_exist=True))
    registry.register(
        FILE_DOES_NOT_EXIST,
        partial(FileExistsCheck, FILE_DOES_NOT_EXIST, should_exist=False),
    )


__all__ = [
    "FILE_DOES_NOT_EXIST",
    "FILE_EXISTS",
    "FileExistsCheck",
    "path_exists",
    "register",
]
