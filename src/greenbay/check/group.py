"""Quorum semantics (all / any / one / none) for group checks."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class GroupRequirementsError(ValueError):
    """Raised for misconfigured group requirements."""


class GroupMode(StrEnum):
    ALL = "all"
    ANY = "any"
    ONE = "one"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class GroupRequirements:
    """Exactly one of the four flags must be set, and ``name`` must be non-empty."""

    name: str = ""
    all: bool = False
    any: bool = False
    one: bool = False
    none: bool = False

    @classmethod
    def for_mode(cls, mode: GroupMode | str, *, name: str) -> GroupRequirements:
        selected = GroupMode(mode)
        return cls(
            name=name,
            all=selected is GroupMode.ALL,
            any=selected is GroupMode.ANY,
            one=selected is GroupMode.ONE,
            none=selected is GroupMode.NONE,
        )

    @property
    def flag_count(self) -> int:
        return sum((self.all, self.any, self.one, self.none))

    @property
    def mode(self) -> GroupMode | None:
        if self.flag_count != 1:
            return None
        if self.all:
            return GroupMode.ALL
        if self.any:
            return GroupMode.ANY
        if self.one:
            return GroupMode.ONE
        return GroupMode.NONE

    def validate(self) -> None:
        if not self.name:
            raise GroupRequirementsError("no name specified for group requirements specification")
        if self.flag_count != 1:
            raise GroupRequirementsError(
                f"specified incorrect number of options for a '{self.name}' check: "
                f"[all={_flag(self.all)}, one={_flag(self.one)}, "
                f"any={_flag(self.any)}, none={_flag(self.none)}]"
            )

    def evaluate(self, passes: int, failures: int) -> bool:
        """Return whether ``passes``/``failures`` satisfy the quorum.

        Flags are tested in the order all, one, any, none; a requirement with no
        flag set raises :class:`GroupRequirementsError`.
        """

        if passes < 0 or failures < 0:
            raise ValueError("passes and failures must be >= 0")
        if self.all:
            return failures == 0
        if self.one:
            return passes == 1
        if self.any:
            return passes > 0
        if self.none:
            return passes == 0
        raise GroupRequirementsError(f"incorrectly configured group check for {self.name}")


def _flag(value: bool) -> str:
    return "true" if value else "false"


__all__ = [
    "GroupMode",
    "GroupRequirements",
    "GroupRequirementsError",
]
