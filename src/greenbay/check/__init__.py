"""Check model, registry and the built-in check families."""

from greenbay.check.args import ArgumentError
from greenbay.check.base import Check, CheckError, CheckOutput, CheckType, TimingInfo
from greenbay.check.group import GroupMode, GroupRequirements, GroupRequirementsError
from greenbay.check.registry import (
    DEFAULT_CHECK_REGISTRY,
    CheckRegistry,
    UnknownCheckTypeError,
    register_check,
)

__all__ = [
    "DEFAULT_CHECK_REGISTRY",
    "ArgumentError",
    "Check",
    "CheckError",
    "CheckOutput",
    "CheckRegistry",
    "CheckType",
    "GroupMode",
    "GroupRequirements",
    "GroupRequirementsError",
    "TimingInfo",
    "UnknownCheckTypeError",
    "register_check",
]
