"""``mock-check``: the smallest complete check.

It shows what every check body must do: record a state with ``set_state``,
optionally attach a message or errors, and leave completion to ``Check.run``.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from greenbay.check.args import as_bool
from greenbay.check.base import Check, CheckError
from greenbay.check.registry import DEFAULT_CHECK_REGISTRY, CheckRegistry

if TYPE_CHECKING:
    from greenbay.utils.concurrency import CancellationToken

logger = structlog.get_logger(__name__)

MOCK_CHECK = "mock-check"


class MockCheck(Check):
    def __init__(self, *, should_fail: bool = False) -> None:
        super().__init__(MOCK_CHECK)
        self.should_fail = should_fail
        self.run_count = 0

    def hydrate(self, args: Mapping[str, object]) -> None:
        if "should_fail" in args:
            self.should_fail = as_bool(args["should_fail"], "args.should_fail")

    def to_args(self) -> dict[str, object]:
        return {"should_fail": self.should_fail}

    def execute(self, cancel_token: CancellationToken) -> None:
        self.run_count += 1
        self.set_state(not self.should_fail)
        if self.should_fail:
            self.add_error(CheckError(f"mock check '{self.id}' configured to fail"))
        message = (
            f"ran task {self.id}, at {datetime.now(UTC).isoformat()} "
            f"(should_fail={str(self.should_fail).lower()})"
        )
        logger.info("mock_check_ran", check_id=self.id, should_fail=self.should_fail)
        self.set_message(message)


def register(registry: CheckRegistry = DEFAULT_CHECK_REGISTRY) -> None:
    registry.register(MOCK_CHECK, MockCheck)


__all__ = ["MOCK_CHECK", "MockCheck", "register"]
