"""Results in the layout of ``go test -v``."""

from __future__ import annotations

from typing import TYPE_CHECKING

from greenbay.reporting.base import BaseReporter, format_seconds

if TYPE_CHECKING:
    from collections.abc import Sequence

    from greenbay.check.base import CheckOutput


class GoTestReporter(BaseReporter):
    format_name = "gotest"

    def __init__(self) -> None:
        super().__init__()
        self._lines: list[str] = []

    def _consume(self, outputs: Sequence[CheckOutput]) -> None:
        self._lines = []
        for output in outputs:
            self._lines.extend(render_test_result(output))

    def render(self) -> str:
        if not self._lines:
            return ""
        return "\n".join(self._lines) + "\n"


def render_test_result(output: CheckOutput) -> list[str]:
    lines = [f"=== RUN {output.name}"]
    if output.message:
        lines.append(f"    message: {output.message}")
    if output.error:
        lines.append(f"    error: {output.error}")
    status = "PASS" if output.passed else "FAIL"
    lines.append(f"--- {status}: {output.name} ({format_seconds(output)})")
    return lines


__all__ = ["GoTestReporter", "render_test_result"]
