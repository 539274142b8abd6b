"""Machine-parsable map of check name to output snapshot."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from greenbay.reporting.base import BaseReporter

if TYPE_CHECKING:
    from collections.abc import Sequence

    from greenbay.check.base import CheckOutput


class ReportReporter(BaseReporter):
    format_name = "report"

    def __init__(self) -> None:
        super().__init__()
        self._results: dict[str, CheckOutput] = {}

    @property
    def results(self) -> dict[str, CheckOutput]:
        return dict(self._results)

    def _consume(self, outputs: Sequence[CheckOutput]) -> None:
        self._results = {output.name: output for output in outputs}

    def render(self) -> str:
        payload = {name: output.to_dict() for name, output in self._results.items()}
        return json.dumps(payload, indent=3) + "\n"


__all__ = ["ReportReporter"]
