"""``results.json`` documents: one pass/fail record per check."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from greenbay.reporting.base import BaseReporter

if TYPE_CHECKING:
    from collections.abc import Sequence

    from greenbay.check.base import CheckOutput


def result_item(output: CheckOutput) -> dict[str, Any]:
    timing = output.timing.to_dict()
    return {
        "status": "pass" if output.passed else "fail",
        "test_file": output.name,
        "exit_code": 0 if output.passed else 1,
        "elapsed": output.timing.duration.total_seconds(),
        "start": timing["start_time"],
        "end": timing["end_time"],
    }


class ResultsReporter(BaseReporter):
    format_name = "result"

    def __init__(self) -> None:
        super().__init__()
        self._items: list[dict[str, Any]] = []

    @property
    def document(self) -> dict[str, Any]:
        return {"results": list(self._items)}

    def _consume(self, outputs: Sequence[CheckOutput]) -> None:
        self._items = [result_item(output) for output in outputs]

    def render(self) -> str:
        return json.dumps(self.document, indent=3) + "\n"


__all__ = ["ResultsReporter", "result_item"]
