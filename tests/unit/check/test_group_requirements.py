"""
greenbay - unit tests for group quorum semantics

File: tests/unit/check/test_group_requirements.py

Purpose
- Validate the all/any/one/none truth table and configuration validation.

Non-functional requirements
- Deterministic; the property run is derandomized.
"""

from __future__ import annotations

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from greenbay.check.group import GroupMode, GroupRequirements, GroupRequirementsError


@given(
    passes=st.integers(min_value=0, max_value=50),
    failures=st.integers(min_value=0, max_value=50),
)
@settings(
    max_examples=25,
    derandomize=True,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)
def test_property_quorum_truth_table(passes: int, failures: int) -> None:
    def evaluate(mode: GroupMode) -> bool:
        return GroupRequirements.for_mode(mode, name="group").evaluate(passes, failures)

    assert evaluate(GroupMode.ALL) is (failures == 0)
    assert evaluate(GroupMode.ANY) is (passes > 0)
    assert evaluate(GroupMode.ONE) is (passes == 1)
    assert evaluate(GroupMode.NONE) is (passes == 0)


@pytest.mark.parametrize(
    ("passes", "failures", "expected"),
    [
        (3, 0, {"all": True, "any": True, "one": False, "none": False}),
        (2, 1, {"all": False, "any": True, "one": False, "none": False}),
        (1, 2, {"all": False, "any": True, "one": True, "none": False}),
        (0, 3, {"all": False, "any": False, "one": False, "none": True}),
        (0, 0, {"all": True, "any": False, "one": False, "none": True}),
    ],
)
def test_quorum_examples(passes: int, failures: int, expected: dict[str, bool]) -> None:
    for mode, outcome in expected.items():
        requirements = GroupRequirements.for_mode(mode, name=f"group-{mode}")
        assert requirements.evaluate(passes, failures) is outcome, mode


def test_validate_requires_name() -> None:
    with pytest.raises(GroupRequirementsError, match="no name specified"):
        GroupRequirements(all=True).validate()


@pytest.mark.parametrize(
    "requirements",
    [
        GroupRequirements(name="g"),
        GroupRequirements(name="g", all=True, any=True),
        GroupRequirements(name="g", all=True, any=True, one=True, none=True),
    ],
)
def test_validate_requires_exactly_one_flag(requirements: GroupRequirements) -> None:
    with pytest.raises(GroupRequirementsError, match="incorrect number of options for a 'g'"):
        requirements.validate()
    assert requirements.mode is None


def test_evaluate_without_flags_is_a_configuration_error() -> None:
    with pytest.raises(GroupRequirementsError, match="incorrectly configured"):
        GroupRequirements(name="g").evaluate(1, 0)


def test_evaluate_rejects_negative_counts() -> None:
    with pytest.raises(ValueError, match=">= 0"):
        GroupRequirements.for_mode("all", name="g").evaluate(-1, 0)


def test_for_mode_sets_a_single_flag() -> None:
    requirements = GroupRequirements.for_mode(GroupMode.ONE, name="g")

    requirements.validate()
    assert requirements.mode is GroupMode.ONE
    assert requirements.flag_count == 1
