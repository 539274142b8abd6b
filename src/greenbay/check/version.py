"""Semantic version relations shared by version-asserting checks."""

from __future__ import annotations

from enum import StrEnum

import semver


class Relationship(StrEnum):
    EQ = "eq"
    LT = "lt"
    LTE = "lte"
    GT = "gt"
    GTE = "gte"


def parse_relationship(value: str, *, default: Relationship = Relationship.GTE) -> Relationship:
    if not value:
        return default
    try:
        return Relationship(value)
    except ValueError as exc:
        raise ValueError(f"relationship '{value}' is not valid") from exc


def compare_versions(
    relationship: Relationship | str,
    actual: semver.Version,
    expected: semver.Version,
) -> bool:
    """Return whether ``actual <relationship> expected`` holds; ``""`` means ``gte``."""

    rel = parse_relationship(str(relationship))
    if rel is Relationship.GTE:
        return actual >= expected
    if rel is Relationship.LTE:
        return actual <= expected
    if rel is Relationship.LT:
        return actual < expected
    if rel is Relationship.GT:
        return actual > expected
    return actual == expected


def parse_version(value: str) -> semver.Version:
    return semver.Version.parse(value.strip())


__all__ = [
    "Relationship",
    "compare_versions",
    "parse_relationship",
    "parse_version",
]
