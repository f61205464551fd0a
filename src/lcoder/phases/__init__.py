"""Shared persona enumeration for the agent stages."""

from __future__ import annotations

from enum import Enum


class PhaseName(str, Enum):
    """Enumeration of the personas a session can address."""

    PLANNER = "planner"
    EXECUTOR = "executor"
    REVIEWER = "reviewer"

    @classmethod
    def parse(cls, value: str) -> "PhaseName | None":
        normalised = value.strip().lower()
        for member in cls:
            if member.value == normalised:
                return member
        return None


PHASE_SEQUENCE = [
    PhaseName.PLANNER,
    PhaseName.EXECUTOR,
    PhaseName.REVIEWER,
]


__all__ = ["PHASE_SEQUENCE", "PhaseName"]
