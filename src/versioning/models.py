"""Data models for version constraints and ranges."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Operator(Enum):
    """Comparison operators accepted in a version requirement."""
    GTE = ">="
    GT = ">"
    LTE = "<="
    LT = "<"
    EQ = "="
    PESSIMISTIC = "~>"


@dataclass(frozen=True)
class VersionRequirement:
    """A single constraint atom, e.g. ``>= 4.0.0``."""
    operator: Operator
    version: str

    def __str__(self) -> str:
        return f"{self.operator.value} {self.version}"


@dataclass(frozen=True)
class Bound:
    """One side of a version range."""
    version: str
    inclusive: bool


@dataclass(frozen=True)
class VersionRange:
    """Merged constraint; a missing bound means unbounded on that side."""
    min: Optional[Bound] = None
    max: Optional[Bound] = None

    def to_dict(self) -> dict:
        """Serialize for JSON export."""
        out = {}
        if self.min is not None:
            out["min"] = {"version": self.min.version, "inclusive": self.min.inclusive}
        if self.max is not None:
            out["max"] = {"version": self.max.version, "inclusive": self.max.inclusive}
        return out
