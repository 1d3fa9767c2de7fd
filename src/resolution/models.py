"""Data models for dependency resolution results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from constants import SourceKinds
from versioning.models import VersionRange


class ConflictType(Enum):
    """Why a module's requirements cannot be met."""
    NO_INTERSECTION = "no-intersection"
    NO_AVAILABLE_VERSION = "no-available-version"
    CIRCULAR = "circular"


@dataclass
class Requirement:
    """A constraint one module imposes on another (a ledger entry)."""
    constraint: str
    imposed_by: str
    path: List[str]
    is_direct_dependency: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "constraint": self.constraint,
            "imposed_by": self.imposed_by,
            "path": list(self.path),
            "is_direct_dependency": self.is_direct_dependency,
        }


@dataclass
class Fix:
    """A suggested change that may resolve a conflict."""
    module: str
    current_version: str
    suggested_version: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "module": self.module,
            "current_version": self.current_version,
            "suggested_version": self.suggested_version,
            "reason": self.reason,
        }


@dataclass
class Conflict:
    """A modeled verdict attached to ledger entries and nodes; never raised."""
    type: ConflictType
    details: str
    suggested_fixes: List[Fix] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "details": self.details,
            "suggested_fixes": [f.to_dict() for f in self.suggested_fixes],
        }


@dataclass
class ConflictResult:
    """Outcome of analyzing one module's merged requirements."""
    has_conflict: bool
    conflict: Optional[Conflict] = None
    satisfying_versions: Optional[List[str]] = None
    merged_constraint: Optional[VersionRange] = None


@dataclass
class DependencyInfo:
    """Everything known about one module across the whole tree."""
    requirements: List[Requirement] = field(default_factory=list)
    merged_constraint: Optional[VersionRange] = None
    available_versions: Optional[List[str]] = None
    satisfying_versions: Optional[List[str]] = None
    conflict: Optional[Conflict] = None

    def apply(self, result: ConflictResult) -> None:
        """Store an analysis result."""
        self.conflict = result.conflict
        self.satisfying_versions = result.satisfying_versions
        self.merged_constraint = result.merged_constraint

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requirements": [r.to_dict() for r in self.requirements],
            "merged_constraint": self.merged_constraint.to_dict() if self.merged_constraint else None,
            "satisfying_versions": self.satisfying_versions,
            "conflict": self.conflict.to_dict() if self.conflict else None,
        }


@dataclass
class DependencyNode:
    """One occurrence of a module in the dependency tree."""
    name: str
    version: Optional[str] = None
    source_kind: SourceKinds = SourceKinds.REGISTRY
    children: List["DependencyNode"] = field(default_factory=list)
    depth: int = 0
    is_direct_dependency: bool = False
    repo_url: Optional[str] = None
    ref: Optional[str] = None
    tag: Optional[str] = None
    version_requirement: Optional[str] = None
    resolved_version: Optional[str] = None  # release whose dependencies were expanded
    display_version: Optional[str] = None
    conflict: Optional[Conflict] = None
    is_constraint_violated: bool = False

    def walk(self):
        """Yield this node and every descendant, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "source": self.source_kind.value,
            "depth": self.depth,
            "is_direct_dependency": self.is_direct_dependency,
            "repo_url": self.repo_url,
            "ref": self.ref,
            "tag": self.tag,
            "version_requirement": self.version_requirement,
            "resolved_version": self.resolved_version,
            "display_version": self.display_version,
            "is_constraint_violated": self.is_constraint_violated,
            "conflict": self.conflict.to_dict() if self.conflict else None,
            "children": [c.to_dict() for c in self.children],
        }
