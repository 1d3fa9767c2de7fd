"""Data models for module metadata returned by providers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class ProviderFetchError(RuntimeError):
    """Raised when module metadata cannot be fetched or decoded."""


@dataclass(frozen=True)
class DependencySpec:
    """A dependency declared in module metadata."""
    name: str
    version_requirement: Optional[str] = None

    @classmethod
    def from_metadata(cls, raw: Any) -> Optional["DependencySpec"]:
        """Build from a ``{"name", "version_requirement"}`` mapping; None if unusable."""
        if not isinstance(raw, dict):
            return None
        name = raw.get("name")
        if not isinstance(name, str) or not name.strip():
            return None
        requirement = raw.get("version_requirement")
        if not isinstance(requirement, str) or not requirement.strip():
            requirement = None
        return cls(name=name.strip(), version_requirement=requirement)


def dependencies_from_metadata(metadata: Any) -> List[DependencySpec]:
    """Extract dependency specs from a metadata mapping; absent lists become []."""
    if not isinstance(metadata, dict):
        return []
    raw_deps = metadata.get("dependencies") or []
    if not isinstance(raw_deps, list):
        return []
    deps = []
    for raw in raw_deps:
        dep = DependencySpec.from_metadata(raw)
        if dep is not None:
            deps.append(dep)
    return deps


@dataclass
class Release:
    """One published version of a module."""
    version: str
    dependencies: List[DependencySpec] = field(default_factory=list)


@dataclass
class ModuleMetadata:
    """Registry view of a module: its versions and their dependencies."""
    name: str
    available_versions: List[str] = field(default_factory=list)
    releases: List[Release] = field(default_factory=list)
    default_release: Optional[Release] = None

    def release_for(self, version: Optional[str]) -> Optional[Release]:
        """Return the release with exactly this version string."""
        if version is None:
            return None
        for release in self.releases:
            if release.version == version:
                return release
        return None


@dataclass
class VcsMetadata:
    """``metadata.json`` contents read from a repository."""
    name: Optional[str] = None
    version: Optional[str] = None
    dependencies: List[DependencySpec] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "VcsMetadata":
        """Build from a parsed metadata.json mapping."""
        name = data.get("name")
        version = data.get("version")
        return cls(
            name=name if isinstance(name, str) else None,
            version=version if isinstance(version, str) else None,
            dependencies=dependencies_from_metadata(data),
        )
