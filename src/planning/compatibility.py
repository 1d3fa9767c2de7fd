"""Check whether a candidate module version fits the rest of a manifest."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from manifest.models import ModuleDeclaration
from registry.models import DependencySpec
from registry.provider import ModuleMetadataProvider
from versioning import constraints
from versioning.names import normalize_module_name, same_module

logger = logging.getLogger(__name__)


@dataclass
class CompatibilityConflict:
    """One manifest module whose requirement the candidate breaks (or vice versa)."""
    module_name: str
    current_version: str
    requirement: str


@dataclass
class VersionCompatibility:
    """Result of checking one candidate version."""
    version: str
    is_compatible: bool
    conflicts: List[CompatibilityConflict] = field(default_factory=list)


def _fails(version: str, requirement: Optional[str]) -> bool:
    if not requirement:
        return False
    parsed = constraints.try_parse(requirement)
    if parsed is None:
        return False
    return not constraints.satisfies_all(version, parsed)


async def declared_dependencies(
    declaration: ModuleDeclaration,
    provider: ModuleMetadataProvider,
    version: Optional[str] = None,
) -> Optional[List[DependencySpec]]:
    """Dependencies of a declaration at a version (default: its pin, else latest).

    Returns:
        The dependency list, or None when no metadata is available.

    Raises:
        Whatever the provider raises.
    """
    if declaration.is_vcs:
        if not declaration.repo_url:
            return None
        metadata = await provider.resolve_vcs_metadata(declaration.repo_url, declaration.vcs_ref)
        return list(metadata.dependencies) if metadata is not None else None

    module = await provider.resolve_module(normalize_module_name(declaration.name))
    if module is None:
        return None
    target = version or declaration.exact_version
    release = module.release_for(target) if target else module.default_release
    return list(release.dependencies) if release is not None else None


def _current_label(declaration: ModuleDeclaration) -> str:
    if declaration.is_vcs:
        return declaration.tag or declaration.ref or "git"
    return declaration.exact_version or "latest"


async def check_version_compatibility(
    target: ModuleDeclaration,
    version: str,
    declarations: Sequence[ModuleDeclaration],
    provider: ModuleMetadataProvider,
) -> VersionCompatibility:
    """Check a candidate version of ``target`` against every other declaration.

    Two directions are checked: the candidate release's own dependencies
    against versions pinned in the manifest, and every other module's
    requirement on ``target`` against the candidate version.

    Args:
        target: Module being upgraded.
        version: Candidate version.
        declarations: All manifest declarations.
        provider: Metadata source.

    Returns:
        VersionCompatibility listing each conflicting module.
    """
    conflicts: List[CompatibilityConflict] = []

    for dep in await declared_dependencies(target, provider, version) or []:
        pinned = next(
            (
                d for d in declarations
                if not d.is_vcs and d.exact_version and same_module(d.name, dep.name)
            ),
            None,
        )
        if pinned is not None and _fails(pinned.exact_version, dep.version_requirement):
            conflicts.append(
                CompatibilityConflict(
                    module_name=pinned.name,
                    current_version=pinned.exact_version,
                    requirement=dep.version_requirement or "",
                )
            )

    for other in declarations:
        if same_module(other.name, target.name):
            continue
        dependencies = await declared_dependencies(other, provider)
        if not dependencies:
            continue
        on_target = next((d for d in dependencies if same_module(d.name, target.name)), None)
        if on_target is not None and _fails(version, on_target.version_requirement):
            conflicts.append(
                CompatibilityConflict(
                    module_name=other.name,
                    current_version=_current_label(other),
                    requirement=on_target.version_requirement or "",
                )
            )

    if conflicts:
        logger.debug("%s %s conflicts with %d module(s)", target.name, version, len(conflicts))
    return VersionCompatibility(version=version, is_compatible=not conflicts, conflicts=conflicts)
