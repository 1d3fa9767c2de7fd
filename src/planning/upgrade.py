"""Upgrade plans: the newest manifest-compatible version of each module."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from manifest.models import ModuleDeclaration
from registry.provider import ModuleMetadataProvider
from versioning import constraints
from versioning.names import normalize_module_name

from .compatibility import CompatibilityConflict, check_version_compatibility

logger = logging.getLogger(__name__)

UNVERSIONED = "unversioned"


@dataclass
class UpgradeCandidate:
    """Upgrade verdict for one registry declaration."""
    module: ModuleDeclaration
    current_version: str
    max_safe_version: str
    available_versions: List[str] = field(default_factory=list)
    is_upgradeable: bool = False
    blocked_by: Optional[List[str]] = None
    conflicts: List[CompatibilityConflict] = field(default_factory=list)


@dataclass
class UpgradePlan:
    """Upgrade verdicts for a whole manifest."""
    candidates: List[UpgradeCandidate] = field(default_factory=list)
    git_modules: List[ModuleDeclaration] = field(default_factory=list)
    has_conflicts: bool = False

    @property
    def total_modules(self) -> int:
        return len(self.candidates)

    @property
    def total_upgradeable(self) -> int:
        return sum(1 for c in self.candidates if c.is_upgradeable)

    @property
    def total_git_modules(self) -> int:
        return len(self.git_modules)


def _is_newer(candidate: str, current: Optional[str]) -> bool:
    return current is None or constraints.compare_versions(candidate, current) > 0


async def _find_max_safe_version(
    declaration: ModuleDeclaration,
    declarations: Sequence[ModuleDeclaration],
    available: Sequence[str],
    provider: ModuleMetadataProvider,
) -> Optional[str]:
    for version in constraints.sort_versions(available, descending=True):
        if not _is_newer(version, declaration.exact_version):
            break
        compatibility = await check_version_compatibility(declaration, version, declarations, provider)
        if compatibility.is_compatible:
            return version
    return None


async def analyze_module_upgrade(
    declaration: ModuleDeclaration,
    declarations: Sequence[ModuleDeclaration],
    provider: ModuleMetadataProvider,
) -> UpgradeCandidate:
    """Find the newest compatible version of one module, or what blocks it."""
    current = declaration.exact_version or UNVERSIONED
    not_upgradeable = UpgradeCandidate(module=declaration, current_version=current, max_safe_version=current)
    try:
        module = await provider.resolve_module(normalize_module_name(declaration.name))
        available = list(module.available_versions) if module is not None else []
        if not available:
            return not_upgradeable

        safe = await _find_max_safe_version(declaration, declarations, available, provider)
        candidate = UpgradeCandidate(
            module=declaration,
            current_version=current,
            max_safe_version=safe or current,
            available_versions=available,
            is_upgradeable=safe is not None,
        )
        if safe is None and declaration.exact_version:
            latest = constraints.highest_version(available)
            if latest is not None and _is_newer(latest, declaration.exact_version):
                compatibility = await check_version_compatibility(declaration, latest, declarations, provider)
                if not compatibility.is_compatible:
                    candidate.conflicts = compatibility.conflicts
                    candidate.blocked_by = [c.module_name for c in compatibility.conflicts]
        return candidate
    except asyncio.CancelledError:
        raise
    except Exception as e:  # pylint: disable=broad-exception-caught
        logger.warning("Failed to analyze upgrade for %s: %s", declaration.name, e)
        return not_upgradeable


async def create_upgrade_plan(
    declarations: Sequence[ModuleDeclaration],
    provider: ModuleMetadataProvider,
) -> UpgradePlan:
    """Analyze every registry declaration of a manifest."""
    plan = UpgradePlan(git_modules=[d for d in declarations if d.is_vcs])
    for declaration in declarations:
        if declaration.is_vcs:
            continue
        logger.info("Checking upgrades for %s", declaration.name)
        candidate = await analyze_module_upgrade(declaration, declarations, provider)
        plan.candidates.append(candidate)
        if candidate.conflicts:
            plan.has_conflicts = True
    return plan


def generate_upgrade_summary(plan: UpgradePlan) -> str:
    """Render an upgrade plan as Markdown."""
    lines = [
        "# Upgrade Plan Summary",
        "",
        f"**Total Forge Modules:** {plan.total_modules}",
        f"**Upgradeable:** {plan.total_upgradeable}",
        f"**Blocked:** {plan.total_modules - plan.total_upgradeable}",
        f"**Git Modules:** {plan.total_git_modules}",
        f"**Has Conflicts:** {'Yes' if plan.has_conflicts else 'No'}",
        "",
    ]

    if plan.git_modules:
        lines += [
            f"## Git Modules ({plan.total_git_modules})",
            "",
            "The following modules are sourced from Git repositories and cannot be automatically upgraded:",
            "",
        ]
        for mod in plan.git_modules:
            ref = mod.ref or mod.tag
            ref_text = f" @ {ref}" if ref else ""
            lines.append(f"- **{mod.name}**{ref_text} ({mod.repo_url or 'git'})")
        lines.append("")

    upgradeable = [c for c in plan.candidates if c.is_upgradeable]
    if upgradeable:
        lines += [f"## Upgradeable Modules ({len(upgradeable)})", ""]
        for c in upgradeable:
            lines.append(f"- **{c.module.name}**: {c.current_version} → {c.max_safe_version}")
        lines.append("")

    blocked = [c for c in plan.candidates if not c.is_upgradeable and c.blocked_by]
    if blocked:
        lines += [f"## Blocked Modules ({len(blocked)})", ""]
        for c in blocked:
            lines.append(f"- **{c.module.name}**: {c.current_version} (blocked by: {', '.join(c.blocked_by)})")
            for conflict in c.conflicts:
                lines.append(
                    f"  - {conflict.module_name} requires {conflict.requirement}, "
                    f"but has {conflict.current_version}"
                )
        lines.append("")

    current = [c for c in plan.candidates if not c.is_upgradeable and not c.blocked_by]
    if current:
        lines += [f"## Up-to-Date Modules ({len(current)})", ""]
        for c in current:
            lines.append(f"- **{c.module.name}**: {c.current_version}")
        lines.append("")

    return "\n".join(lines)


def apply_upgrades_to_content(content: str, plan: UpgradePlan) -> str:
    """Rewrite pinned versions on the declaration lines of upgradeable modules."""
    lines = content.split("\n")
    for c in plan.candidates:
        if not c.is_upgradeable:
            continue
        index = c.module.origin_line - 1
        if index < 0 or index >= len(lines):
            continue
        name = re.escape(c.module.name)
        if c.current_version == UNVERSIONED:
            lines[index] = re.sub(
                rf"""(mod\s+(['"]){name}\2)""",
                lambda m: f"{m.group(1)}, {m.group(2)}{c.max_safe_version}{m.group(2)}",
                lines[index],
                count=1,
            )
        else:
            lines[index] = re.sub(
                rf"""(['"]){re.escape(c.current_version)}\1""",
                lambda m: f"{m.group(1)}{c.max_safe_version}{m.group(1)}",
                lines[index],
                count=1,
            )
    return "\n".join(lines)
