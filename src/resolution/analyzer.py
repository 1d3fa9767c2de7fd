"""Merge per-module requirement provenance into conflict verdicts."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Mapping, Optional, Sequence

from common.logging_utils import extra_context, is_debug_enabled
from registry.provider import ModuleMetadataProvider
from versioning import constraints
from versioning.models import Operator, VersionRange, VersionRequirement
from versioning.names import normalize_module_name

from .context import CancellationToken
from .models import Conflict, ConflictResult, ConflictType, DependencyInfo, Fix, Requirement

logger = logging.getLogger(__name__)

_LOWER_BOUND_OPERATORS = (Operator.GTE, Operator.GT, Operator.PESSIMISTIC)


def _parse_requirements(requirements: Sequence[Requirement]) -> List[VersionRequirement]:
    atoms: List[VersionRequirement] = []
    for req in requirements:
        parsed = constraints.try_parse(req.constraint)
        if parsed is not None:
            atoms.extend(parsed)
    return atoms


def _no_intersection_details(name: str, requirements: Sequence[Requirement]) -> str:
    lines = [f"No version of {name} satisfies all requirements:"]
    for req in requirements:
        lines.append(f"  - {req.imposed_by} requires {req.constraint}")
    return "\n".join(lines)


def _no_available_details(name: str, merged: VersionRange, available: Sequence[str]) -> str:
    sample = ", ".join(available[:3])
    more = "..." if len(available) > 3 else ""
    latest = constraints.highest_version(available) or "none"
    return (
        f"{name} requires {constraints.format_range(merged)}, but only versions "
        f"{sample}{more} are available (latest: {latest})"
    )


class ConflictAnalyzer:
    """Classify each module's merged requirements.

    Circular conflicts come from the resolver and are not re-derived here.
    """

    def __init__(self, provider: Optional[ModuleMetadataProvider] = None):
        self.provider = provider

    @staticmethod
    def analyze_module(
        name: str,
        requirements: Sequence[Requirement],
        available_versions: Sequence[str],
        pinned_versions: Optional[Mapping[str, str]] = None,
    ) -> ConflictResult:
        """Analyze one module; pure, no I/O.

        Unparseable constraints are treated as unconstrained.

        Args:
            name: Normalized module name.
            requirements: Ledger entries for the module.
            available_versions: Published versions, any order.
            pinned_versions: Manifest pins by normalized name, used to fill
                ``current_version`` on suggested fixes.
        """
        atoms = _parse_requirements(requirements)
        merged = constraints.intersect(atoms)

        if merged is None:
            return ConflictResult(
                has_conflict=True,
                conflict=Conflict(
                    type=ConflictType.NO_INTERSECTION,
                    details=_no_intersection_details(name, requirements),
                    suggested_fixes=ConflictAnalyzer._fixes_for_no_intersection(
                        name, requirements, pinned_versions or {}
                    ),
                ),
            )

        satisfying = constraints.find_satisfying_versions(available_versions, atoms)
        if not satisfying:
            return ConflictResult(
                has_conflict=True,
                conflict=Conflict(
                    type=ConflictType.NO_AVAILABLE_VERSION,
                    details=_no_available_details(name, merged, list(available_versions)),
                    suggested_fixes=ConflictAnalyzer._fixes_for_no_available_version(
                        name, requirements, merged, available_versions, pinned_versions or {}
                    ),
                ),
                merged_constraint=merged,
            )

        return ConflictResult(has_conflict=False, satisfying_versions=satisfying, merged_constraint=merged)

    @staticmethod
    def _fixes_for_no_intersection(
        name: str,
        requirements: Sequence[Requirement],
        pinned_versions: Mapping[str, str],
    ) -> List[Fix]:
        groups: Dict[str, List[Requirement]] = {}
        for req in requirements:
            groups.setdefault(req.constraint, []).append(req)
        if len(groups) != 2:
            return []

        group1, group2 = list(groups.values())
        if all(r.is_direct_dependency for r in group1):
            group1, group2 = group2, group1
        target = group2[0].constraint

        fixes: List[Fix] = []
        for req in group1:
            if req.is_direct_dependency:
                continue
            fixes.append(
                Fix(
                    module=req.imposed_by,
                    current_version=_current_version(req.imposed_by, pinned_versions),
                    suggested_version="latest",
                    reason=f"Update to a version that accepts {name} {target}",
                )
            )
        return fixes

    @staticmethod
    def _fixes_for_no_available_version(
        name: str,
        requirements: Sequence[Requirement],
        merged: VersionRange,
        available_versions: Sequence[str],
        pinned_versions: Mapping[str, str],
    ) -> List[Fix]:
        latest = constraints.highest_version(available_versions)
        if latest is None or merged.min is None:
            return []
        floor = merged.min
        if constraints.compare_versions(latest, floor.version) > 0 or (
            floor.inclusive and constraints.compare_versions(latest, floor.version) == 0
        ):
            return []

        fixes: List[Fix] = []
        seen = set()
        for req in requirements:
            if req.imposed_by in seen:
                continue
            parsed = constraints.try_parse(req.constraint) or []
            lower = [a for a in parsed if a.operator in _LOWER_BOUND_OPERATORS]
            if not lower or constraints.satisfies_all(latest, lower):
                continue
            seen.add(req.imposed_by)
            fixes.append(
                Fix(
                    module=req.imposed_by,
                    current_version=_current_version(req.imposed_by, pinned_versions),
                    suggested_version="previous",
                    reason=f"Downgrade to a version that accepts {name} <= {latest}",
                )
            )
        return fixes

    async def analyze(
        self,
        ledger: Dict[str, DependencyInfo],
        token: Optional[CancellationToken] = None,
        pinned_versions: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Analyze every ledger entry in place.

        Available versions come from the provider; a module whose lookup
        fails is logged and left unanalyzed.
        """
        for name, info in ledger.items():
            if token is not None and token.is_cancellation_requested:
                return
            if not info.requirements:
                continue

            available: List[str] = []
            if self.provider is not None:
                try:
                    module = await self.provider.resolve_module(name)
                    if module is not None:
                        available = list(module.available_versions)
                except asyncio.CancelledError:
                    raise
                except Exception as e:  # pylint: disable=broad-exception-caught
                    logger.warning("Could not analyze conflicts for %s: %s", name, e)
                    continue
            info.available_versions = available

            result = self.analyze_module(name, info.requirements, available, pinned_versions)
            info.apply(result)
            if is_debug_enabled(logger):
                logger.debug(
                    "Module analyzed",
                    extra=extra_context(
                        event="analyze",
                        component="analyzer",
                        action="analyze_module",
                        outcome=result.conflict.type.value if result.conflict else "ok",
                        target=name,
                        count=len(info.requirements),
                    ),
                )


def _current_version(module: str, pinned_versions: Mapping[str, str]) -> str:
    return pinned_versions.get(normalize_module_name(module), "current")
