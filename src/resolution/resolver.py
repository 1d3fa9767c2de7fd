"""Recursive dependency graph builder.

Expands manifest declarations into a bounded-depth tree of
:class:`DependencyNode` while recording, for every module, which consumer
imposed which constraint (the requirement ledger).
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence, Tuple

from constants import Constants, SourceKinds
from common.logging_utils import extra_context, is_debug_enabled, Timer
from manifest.models import ModuleDeclaration
from registry.models import DependencySpec, ModuleMetadata, Release
from registry.provider import ModuleMetadataProvider
from versioning import constraints
from versioning.names import normalize_module_name

from .analyzer import ConflictAnalyzer
from .annotator import annotate_tree
from .context import CancellationToken, ResolutionContext, ResolverConfig
from .models import Conflict, ConflictType, DependencyNode, Fix, Requirement

logger = logging.getLogger(__name__)

Path = Tuple[str, ...]


def check_for_circular_dependency(name: str, ancestors: Sequence[str]) -> Optional[Conflict]:
    """Detect a repeat of ``name`` among the modules above it on one path.

    A module depending directly on itself (a trailing run of the same name)
    is not a cycle; it is only cut off by the depth bound.

    Args:
        name: Module being expanded.
        ancestors: Names from the root down to the parent, in order.

    Returns:
        A circular Conflict, or None.
    """
    key = normalize_module_name(name)
    keys = [normalize_module_name(a) for a in ancestors]
    end = len(keys)
    while end and keys[end - 1] == key:
        end -= 1
    if key not in keys[:end]:
        return None

    start = keys.index(key)
    cycle = list(ancestors[start:]) + [name]
    return Conflict(
        type=ConflictType.CIRCULAR,
        details=f"Circular dependency detected: {' -> '.join(cycle)}",
        suggested_fixes=[
            Fix(
                module=ancestors[-1],
                current_version="current",
                suggested_version="none",
                reason="Remove this dependency to break the circular reference",
            )
        ],
    )


def _display_version(
    declaration: ModuleDeclaration,
    requirement: Optional[str],
    pinned: Optional[str],
    is_direct: bool,
) -> Optional[str]:
    if is_direct and declaration.exact_version:
        return declaration.exact_version
    if declaration.is_vcs:
        if declaration.tag:
            return f"tag: {declaration.tag}"
        if declaration.ref:
            return f"ref: {declaration.ref}"
        return "git"
    if requirement and not is_direct:
        if pinned:
            return f"requires {requirement}, resolved: {pinned}"
        return f"requires {requirement}"
    if pinned:
        return pinned
    return constraints.first_version_in(requirement) if requirement else None


def _violates(pinned: Optional[str], requirement: Optional[str]) -> bool:
    if not pinned or not requirement:
        return False
    parsed = constraints.try_parse(requirement)
    if parsed is None:
        return False
    return not constraints.satisfies_all(pinned, parsed)


def select_release(
    module: ModuleMetadata,
    pinned_version: Optional[str],
    requirement: Optional[str],
) -> Optional[Release]:
    """Pick the release whose dependency list should be expanded.

    An explicit pin selects that release; otherwise the highest version
    satisfying the inherited requirement. Falls back to the default release.
    """
    if pinned_version:
        return module.release_for(pinned_version) or module.default_release
    if requirement:
        parsed = constraints.try_parse(requirement)
        if parsed:
            matching = constraints.find_satisfying_versions(
                [r.version for r in module.releases], parsed
            )
            best = constraints.highest_version(matching)
            if best is not None:
                return module.release_for(best) or module.default_release
    return module.default_release


class DependencyResolver:
    """Builds dependency trees from manifest declarations.

    Each call to :meth:`resolve` owns a fresh :class:`ResolutionContext`, so
    one resolver instance may serve concurrent invocations.
    """

    def __init__(self, provider: ModuleMetadataProvider, config: Optional[ResolverConfig] = None):
        self.provider = provider
        self.config = config or ResolverConfig()
        self.analyzer = ConflictAnalyzer(provider)

    async def resolve(
        self,
        declarations: Sequence[ModuleDeclaration],
        token: Optional[CancellationToken] = None,
    ) -> List[DependencyNode]:
        """Resolve, analyze and annotate; returns the root nodes.

        A cancelled run returns an empty list.
        """
        nodes, _ = await self.resolve_with_ledger(declarations, token)
        return nodes

    async def resolve_with_ledger(
        self,
        declarations: Sequence[ModuleDeclaration],
        token: Optional[CancellationToken] = None,
    ) -> Tuple[List[DependencyNode], ResolutionContext]:
        """Like :meth:`resolve` but also return the context holding the ledger."""
        ctx = ResolutionContext(config=self.config, token=token)

        with Timer() as t:
            self._record_manifest_pins(declarations, ctx)

            roots: List[DependencyNode] = []
            for declaration in declarations:
                if ctx.cancelled:
                    return [], ctx
                logger.info("Resolving %s", declaration.name)
                node = await self._build_node(declaration, 0, True, None, None, (), ctx)
                roots.append(node)

            if ctx.cancelled:
                return [], ctx
            await self.analyzer.analyze(ctx.ledger, token, ctx.pinned_versions)

            if ctx.cancelled:
                return [], ctx
            annotate_tree(roots, ctx.ledger)

        if is_debug_enabled(logger):
            logger.debug(
                "Resolution complete",
                extra=extra_context(
                    event="complete",
                    component="resolver",
                    action="resolve",
                    outcome="success",
                    count=len(ctx.ledger),
                    duration_ms=t.duration_ms(),
                ),
            )
        return roots, ctx

    @staticmethod
    def _record_manifest_pins(declarations: Sequence[ModuleDeclaration], ctx: ResolutionContext) -> None:
        for declaration in declarations:
            if declaration.exact_version and not declaration.is_vcs:
                key = normalize_module_name(declaration.name)
                ctx.pinned_versions[key] = declaration.exact_version
                ctx.add_requirement(
                    key,
                    Requirement(
                        constraint=f"= {declaration.exact_version}",
                        imposed_by=Constants.MANIFEST_ORIGIN,
                        path=[declaration.name],
                        is_direct_dependency=True,
                    ),
                )

    async def _build_node(
        self,
        declaration: ModuleDeclaration,
        depth: int,
        is_direct: bool,
        imposed_by: Optional[str],
        requirement: Optional[str],
        ancestors: Path,
        ctx: ResolutionContext,
    ) -> DependencyNode:
        pinned = ctx.pinned_version(declaration.name)
        node = DependencyNode(
            name=declaration.name,
            version=declaration.exact_version or pinned,
            source_kind=declaration.source_kind,
            depth=depth,
            is_direct_dependency=is_direct,
            repo_url=declaration.repo_url,
            ref=declaration.ref,
            tag=declaration.tag,
            version_requirement=requirement,
        )

        circular = check_for_circular_dependency(declaration.name, ancestors)
        if circular is not None or depth >= self.config.max_depth:
            node.conflict = circular
            if is_debug_enabled(logger):
                logger.debug(
                    "Branch terminated",
                    extra=extra_context(
                        event="terminate",
                        component="resolver",
                        action="build_node",
                        outcome="circular" if circular else "max_depth",
                        target=declaration.name,
                        depth=depth,
                    ),
                )
            return node

        path = ancestors + (declaration.name,)
        if imposed_by and requirement:
            ctx.add_requirement(
                declaration.name,
                Requirement(
                    constraint=requirement,
                    imposed_by=imposed_by,
                    path=list(path),
                    is_direct_dependency=is_direct,
                ),
            )

        node.display_version = _display_version(declaration, requirement, pinned, is_direct)
        node.is_constraint_violated = _violates(pinned, requirement)

        dependencies = await self._fetch_dependencies(declaration, requirement, node)
        node.children = await self._expand_children(declaration.name, dependencies, depth, path, ctx)
        return node

    async def _fetch_dependencies(
        self,
        declaration: ModuleDeclaration,
        requirement: Optional[str],
        node: DependencyNode,
    ) -> List[DependencySpec]:
        """Look up the declared dependencies of one node; failures yield []."""
        try:
            if declaration.is_vcs:
                if not declaration.repo_url:
                    return []
                metadata = await self.provider.resolve_vcs_metadata(declaration.repo_url, declaration.vcs_ref)
                return list(metadata.dependencies) if metadata is not None else []

            module = await self.provider.resolve_module(normalize_module_name(declaration.name))
            if module is None:
                return []
            release = select_release(module, declaration.exact_version, requirement)
            if release is None:
                return []
            node.resolved_version = release.version
            return list(release.dependencies)
        except asyncio.CancelledError:
            raise
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.warning("Could not fetch dependencies for %s: %s", declaration.name, e)
            return []

    async def _expand_children(
        self,
        parent: str,
        dependencies: List[DependencySpec],
        depth: int,
        path: Path,
        ctx: ResolutionContext,
    ) -> List[DependencyNode]:
        declarations = [
            ModuleDeclaration(name=normalize_module_name(dep.name), source_kind=SourceKinds.REGISTRY)
            for dep in dependencies
        ]

        if ctx.config.concurrency <= 1 or len(declarations) <= 1:
            children: List[DependencyNode] = []
            for child, dep in zip(declarations, dependencies):
                if ctx.cancelled:
                    break
                children.append(
                    await self._build_node(child, depth + 1, False, parent, dep.version_requirement, path, ctx)
                )
            return children

        semaphore = asyncio.Semaphore(ctx.config.concurrency)

        async def build(child: ModuleDeclaration, dep: DependencySpec) -> Optional[DependencyNode]:
            async with semaphore:
                if ctx.cancelled:
                    return None
                return await self._build_node(child, depth + 1, False, parent, dep.version_requirement, path, ctx)

        built = await asyncio.gather(*(build(c, d) for c, d in zip(declarations, dependencies)))
        return [n for n in built if n is not None]


async def resolve(
    declarations: Sequence[ModuleDeclaration],
    provider: ModuleMetadataProvider,
    token: Optional[CancellationToken] = None,
    config: Optional[ResolverConfig] = None,
) -> List[DependencyNode]:
    """Resolve declarations into annotated dependency trees."""
    return await DependencyResolver(provider, config).resolve(declarations, token)
