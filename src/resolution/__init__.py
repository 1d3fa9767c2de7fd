"""Dependency resolution: graph building, conflict analysis and annotation."""

from .analyzer import ConflictAnalyzer
from .annotator import annotate_tree, find_conflicts
from .context import CancellationToken, ResolutionContext, ResolverConfig
from .models import (
    Conflict,
    ConflictResult,
    ConflictType,
    DependencyInfo,
    DependencyNode,
    Fix,
    Requirement,
)
from .resolver import DependencyResolver, check_for_circular_dependency, resolve

__all__ = [
    "CancellationToken",
    "Conflict",
    "ConflictAnalyzer",
    "ConflictResult",
    "ConflictType",
    "DependencyInfo",
    "DependencyNode",
    "DependencyResolver",
    "Fix",
    "Requirement",
    "ResolutionContext",
    "ResolverConfig",
    "annotate_tree",
    "check_for_circular_dependency",
    "find_conflicts",
    "resolve",
]
