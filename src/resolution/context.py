"""Per-invocation resolution state and tunables."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from constants import Constants
from versioning.names import normalize_module_name

from .models import DependencyInfo, Requirement


class CancellationToken:
    """Cooperative cancellation flag shared with the caller."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        """Request cancellation; the resolver returns an empty result."""
        self._cancelled = True

    @property
    def is_cancellation_requested(self) -> bool:
        return self._cancelled


@dataclass
class ResolverConfig:
    """Resolver tunables."""

    max_depth: int = field(default_factory=lambda: Constants.MAX_DEPTH)
    concurrency: int = field(default_factory=lambda: Constants.RESOLVE_CONCURRENCY)

    @classmethod
    def from_args(cls, args: Any) -> "ResolverConfig":
        """Create config from CLI arguments, falling back to Constants."""
        config = cls()
        if getattr(args, "MAX_DEPTH", None) is not None:
            config.max_depth = int(args.MAX_DEPTH)
        if getattr(args, "CONCURRENCY", None) is not None:
            config.concurrency = max(1, int(args.CONCURRENCY))
        return config


@dataclass
class ResolutionContext:
    """State owned by exactly one resolve() call.

    The requirement ledger and manifest pins live here rather than on the
    resolver so concurrent resolutions never share them. The active path is
    not stored: it is passed down each branch as a tuple.
    """

    config: ResolverConfig = field(default_factory=ResolverConfig)
    token: Optional[CancellationToken] = None
    ledger: Dict[str, DependencyInfo] = field(default_factory=dict)
    pinned_versions: Dict[str, str] = field(default_factory=dict)

    @property
    def cancelled(self) -> bool:
        return self.token is not None and self.token.is_cancellation_requested

    def add_requirement(self, name: str, requirement: Requirement) -> None:
        """Record a requirement under the module's normalized name."""
        key = normalize_module_name(name)
        self.ledger.setdefault(key, DependencyInfo()).requirements.append(requirement)

    def pinned_version(self, name: str) -> Optional[str]:
        """Version the manifest pins for a module, if any."""
        return self.pinned_versions.get(normalize_module_name(name))
