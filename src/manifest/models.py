"""Data models for manifest declarations."""

from dataclasses import dataclass, field
from typing import List, Optional

from constants import SourceKinds


@dataclass(frozen=True)
class ModuleDeclaration:
    """One ``mod`` entry of a manifest."""
    name: str
    exact_version: Optional[str] = None
    source_kind: SourceKinds = SourceKinds.REGISTRY
    repo_url: Optional[str] = None
    ref: Optional[str] = None
    tag: Optional[str] = None
    origin_line: int = -1  # 1-based line in the manifest, -1 when synthesized

    @property
    def is_vcs(self) -> bool:
        """True for modules sourced from a repository."""
        return self.source_kind is SourceKinds.VCS

    @property
    def vcs_ref(self) -> Optional[str]:
        """Preferred ref for metadata lookups: tag first, then ref."""
        return self.tag or self.ref


@dataclass
class ParseResult:
    """Declarations that parsed plus per-line error strings."""
    modules: List[ModuleDeclaration] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
