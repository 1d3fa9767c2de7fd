"""Copy analysis verdicts from the ledger back onto tree nodes."""

from typing import Dict, Iterable, List

from versioning.names import normalize_module_name

from .models import DependencyInfo, DependencyNode


def annotate_tree(nodes: Iterable[DependencyNode], ledger: Dict[str, DependencyInfo]) -> None:
    """Attach each module's ledger conflict to every node of that module."""
    for root in nodes:
        for node in root.walk():
            info = ledger.get(normalize_module_name(node.name))
            if info is not None and info.conflict is not None:
                node.conflict = info.conflict


def find_conflicts(ledger: Dict[str, DependencyInfo]) -> List[str]:
    """Conflicts-only view: details followed by one line per suggested fix."""
    lines: List[str] = []
    for info in ledger.values():
        if info.conflict is None:
            continue
        lines.append(info.conflict.details)
        for fix in info.conflict.suggested_fixes:
            lines.append(f"  Suggestion: {fix.reason}")
    return lines
