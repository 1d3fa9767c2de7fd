"""Text views and JSON export for resolved dependency trees."""

import json
import logging
import sys
from typing import Dict, Iterable, List, Optional

from constants import ExitCodes, SourceKinds
from versioning.names import normalize_module_name

from .annotator import find_conflicts
from .models import DependencyInfo, DependencyNode

_BRANCH = "├── "
_LAST = "└── "
_PIPE = "│   "
_BLANK = "    "


def _source_tag(node: DependencyNode) -> str:
    return " [git]" if node.source_kind is SourceKinds.VCS else " [forge]"


def _node_lines(node: DependencyNode, prefix: str, is_last: bool) -> List[str]:
    connector = _LAST if is_last else _BRANCH
    version = f" ({node.display_version})" if node.display_version else ""
    marker = ""
    if node.conflict is not None:
        marker = " [conflict]"
    elif node.is_constraint_violated:
        marker = " [violated]"

    lines = [f"{prefix}{connector}{node.name}{version}{_source_tag(node)}{marker}"]
    child_prefix = prefix + (_BLANK if is_last else _PIPE)

    if node.conflict is not None:
        for line in node.conflict.details.split("\n"):
            lines.append(f"{child_prefix}{line}")
        for fix in node.conflict.suggested_fixes:
            lines.append(f"{child_prefix}  Fix: {fix.reason}")
    elif node.is_constraint_violated and node.version_requirement and node.version:
        lines.append(
            f"{child_prefix}Constraint violation: requires {node.version_requirement}, "
            f"but Puppetfile has {node.version}"
        )

    for i, child in enumerate(node.children):
        lines.extend(_node_lines(child, child_prefix, i == len(node.children) - 1))
    return lines


def generate_tree_text(nodes: List[DependencyNode]) -> str:
    """Render root nodes as a box-drawing tree, one line per node."""
    lines: List[str] = []
    for i, node in enumerate(nodes):
        lines.extend(_node_lines(node, "", i == len(nodes) - 1))
    return "\n".join(lines) + ("\n" if lines else "")


def _unique_nodes(nodes: Iterable[DependencyNode]) -> List[DependencyNode]:
    seen: Dict[str, DependencyNode] = {}
    for root in nodes:
        for node in root.walk():
            key = normalize_module_name(node.name)
            existing = seen.get(key)
            if existing is None or (node.is_direct_dependency and not existing.is_direct_dependency):
                seen[key] = node
    return sorted(seen.values(), key=lambda n: n.name.lower())


def generate_list_text(nodes: List[DependencyNode]) -> str:
    """Render a de-duplicated, sorted list split into direct and transitive sections."""
    unique = _unique_nodes(nodes)
    direct = [n for n in unique if n.is_direct_dependency]
    transitive = [n for n in unique if not n.is_direct_dependency]

    out = [f"Total Dependencies: {len(unique)}", ""]
    if direct:
        out.append(f"Direct Dependencies ({len(direct)}):")
        for node in direct:
            version = f" ({node.version})" if node.version else ""
            out.append(f"  • {node.name}{version}{_source_tag(node)}")
        out.append("")
    if transitive:
        out.append(f"Transitive Dependencies ({len(transitive)}):")
        for node in transitive:
            version = f" ({node.version})" if node.version else ""
            out.append(f"  • {node.name}{version}{_source_tag(node)}")
    return "\n".join(out) + "\n"


def generate_conflicts_text(ledger: Dict[str, DependencyInfo]) -> str:
    """Render the conflicts-only view."""
    lines = find_conflicts(ledger)
    if not lines:
        return "No dependency conflicts found.\n"
    return "\n".join(lines) + "\n"


def export_json(
    nodes: List[DependencyNode],
    path: str,
    ledger: Optional[Dict[str, DependencyInfo]] = None,
    parse_errors: Optional[List[str]] = None,
) -> None:
    """Exports the resolved tree to a JSON file.

    Args:
        nodes (list): Root dependency nodes.
        path (str): File path to export the JSON.
        ledger (dict): Requirement ledger, exported under ``modules``.
        parse_errors (list): Manifest parse errors.
    """
    ledger = ledger or {}
    data = {
        "dependencies": [n.to_dict() for n in nodes],
        "modules": {name: info.to_dict() for name, info in ledger.items()},
        "conflicts": find_conflicts(ledger),
        "parse_errors": list(parse_errors or []),
    }
    try:
        with open(path, "w", encoding="utf-8") as file:
            json.dump(data, file, ensure_ascii=False, indent=4)
        logging.info("JSON file has been successfully exported at: %s", path)
    except OSError as e:
        logging.error("JSON file couldn't be written to disk: %s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)
