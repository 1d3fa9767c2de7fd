"""Version constraint parsing, comparison and intersection.

Constraint strings follow Puppet module metadata conventions:
``>= 4.0.0 < 9.0.0``, ``~> 1.2.0``, ``1.x``, ``1.2.x``, ``= 1.2.3`` or a
bare version (treated as ``=``). Whitespace-separated clauses are ANDed.
"""

import functools
import logging
import re
from typing import Iterable, List, Optional, Sequence, Tuple

import semantic_version

from .models import Bound, Operator, VersionRange, VersionRequirement

logger = logging.getLogger(__name__)

_OPERATORS = {op.value: op for op in Operator}
_GLUED_RE = re.compile(r"^(>=|<=|~>|>|<|=)(\S+)$")
_WILDCARD_RE = re.compile(r"^(\d+)(?:\.(\d+))?\.[xX*](?:\.[xX*])?$")
_VERSION_RE = re.compile(r"^v?\d[0-9A-Za-z.\-+]*$")
_LEADING_DIGITS_RE = re.compile(r"^\d+")
_PRERELEASE_RE = re.compile(r"-(alpha|beta|rc|pre|dev|snapshot)", re.IGNORECASE)


class ConstraintParseError(ValueError):
    """Raised when a version requirement string cannot be parsed."""


def _split_version(version: str) -> Tuple[List[int], str]:
    """Split a version into numeric main components and a pre-release suffix."""
    main, _, pre = version.strip().lstrip("vV").partition("-")
    parts = []
    for part in main.split("."):
        m = _LEADING_DIGITS_RE.match(part)
        parts.append(int(m.group(0)) if m else 0)
    return parts, pre


def compare_versions(left: str, right: str) -> int:
    """Compare two version strings.

    Returns:
        Negative if left < right, 0 if equal, positive if left > right.
    """
    l_parts, l_pre = _split_version(left)
    r_parts, r_pre = _split_version(right)
    for i in range(max(len(l_parts), len(r_parts))):
        a = l_parts[i] if i < len(l_parts) else 0
        b = r_parts[i] if i < len(r_parts) else 0
        if a != b:
            return -1 if a < b else 1

    # A release sorts above any of its pre-releases (1.0.0 > 1.0.0-beta)
    if not l_pre and r_pre:
        return 1
    if l_pre and not r_pre:
        return -1
    if l_pre == r_pre:
        return 0
    return -1 if l_pre < r_pre else 1


version_key = functools.cmp_to_key(compare_versions)


def sort_versions(versions: Iterable[str], descending: bool = False) -> List[str]:
    """Return versions ordered by :func:`compare_versions`."""
    return sorted(versions, key=version_key, reverse=descending)


def highest_version(versions: Iterable[str]) -> Optional[str]:
    """Return the highest version, or None for an empty input."""
    ordered = sort_versions(versions, descending=True)
    return ordered[0] if ordered else None


def is_safe_version(version: str) -> bool:
    """True for versions without a pre-release marker such as ``-rc1``."""
    return not _PRERELEASE_RE.search(version)


def _coerce(version: str) -> semantic_version.Version:
    try:
        return semantic_version.Version.coerce(version.lstrip("vV"))
    except ValueError as e:
        raise ConstraintParseError(f"Invalid version '{version}': {e}") from e


def _pessimistic(version: str) -> List[VersionRequirement]:
    """Desugar ``~> X`` into a ``>= X`` / ``< next`` pair.

    ``~> 1.2.3`` and ``~> 1.2`` allow ``< 1.3.0``; a bare ``~> 1`` allows ``< 2.0.0``.
    """
    parsed = _coerce(version)
    significant = len(version.split("-", 1)[0].split("."))
    upper = parsed.next_minor() if significant >= 2 else parsed.next_major()
    return [
        VersionRequirement(Operator.GTE, version),
        VersionRequirement(Operator.LT, str(upper)),
    ]


def _wildcard(token: str) -> Optional[List[VersionRequirement]]:
    m = _WILDCARD_RE.match(token)
    if not m:
        return None
    major, minor = m.group(1), m.group(2)
    if minor is None:
        lower = _coerce(major)
        upper = lower.next_major()
    else:
        lower = _coerce(f"{major}.{minor}")
        upper = lower.next_minor()
    return [
        VersionRequirement(Operator.GTE, str(lower)),
        VersionRequirement(Operator.LT, str(upper)),
    ]


def _check_version(token: str, constraint: str) -> str:
    if not _VERSION_RE.match(token):
        raise ConstraintParseError(f"Invalid version '{token}' in constraint '{constraint}'")
    return token


def _atoms(operator: Operator, version: str) -> List[VersionRequirement]:
    if operator is Operator.PESSIMISTIC:
        return _pessimistic(version)
    return [VersionRequirement(operator, version)]


def parse(constraint: str) -> List[VersionRequirement]:
    """Parse a constraint string into AND-ed requirement atoms.

    Wildcard (``1.x``, ``1.2.x``) and pessimistic (``~>``) clauses desugar to
    a ``>=`` / ``<`` pair; a bare version means ``=``.

    Raises:
        ConstraintParseError: if the string is empty or a clause is malformed.
    """
    if constraint is None or not constraint.strip():
        raise ConstraintParseError("Empty version constraint")

    tokens = constraint.replace(",", " ").split()
    reqs: List[VersionRequirement] = []
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if token in _OPERATORS:
            if i + 1 >= len(tokens):
                raise ConstraintParseError(f"Operator '{token}' without version in '{constraint}'")
            version = _check_version(tokens[i + 1], constraint)
            reqs.extend(_atoms(_OPERATORS[token], version))
            i += 2
            continue

        wildcard = _wildcard(token)
        if wildcard is not None:
            reqs.extend(wildcard)
            i += 1
            continue

        glued = _GLUED_RE.match(token)
        if glued:
            version = _check_version(glued.group(2), constraint)
            reqs.extend(_atoms(_OPERATORS[glued.group(1)], version))
        else:
            reqs.append(VersionRequirement(Operator.EQ, _check_version(token, constraint)))
        i += 1
    return reqs


def try_parse(constraint: Optional[str]) -> Optional[List[VersionRequirement]]:
    """Parse a constraint, returning None when absent or malformed."""
    if not constraint:
        return None
    try:
        return parse(constraint)
    except ConstraintParseError as e:
        logger.debug("Treating constraint as unconstrained: %s", e)
        return None


def satisfies(version: str, requirement: VersionRequirement) -> bool:
    """Test one version against one requirement atom."""
    if requirement.operator is Operator.PESSIMISTIC:
        return satisfies_all(version, _pessimistic(requirement.version))
    cmp = compare_versions(version, requirement.version)
    if requirement.operator is Operator.GT:
        return cmp > 0
    if requirement.operator is Operator.GTE:
        return cmp >= 0
    if requirement.operator is Operator.LT:
        return cmp < 0
    if requirement.operator is Operator.LTE:
        return cmp <= 0
    return cmp == 0


def satisfies_all(version: str, requirements: Iterable[VersionRequirement]) -> bool:
    """Test one version against every requirement atom."""
    return all(satisfies(version, req) for req in requirements)


def _expand(requirements: Iterable[VersionRequirement]) -> List[VersionRequirement]:
    out: List[VersionRequirement] = []
    for req in requirements:
        if req.operator is Operator.PESSIMISTIC:
            out.extend(_pessimistic(req.version))
        else:
            out.append(req)
    return out


def _is_empty(low: Optional[Bound], high: Optional[Bound]) -> bool:
    if low is None or high is None:
        return False
    cmp = compare_versions(low.version, high.version)
    return cmp > 0 or (cmp == 0 and not (low.inclusive and high.inclusive))


def _within(version: str, low: Optional[Bound], high: Optional[Bound]) -> bool:
    if low is not None:
        cmp = compare_versions(version, low.version)
        if cmp < 0 or (cmp == 0 and not low.inclusive):
            return False
    if high is not None:
        cmp = compare_versions(version, high.version)
        if cmp > 0 or (cmp == 0 and not high.inclusive):
            return False
    return True


def intersect(requirements: Sequence[VersionRequirement]) -> Optional[VersionRange]:
    """Fold requirement atoms into a single range.

    Returns:
        The merged range, or None when the atoms cannot all hold at once.
    """
    low: Optional[Bound] = None
    high: Optional[Bound] = None
    for req in _expand(requirements):
        op, version = req.operator, req.version
        if op in (Operator.GTE, Operator.GT):
            inclusive = op is Operator.GTE
            cmp = 1 if low is None else compare_versions(version, low.version)
            if cmp > 0:
                low = Bound(version, inclusive)
            elif cmp == 0:
                low = Bound(low.version, low.inclusive and inclusive)
        elif op in (Operator.LTE, Operator.LT):
            inclusive = op is Operator.LTE
            cmp = -1 if high is None else compare_versions(version, high.version)
            if cmp < 0:
                high = Bound(version, inclusive)
            elif cmp == 0:
                high = Bound(high.version, high.inclusive and inclusive)
        else:
            if not _within(version, low, high):
                return None
            low = high = Bound(version, True)

        if _is_empty(low, high):
            return None
    return VersionRange(min=low, max=high)


def find_satisfying_versions(
    available: Iterable[str], requirements: Sequence[VersionRequirement]
) -> List[str]:
    """Filter available versions by every atom, preserving input order."""
    atoms = _expand(requirements)
    return [v for v in available if satisfies_all(v, atoms)]


def format_range(version_range: Optional[VersionRange]) -> str:
    """Render a range as a constraint string, e.g. ``>= 1.0.0 < 2.0.0``."""
    if version_range is None:
        return "none"
    low, high = version_range.min, version_range.max
    if low is not None and high is not None:
        if compare_versions(low.version, high.version) == 0 and low.inclusive and high.inclusive:
            return f"= {low.version}"
    clauses = []
    if low is not None:
        clauses.append(f"{'>=' if low.inclusive else '>'} {low.version}")
    if high is not None:
        clauses.append(f"{'<=' if high.inclusive else '<'} {high.version}")
    return " ".join(clauses) if clauses else "any"


def first_version_in(constraint: str) -> Optional[str]:
    """Extract the first version-looking token from a constraint string."""
    m = re.search(r"\d+(?:\.\d+)*", constraint or "")
    return m.group(0) if m else None
