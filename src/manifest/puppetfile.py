"""Puppetfile parser.

Extracts ``mod`` declarations from Puppetfile text. Supported forms:

    mod 'puppetlabs/stdlib', '9.4.1'
    mod 'puppetlabs/apache'
    mod 'custom',
      :git => 'https://github.com/acme/puppet-custom.git',
      :tag => 'v1.2.0'

Lines that are not module declarations (``forge``, ``moduledir``...) are
ignored. Malformed ``mod`` lines are reported in ``ParseResult.errors``
and do not stop parsing.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple

from constants import SourceKinds

from .models import ModuleDeclaration, ParseResult

logger = logging.getLogger(__name__)

_MOD_START_RE = re.compile(r"""^mod\s*\(?\s*['"]([^'"]+)['"]""")
_VERSION_RE = re.compile(r"""^mod\s*\(?\s*['"][^'"]+['"]\s*,\s*['"]([^'"]+)['"]\s*\)?\s*(?:$|,)""")
_GIT_RE = re.compile(r""":git\s*=>\s*['"]([^'"]+)['"]""")
_TAG_RE = re.compile(r""":tag\s*=>\s*['"]([^'"]+)['"]""")
_REF_RE = re.compile(r""":(?:ref|branch|commit)\s*=>\s*['"]([^'"]+)['"]""")
_OPTION_RE = re.compile(r"^:\w+\s*=>")


def strip_inline_comment(line: str) -> str:
    """Remove a trailing ``#`` comment unless the ``#`` is inside quotes."""
    quote: Optional[str] = None
    for i, ch in enumerate(line):
        if quote:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == "#":
            return line[:i].strip()
    return line.strip()


def _is_mod_line(line: str) -> bool:
    return line.startswith("mod ") or line.startswith("mod'") or line.startswith('mod"') \
        or line.startswith("mod(")


def _collect_statement(lines: List[str], start: int) -> Tuple[str, int]:
    """Join a declaration continued over following lines.

    A statement continues while the accumulated text ends with a comma or
    the next non-blank line starts with a ``:option =>`` pair.

    Returns:
        Tuple of (joined statement, index of the last consumed line)
    """
    statement = strip_inline_comment(lines[start])
    last = start
    i = start + 1
    while i < len(lines):
        nxt = strip_inline_comment(lines[i])
        if not nxt:
            i += 1
            continue
        if statement.endswith(",") or _OPTION_RE.match(nxt):
            statement = f"{statement} {nxt}"
            last = i
            i += 1
            continue
        break
    return re.sub(r"\s+", " ", statement).strip(), last


def parse_declaration(statement: str, line_number: int) -> ModuleDeclaration:
    """Parse one complete ``mod`` statement.

    Raises:
        ValueError: if the statement has no quoted module name.
    """
    m = _MOD_START_RE.match(statement)
    if not m:
        raise ValueError("Invalid module declaration syntax")
    name = m.group(1).strip()
    if not name:
        raise ValueError("Empty module name")

    git = _GIT_RE.search(statement)
    if git:
        tag = _TAG_RE.search(statement)
        ref = _REF_RE.search(statement)
        return ModuleDeclaration(
            name=name,
            source_kind=SourceKinds.VCS,
            repo_url=git.group(1),
            tag=tag.group(1) if tag else None,
            ref=ref.group(1) if ref else None,
            origin_line=line_number,
        )

    version_match = _VERSION_RE.match(statement)
    version = None
    if version_match:
        candidate = version_match.group(1).strip()
        # Skip :latest / http(s) forms that are not version pins
        if candidate and "http" not in candidate and candidate != "latest":
            version = candidate
    return ModuleDeclaration(name=name, exact_version=version, origin_line=line_number)


def parse_content(content: str) -> ParseResult:
    """Parse Puppetfile text into declarations and per-line errors."""
    result = ParseResult()
    lines = content.splitlines()
    i = 0
    while i < len(lines):
        line = lines[i].strip()
        line_number = i + 1
        if not line or line.startswith("#") or not _is_mod_line(line):
            i += 1
            continue
        statement, last = _collect_statement(lines, i)
        try:
            result.modules.append(parse_declaration(statement, line_number))
        except ValueError as e:
            result.errors.append(f"Line {line_number}: {e}")
        i = last + 1

    logger.debug("Parsed %d module(s), %d error(s)", len(result.modules), len(result.errors))
    return result


def parse_file(path: str) -> ParseResult:
    """Read and parse a Puppetfile.

    Raises:
        OSError: if the file cannot be read.
    """
    with open(path, encoding="utf-8") as fh:
        return parse_content(fh.read())
