"""Module name normalization.

Puppet module names appear as ``owner/name`` in a Puppetfile and as
``owner-name`` in Forge metadata. The ledger key is produced by one
separator substitution: the first ``/`` becomes ``-``. Names with more
than two segments (``owner/name-extra``) are not disambiguated.
"""

from typing import List


def normalize_module_name(name: str) -> str:
    """Return the canonical ledger key for a module name."""
    return name.strip().replace("/", "-", 1)


def to_slash_format(name: str) -> str:
    """Convert ``owner-name`` back to ``owner/name`` when unambiguous."""
    name = name.strip()
    if "/" in name:
        return name
    parts = name.split("-")
    if len(parts) == 2:
        return "/".join(parts)
    return name


def module_name_variants(name: str) -> List[str]:
    """Spellings of a name to try against a registry, in lookup order.

    Besides the slash, dash and lowercase forms, modules that moved between
    the ``puppetlabs`` and ``puppet`` namespaces are offered under both
    (``puppetlabs/puppet-nginx`` <-> ``puppet/nginx``).
    """
    dashed = normalize_module_name(name)
    candidates = [to_slash_format(name), dashed, name.strip(), dashed.lower()]

    owner, _, short = dashed.lower().partition("-")
    if owner == "puppetlabs" and short.startswith("puppet-"):
        bare = short[len("puppet-"):]
        candidates += [f"puppet/{bare}", f"puppet-{bare}"]
    elif owner == "puppet" and short:
        candidates += [f"puppetlabs/puppet-{short}", f"puppetlabs-puppet-{short}"]

    variants = []
    for candidate in candidates:
        if candidate and candidate not in variants:
            variants.append(candidate)
    return variants


def same_module(left: str, right: str) -> bool:
    """True if two spellings refer to the same ledger key (case-insensitive)."""
    return normalize_module_name(left).lower() == normalize_module_name(right).lower()
