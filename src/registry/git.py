"""Fetch ``metadata.json`` from Git hosting services."""

from __future__ import annotations

import logging
import re
import urllib.parse
from typing import Optional

from constants import Constants
from common.http_client import HttpClient
from common.logging_utils import safe_url

from .cache import TTLCache
from .models import ProviderFetchError, VcsMetadata

logger = logging.getLogger(__name__)

_SSH_RE = re.compile(r"^git@([^:]+):(.+)$")


def git_cache_key(repo_url: str, ref: Optional[str] = None) -> str:
    """Cache key for a repository/ref pair."""
    return f"{repo_url}:{ref or 'default'}"


def metadata_url(repo_url: str, ref: Optional[str] = None) -> Optional[str]:
    """Translate a repository URL into the raw URL of its metadata.json.

    Supports GitHub, GitLab and Bitbucket; other hosts get a generic
    ``<repo>/raw/<ref>/metadata.json`` guess.

    Returns:
        The raw URL, or None if the repository URL cannot be parsed.
    """
    clean = repo_url.strip()
    if clean.endswith(".git"):
        clean = clean[: -len(".git")]
    ssh = _SSH_RE.match(clean)
    if ssh:
        clean = f"https://{ssh.group(1)}/{ssh.group(2)}"
    clean = clean.rstrip("/")

    target_ref = ref or Constants.GIT_DEFAULT_REF
    parsed = urllib.parse.urlparse(clean)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return None

    host = parsed.hostname.lower()
    path = parsed.path.rstrip("/")
    if host == "github.com":
        return f"https://raw.githubusercontent.com{path}/{target_ref}/{Constants.GIT_METADATA_FILE}"
    if host == "gitlab.com":
        return f"{clean}/-/raw/{target_ref}/{Constants.GIT_METADATA_FILE}"
    if "bitbucket" in host:
        return f"{clean}/raw/{target_ref}/{Constants.GIT_METADATA_FILE}"
    return f"{clean}/raw/{target_ref}/{Constants.GIT_METADATA_FILE}"


class GitMetadataClient:
    """Reads module metadata straight from a repository."""

    def __init__(self, http: HttpClient, cache: Optional[TTLCache[VcsMetadata]] = None):
        self._http = http
        self._cache = cache if cache is not None else TTLCache(Constants.MODULE_CACHE_TTL_SEC)

    def is_cached(self, repo_url: str, ref: Optional[str] = None) -> bool:
        """True if a lookup for this repository/ref is cached."""
        return git_cache_key(repo_url, ref) in self._cache

    def clear_cache(self) -> None:
        """Drop cached metadata."""
        self._cache.clear()

    async def fetch_metadata(self, repo_url: str, ref: Optional[str] = None) -> Optional[VcsMetadata]:
        """Fetch metadata.json for exactly one ref.

        Returns:
            VcsMetadata, or None when the file does not exist.

        Raises:
            ProviderFetchError: on transport failures or a non-JSON body.
        """
        key = git_cache_key(repo_url, ref)
        if key in self._cache:
            return self._cache.get(key)

        url = metadata_url(repo_url, ref)
        if url is None:
            logger.warning("Unsupported repository URL: %s", safe_url(repo_url))
            self._cache.set(key, None)
            return None

        status, data = await self._http.get_json(url)
        if status == 404:
            self._cache.set(key, None)
            return None
        if status != 200:
            raise ProviderFetchError(f"metadata.json fetch from {safe_url(url)} failed with status {status}")
        if not isinstance(data, dict):
            raise ProviderFetchError(f"metadata.json at {safe_url(url)} is not a JSON object")

        metadata = VcsMetadata.from_json(data)
        self._cache.set(key, metadata)
        return metadata

    async def fetch_metadata_with_fallback(
        self, repo_url: str, ref: Optional[str] = None
    ) -> Optional[VcsMetadata]:
        """Fetch metadata, trying common default branches when no ref is given."""
        metadata = await self.fetch_metadata(repo_url, ref)
        if metadata is not None or ref:
            return metadata
        for alternative in Constants.GIT_FALLBACK_REFS:
            metadata = await self.fetch_metadata(repo_url, alternative)
            if metadata is not None:
                return metadata
        return None
