"""Puppet Forge client: releases and their declared dependencies."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from constants import Constants
from common.http_client import HttpClient
from common.logging_utils import extra_context, is_debug_enabled
from versioning.constraints import is_safe_version, compare_versions, sort_versions
from versioning.names import module_name_variants, normalize_module_name

from .cache import TTLCache
from .models import ModuleMetadata, ProviderFetchError, Release, dependencies_from_metadata

logger = logging.getLogger(__name__)

# Statuses the Forge answers with when it does not recognise a module spelling
_NAME_REJECTED = (400, 404)


@dataclass
class UpdateCheck:
    """Outcome of comparing a pinned version against the registry."""
    has_update: bool
    latest_version: Optional[str]
    current_version: Optional[str] = None


def releases_from_payload(payload) -> List[Release]:
    """Build releases from a Forge ``/v3/releases`` payload, newest first."""
    if not isinstance(payload, dict):
        raise ProviderFetchError("Unexpected Forge response shape")
    results = payload.get("results") or []
    if not isinstance(results, list):
        raise ProviderFetchError("Unexpected Forge response shape")

    by_version = {}
    for item in results:
        if not isinstance(item, dict):
            continue
        version = item.get("version")
        if not isinstance(version, str) or not version:
            continue
        by_version[version] = Release(
            version=version,
            dependencies=dependencies_from_metadata(item.get("metadata")),
        )
    ordered = sort_versions(by_version, descending=True)
    return [by_version[v] for v in ordered]


class ForgeClient:
    """Async Forge v3 client with a per-module TTL cache."""

    def __init__(
        self,
        http: HttpClient,
        base_url: Optional[str] = None,
        cache: Optional[TTLCache[ModuleMetadata]] = None,
        concurrency: Optional[int] = None,
    ):
        """Initialize the client.

        Args:
            http: Shared HTTP client.
            base_url: Forge API root, defaults to Constants.FORGE_BASE_URL.
            cache: Module cache, a fresh one is created if omitted.
            concurrency: Max in-flight requests, defaults to Constants.FETCH_CONCURRENCY.
        """
        self._http = http
        self._base_url = (base_url or Constants.FORGE_BASE_URL).rstrip("/")
        self._cache = cache if cache is not None else TTLCache(Constants.MODULE_CACHE_TTL_SEC)
        self._semaphore = asyncio.Semaphore(max(1, concurrency or Constants.FETCH_CONCURRENCY))

    @property
    def releases_url(self) -> str:
        """Endpoint listing releases of a module."""
        return f"{self._base_url}/{Constants.FORGE_API_VERSION}/releases"

    @staticmethod
    def cache_key(name: str) -> str:
        """Cache key shared by every spelling of a module name."""
        return normalize_module_name(name).lower()

    def is_cached(self, name: str) -> bool:
        """True if metadata (or a negative lookup) is cached for the module."""
        return self.cache_key(name) in self._cache

    def clear_cache(self) -> None:
        """Drop cached module metadata."""
        self._cache.clear()

    async def fetch_module(self, name: str) -> Optional[ModuleMetadata]:
        """Fetch all releases of a module.

        Returns:
            ModuleMetadata, or None if the Forge does not know the module.

        Raises:
            ProviderFetchError: on transport failures or malformed payloads.
        """
        key = self.cache_key(name)
        if key in self._cache:
            return self._cache.get(key)

        slug = normalize_module_name(name)
        status, releases = await self._fetch_releases(slug)
        if status in _NAME_REJECTED:
            slug, releases = await self._fetch_variants(name, slug)
        elif status != 200:
            raise ProviderFetchError(f"Forge lookup for {slug} failed with status {status}")

        if not releases:
            self._cache.set(key, None)
            return None

        module = ModuleMetadata(
            name=slug,
            available_versions=[r.version for r in releases],
            releases=releases,
            default_release=releases[0],
        )
        if is_debug_enabled(logger):
            logger.debug(
                "Forge module fetched",
                extra=extra_context(
                    event="fetch",
                    component="forge",
                    action="fetch_module",
                    outcome="success",
                    target=slug,
                    count=len(releases),
                ),
            )
        self._cache.set(key, module)
        return module

    async def _fetch_releases(self, slug: str) -> Tuple[int, Optional[List[Release]]]:
        """One releases request; releases are None unless the status is 200."""
        params = {
            "module": slug,
            "limit": Constants.FORGE_RELEASE_LIMIT,
            "sort_by": "version",
            "order": "desc",
        }
        async with self._semaphore:
            status, payload = await self._http.get_json(self.releases_url, params=params)
        if status != 200:
            return status, None
        if payload is None:
            raise ProviderFetchError(f"Forge returned an unreadable body for {slug}")
        return status, releases_from_payload(payload)

    async def _fetch_variants(self, name: str, tried: str) -> Tuple[str, Optional[List[Release]]]:
        """Retry a rejected name under its other spellings.

        Returns:
            Tuple of (slug that matched, releases), or (``tried``, None).
        """
        seen = {tried}
        for variant in module_name_variants(name):
            slug = normalize_module_name(variant)
            if slug in seen:
                continue
            seen.add(slug)
            try:
                status, releases = await self._fetch_releases(slug)
            except ProviderFetchError as e:
                logger.debug("Forge variant %s failed: %s", slug, e)
                continue
            if status == 200 and releases:
                if is_debug_enabled(logger):
                    logger.debug(
                        "Forge module found under variant name",
                        extra=extra_context(
                            event="fetch",
                            component="forge",
                            action="fetch_variant",
                            outcome="success",
                            target=name,
                            variant=slug,
                        ),
                    )
                return slug, releases
        return tried, None

    async def prefetch(self, names: Iterable[str]) -> int:
        """Warm the cache for several modules concurrently.

        Failures are logged and skipped.

        Returns:
            Number of modules fetched successfully (found or not found).
        """
        pending = [n for n in dict.fromkeys(names) if not self.is_cached(n)]
        results = await asyncio.gather(
            *(self.fetch_module(n) for n in pending), return_exceptions=True
        )
        ok = 0
        for name, result in zip(pending, results):
            if isinstance(result, Exception):
                logger.warning("Could not prefetch %s: %s", name, result)
            else:
                ok += 1
        return ok

    async def latest_version(self, name: str, safe_only: bool = False) -> Optional[str]:
        """Newest published version, optionally skipping pre-releases."""
        module = await self.fetch_module(name)
        if module is None:
            return None
        versions = module.available_versions
        if safe_only:
            versions = [v for v in versions if is_safe_version(v)]
        return versions[0] if versions else None

    async def check_for_update(
        self, name: str, current_version: Optional[str] = None, safe_only: bool = False
    ) -> UpdateCheck:
        """Compare a pinned version against the newest published one."""
        try:
            latest = await self.latest_version(name, safe_only)
        except ProviderFetchError as e:
            logger.warning("Error checking for update for %s: %s", name, e)
            return UpdateCheck(False, None, current_version)
        if latest is None:
            return UpdateCheck(False, None, current_version)
        if current_version is None:
            return UpdateCheck(True, latest, current_version)
        return UpdateCheck(compare_versions(latest, current_version) > 0, latest, current_version)
