"""Module metadata provider interface and its Forge/Git implementation."""

from __future__ import annotations

import abc
import asyncio
from typing import Iterable, Optional

import aiohttp

from common.http_client import HttpClient

from .forge import ForgeClient
from .git import GitMetadataClient
from .models import ModuleMetadata, VcsMetadata


class ModuleMetadataProvider(abc.ABC):
    """Source of release and dependency data consumed by the resolver.

    Both operations may raise or return None; callers treat either as
    non-fatal.
    """

    @abc.abstractmethod
    async def resolve_module(self, name: str) -> Optional[ModuleMetadata]:
        """Return registry metadata for a (normalized) module name."""

    @abc.abstractmethod
    async def resolve_vcs_metadata(self, repo_url: str, ref: Optional[str] = None) -> Optional[VcsMetadata]:
        """Return metadata read from a repository at an optional ref."""

    async def prefetch(self, names: Iterable[str]) -> int:
        """Look up several modules ahead of resolution.

        Returns:
            Number of lookups that completed without raising.
        """
        results = await asyncio.gather(
            *(self.resolve_module(n) for n in dict.fromkeys(names)), return_exceptions=True
        )
        return sum(1 for r in results if not isinstance(r, BaseException))


class RegistryProvider(ModuleMetadataProvider):
    """Provider backed by the Puppet Forge and Git hosting services.

    Use as an async context manager so the shared HTTP session is closed::

        async with RegistryProvider() as provider:
            ...
    """

    def __init__(
        self,
        forge_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize the provider.

        Args:
            forge_url: Forge API root override.
            timeout: Per-request timeout in seconds.
            session: Existing aiohttp session to reuse (left open on stop).
        """
        self.http = HttpClient(session=session, timeout=timeout)
        self.forge = ForgeClient(self.http, base_url=forge_url)
        self.git = GitMetadataClient(self.http)

    async def start(self) -> None:
        """Open the shared HTTP session."""
        await self.http.start()

    async def stop(self) -> None:
        """Close the shared HTTP session if this provider opened it."""
        await self.http.close()

    async def __aenter__(self) -> "RegistryProvider":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def resolve_module(self, name: str) -> Optional[ModuleMetadata]:
        return await self.forge.fetch_module(name)

    async def resolve_vcs_metadata(self, repo_url: str, ref: Optional[str] = None) -> Optional[VcsMetadata]:
        return await self.git.fetch_metadata_with_fallback(repo_url, ref)

    async def prefetch(self, names: Iterable[str]) -> int:
        return await self.forge.prefetch(names)
