"""Shared async HTTP helpers used by the Forge and Git metadata clients.

Encapsulates timeout, retry and caching behaviour. Nothing here exits the
process: failures are reported through the returned status and turned into
:class:`registry.models.ProviderFetchError` by the callers.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Tuple

import aiohttp

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer
from registry.cache import TTLCache

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "User-Agent": Constants.USER_AGENT,
}


def _get_cache_key(method: str, url: str, params: Optional[Dict[str, Any]] = None) -> str:
    """Generate cache key from request parameters."""
    params_str = str(sorted(params.items())) if params else ""
    return f"{method}:{url}:{params_str}"


class HttpClient:
    """Thin wrapper around an aiohttp session with retries and a TTL cache."""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: Optional[float] = None,
        retry_max: Optional[int] = None,
        cache_ttl: Optional[float] = None,
        cache_max_entries: Optional[int] = None,
    ):
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(
            total=timeout if timeout is not None else Constants.REQUEST_TIMEOUT
        )
        self._retry_max = max(1, retry_max if retry_max is not None else Constants.HTTP_RETRY_MAX)
        self._cache: TTLCache[Tuple[int, Optional[str]]] = TTLCache(
            cache_ttl if cache_ttl is not None else Constants.HTTP_CACHE_TTL_SEC,
            max_entries=cache_max_entries or Constants.HTTP_CACHE_MAX_ENTRIES,
        )

    async def start(self) -> None:
        """Start the HTTP session if one was not injected."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers=DEFAULT_HEADERS,
                trust_env=True,  # honour HTTPS_PROXY / HTTP_PROXY
            )
            self._owns_session = True

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "HttpClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def clear_cache(self) -> None:
        """Drop every cached response."""
        self._cache.clear()

    async def get_text(
        self,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, Optional[str]]:
        """GET a URL with retries and caching.

        Returns:
            Tuple of (status_code, body_or_none). Status 0 means every
            attempt failed at the transport level.
        """
        cache_key = _get_cache_key("GET", url, params)
        safe_target = safe_url(url)
        cached = self._cache.get(cache_key)
        if cached is not None:
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP cache hit",
                    extra=extra_context(
                        event="cache_hit", component="http_client", action="GET", target=safe_target
                    ),
                )
            return cached

        if self._session is None:
            await self.start()
        if self._session is None:
            raise RuntimeError("HTTP session could not be started")

        last_exception: Optional[str] = None
        for attempt in range(self._retry_max):
            if attempt:
                await asyncio.sleep(Constants.HTTP_RETRY_BASE_DELAY_SEC * (2 ** (attempt - 1)))
            with Timer() as t:
                try:
                    if is_debug_enabled(logger):
                        logger.debug(
                            "HTTP request",
                            extra=extra_context(
                                event="http_request",
                                component="http_client",
                                action="GET",
                                target=safe_target,
                                attempt=attempt + 1,
                            ),
                        )
                    async with self._session.get(url, params=params, timeout=self._timeout) as response:
                        text = await response.text()
                        status = response.status
                except asyncio.TimeoutError:
                    last_exception = "timeout"
                    if is_debug_enabled(logger):
                        logger.debug(
                            "HTTP timeout",
                            extra=extra_context(
                                event="http_exception",
                                component="http_client",
                                action="GET",
                                outcome="timeout",
                                attempt=attempt + 1,
                                target=safe_target,
                            ),
                        )
                    continue
                except aiohttp.ClientError as exc:
                    last_exception = str(exc)
                    if is_debug_enabled(logger):
                        logger.debug(
                            "HTTP request exception",
                            extra=extra_context(
                                event="http_exception",
                                component="http_client",
                                action="GET",
                                outcome="request_exception",
                                attempt=attempt + 1,
                                target=safe_target,
                            ),
                        )
                    continue

                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP response",
                        extra=extra_context(
                            event="http_response",
                            component="http_client",
                            action="GET",
                            status_code=status,
                            duration_ms=t.duration_ms(),
                            target=safe_target,
                        ),
                    )
                if status >= 500:
                    last_exception = f"HTTP {status}"
                    continue
                # Don't cache server errors
                self._cache.set(cache_key, (status, text))
                return status, text

        logger.warning(
            "GET %s failed after %s attempts: %s", safe_target, self._retry_max, last_exception
        )
        return 0, None

    async def get_json(
        self,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, Optional[Any]]:
        """GET a URL and parse the JSON body.

        Returns:
            Tuple of (status_code, parsed_json_or_none)
        """
        status, text = await self.get_text(url, params=params)
        if status == 200 and text:
            try:
                return status, json.loads(text)
            except json.JSONDecodeError:
                if is_debug_enabled(logger):
                    logger.debug(
                        "JSON decode error",
                        extra=extra_context(
                            event="parse",
                            component="http_client",
                            action="get_json",
                            outcome="json_decode_error",
                            target=safe_url(url),
                        ),
                    )
                return status, None
        return status, None
