"""Tests for the Forge and Git metadata clients."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from registry.cache import TTLCache
from registry.forge import ForgeClient, releases_from_payload
from registry.git import GitMetadataClient, git_cache_key, metadata_url
from registry.models import DependencySpec, ProviderFetchError, VcsMetadata, dependencies_from_metadata
from registry.provider import RegistryProvider

FORGE_PAYLOAD = {
    "results": [
        {
            "version": "1.0.0",
            "metadata": {
                "dependencies": [
                    {"name": "puppetlabs/stdlib", "version_requirement": ">= 4.0.0 < 10.0.0"},
                    {"name": "puppetlabs/concat"},
                ]
            },
        },
        {"version": "2.0.0-rc1", "metadata": {}},
        {"version": "1.5.0", "metadata": {"dependencies": None}},
        {"version": "", "metadata": {}},
        "junk",
    ]
}


def fake_http(*responses):
    http = MagicMock()
    http.get_json = AsyncMock(side_effect=list(responses))
    return http


class TestMetadataModels:
    """Decoding of dependency lists."""

    def test_dependencies_from_metadata(self):
        """Dependencies keep their name and requirement."""
        deps = dependencies_from_metadata(FORGE_PAYLOAD["results"][0]["metadata"])
        assert deps == [
            DependencySpec("puppetlabs/stdlib", ">= 4.0.0 < 10.0.0"),
            DependencySpec("puppetlabs/concat", None),
        ]

    def test_missing_or_bad_lists(self):
        """Malformed dependency lists decode to nothing."""
        assert dependencies_from_metadata(None) == []
        assert dependencies_from_metadata({"dependencies": "nope"}) == []
        assert dependencies_from_metadata({"dependencies": [{"version_requirement": "1.0"}, 5]}) == []

    def test_vcs_metadata_from_json(self):
        """Non-string fields are dropped."""
        meta = VcsMetadata.from_json({"name": "acme-tool", "version": 3, "dependencies": []})
        assert meta.name == "acme-tool"
        assert meta.version is None
        assert meta.dependencies == []


class TestForgeClient:
    """Forge v3 release lookups."""

    def test_releases_newest_first(self):
        """Releases are ordered newest first."""
        releases = releases_from_payload(FORGE_PAYLOAD)
        assert [r.version for r in releases] == ["2.0.0-rc1", "1.5.0", "1.0.0"]
        assert releases[1].dependencies == []

    def test_bad_payload_shape(self):
        """Unexpected shapes raise ProviderFetchError."""
        with pytest.raises(ProviderFetchError):
            releases_from_payload({"results": "nope"})
        with pytest.raises(ProviderFetchError):
            releases_from_payload([])

    def test_fetch_module_builds_metadata_and_caches(self):
        """One request serves every spelling of the name."""
        http = fake_http((200, FORGE_PAYLOAD))
        client = ForgeClient(http, base_url="https://forge.example/")

        module = asyncio.run(client.fetch_module("puppetlabs/apache"))
        again = asyncio.run(client.fetch_module("PuppetLabs-apache"))

        assert again is module
        assert module.name == "puppetlabs-apache"
        assert module.available_versions == ["2.0.0-rc1", "1.5.0", "1.0.0"]
        assert module.default_release.version == "2.0.0-rc1"
        assert module.release_for("1.0.0").dependencies[0].name == "puppetlabs/stdlib"
        assert module.release_for(None) is None
        http.get_json.assert_awaited_once_with(
            "https://forge.example/v3/releases",
            params={"module": "puppetlabs-apache", "limit": 100, "sort_by": "version", "order": "desc"},
        )

    def test_not_found_is_cached(self):
        """A 404 is remembered."""
        http = fake_http((404, None))
        client = ForgeClient(http)
        assert asyncio.run(client.fetch_module("acme/ghost")) is None
        assert client.is_cached("acme-ghost")
        assert asyncio.run(client.fetch_module("acme/ghost")) is None
        assert http.get_json.await_count == 1

    def test_rejected_name_falls_back_to_variant(self):
        """A module that moved namespaces is found under its other spelling."""
        http = fake_http((404, None), (200, FORGE_PAYLOAD))
        client = ForgeClient(http)

        module = asyncio.run(client.fetch_module("puppetlabs/puppet-nginx"))

        assert module.name == "puppet-nginx"
        assert module.available_versions == ["2.0.0-rc1", "1.5.0", "1.0.0"]
        assert http.get_json.await_args_list[1].kwargs["params"]["module"] == "puppet-nginx"
        assert client.is_cached("puppetlabs/puppet-nginx")
        assert asyncio.run(client.fetch_module("puppetlabs-puppet-nginx")) is module
        assert http.get_json.await_count == 2

    def test_bad_request_retries_lowercase(self):
        """A 400 on a mixed-case name is retried in lowercase."""
        http = fake_http((400, None), (200, FORGE_PAYLOAD))
        client = ForgeClient(http)
        module = asyncio.run(client.fetch_module("Acme/Tool"))
        assert module.name == "acme-tool"
        assert client.is_cached("acme/tool")

    def test_all_variants_missing_is_cached_not_found(self):
        """Variant errors are skipped and the original name is cached as missing."""
        http = fake_http((404, None), (200, None))
        client = ForgeClient(http)
        assert asyncio.run(client.fetch_module("puppet/nginx")) is None
        assert http.get_json.await_count == 2
        assert client.is_cached("puppet-nginx")

    def test_empty_results_is_not_found(self):
        """No releases means not found."""
        client = ForgeClient(fake_http((200, {"results": []})))
        assert asyncio.run(client.fetch_module("acme/empty")) is None

    @pytest.mark.parametrize("response", [(500, None), (0, None), (200, None)])
    def test_failures_raise(self, response):
        """Server and body errors raise and are not cached."""
        client = ForgeClient(fake_http(response))
        with pytest.raises(ProviderFetchError):
            asyncio.run(client.fetch_module("acme/broken"))
        assert not client.is_cached("acme/broken")

    def test_latest_version_and_update_check(self):
        """Update checks compare against the newest release."""
        client = ForgeClient(fake_http((200, FORGE_PAYLOAD)))
        assert asyncio.run(client.latest_version("acme/x")) == "2.0.0-rc1"
        assert asyncio.run(client.latest_version("acme/x", safe_only=True)) == "1.5.0"

        check = asyncio.run(client.check_for_update("acme/x", "1.0.0", safe_only=True))
        assert check.has_update
        assert check.latest_version == "1.5.0"

        check = asyncio.run(client.check_for_update("acme/x", "1.5.0", safe_only=True))
        assert not check.has_update

    def test_update_check_absorbs_errors(self):
        """Lookup errors report no update."""
        client = ForgeClient(fake_http((503, None)))
        check = asyncio.run(client.check_for_update("acme/x", "1.0.0"))
        assert not check.has_update
        assert check.latest_version is None
        assert check.current_version == "1.0.0"

    def test_prefetch_counts_successes(self):
        """Prefetch counts modules fetched without error."""
        async def get_json(url, params=None):
            if params["module"] == "acme-bad":
                return 500, None
            return 200, FORGE_PAYLOAD

        http = MagicMock()
        http.get_json = AsyncMock(side_effect=get_json)
        client = ForgeClient(http, concurrency=2)

        ok = asyncio.run(client.prefetch(["acme/a", "acme/b", "acme/bad", "acme/a"]))

        assert ok == 2
        assert client.is_cached("acme-a")
        assert client.is_cached("acme/b")
        assert not client.is_cached("acme/bad")


class TestGitMetadataUrl:
    """Repository URL to raw metadata.json URL."""

    @pytest.mark.parametrize("repo,ref,expected", [
        ("https://github.com/acme/puppet-tool.git", "v1.0",
         "https://raw.githubusercontent.com/acme/puppet-tool/v1.0/metadata.json"),
        ("git@github.com:acme/tool.git", None,
         "https://raw.githubusercontent.com/acme/tool/main/metadata.json"),
        ("https://gitlab.com/grp/mod", "dev", "https://gitlab.com/grp/mod/-/raw/dev/metadata.json"),
        ("https://bitbucket.org/team/mod/", None, "https://bitbucket.org/team/mod/raw/main/metadata.json"),
        ("https://git.example.com/team/mod", "1.0", "https://git.example.com/team/mod/raw/1.0/metadata.json"),
    ])
    def test_hosts(self, repo, ref, expected):
        """Supported hosts map to raw metadata URLs."""
        assert metadata_url(repo, ref) == expected

    @pytest.mark.parametrize("repo", ["ftp://example.com/x", "not a url", ""])
    def test_unsupported(self, repo):
        """Unknown hosts give no URL."""
        assert metadata_url(repo) is None


class TestGitMetadataClient:
    """Fetching metadata.json with ref fallback."""

    REPO = "https://github.com/acme/tool"
    META = {"name": "acme-tool", "dependencies": [{"name": "puppetlabs/stdlib", "version_requirement": ">= 4.0.0"}]}

    def test_fallback_refs_when_no_ref(self):
        """Without a ref the default branches are tried."""
        http = fake_http((404, None), (200, self.META))
        client = GitMetadataClient(http)

        meta = asyncio.run(client.fetch_metadata_with_fallback(self.REPO))

        assert meta.dependencies == [DependencySpec("puppetlabs/stdlib", ">= 4.0.0")]
        urls = [call.args[0] for call in http.get_json.await_args_list]
        assert urls == [
            "https://raw.githubusercontent.com/acme/tool/main/metadata.json",
            "https://raw.githubusercontent.com/acme/tool/master/metadata.json",
        ]

    def test_explicit_ref_has_no_fallback(self):
        """An explicit ref is tried alone."""
        http = fake_http((404, None))
        client = GitMetadataClient(http)
        assert asyncio.run(client.fetch_metadata_with_fallback(self.REPO, "v9")) is None
        assert http.get_json.await_count == 1
        assert client.is_cached(self.REPO, "v9")

    def test_all_refs_missing(self):
        """Missing metadata on every ref is None."""
        client = GitMetadataClient(fake_http(*[(404, None)] * 4))
        assert asyncio.run(client.fetch_metadata_with_fallback(self.REPO)) is None

    def test_transport_failure_raises(self):
        """Transport errors raise."""
        client = GitMetadataClient(fake_http((0, None)))
        with pytest.raises(ProviderFetchError):
            asyncio.run(client.fetch_metadata(self.REPO, "main"))

    def test_unsupported_url_is_none(self):
        """Unsupported repositories are not fetched."""
        http = fake_http()
        client = GitMetadataClient(http)
        assert asyncio.run(client.fetch_metadata("ftp://x/y")) is None
        http.get_json.assert_not_awaited()

    def test_cache_key(self):
        """The ref is part of the key."""
        assert git_cache_key(self.REPO) == f"{self.REPO}:default"
        assert git_cache_key(self.REPO, "v1") == f"{self.REPO}:v1"


class TestTTLCache:
    """Expiry, negative entries and eviction."""

    def test_negative_entries_are_cached(self):
        """None is a cacheable value."""
        cache = TTLCache(default_ttl=60)
        cache.set("missing", None)
        assert "missing" in cache
        assert cache.get("missing") is None

    def test_expiry(self):
        """Expired entries vanish."""
        cache = TTLCache(default_ttl=60)
        cache.set("k", 1, ttl=-1)
        assert "k" not in cache
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_eviction_keeps_size_bounded(self):
        """The oldest entries go first."""
        cache = TTLCache(default_ttl=60, max_entries=10)
        for i in range(25):
            cache.set(str(i), i)
        assert len(cache) <= 10
        assert cache.get("24") == 24

    def test_expired_entries_are_dropped_before_live_ones(self):
        """A full cache sheds expired entries before evicting by age."""
        cache = TTLCache(default_ttl=60, max_entries=2)
        cache.set("live", 1)
        cache.set("stale", 2, ttl=-1)
        cache.set("new", 3)
        assert len(cache) == 2
        assert cache.get("live") == 1
        assert cache.get("new") == 3

    def test_clear(self):
        """clear empties the cache."""
        cache = TTLCache()
        cache.set("a", 1)
        cache.clear()
        assert len(cache) == 0


class TestRegistryProvider:
    """Provider wiring."""

    def test_delegates_to_clients(self):
        """Forge and Git lookups go to their clients."""
        provider = RegistryProvider(forge_url="https://forge.example")
        provider.forge.fetch_module = AsyncMock(return_value="module")
        provider.git.fetch_metadata_with_fallback = AsyncMock(return_value="meta")

        assert asyncio.run(provider.resolve_module("acme-x")) == "module"
        assert asyncio.run(provider.resolve_vcs_metadata("https://github.com/a/b", "v1")) == "meta"
        provider.forge.fetch_module.assert_awaited_once_with("acme-x")
        provider.git.fetch_metadata_with_fallback.assert_awaited_once_with("https://github.com/a/b", "v1")

    def test_injected_session_is_left_open(self):
        """Caller sessions are not closed."""
        session = MagicMock()
        session.close = AsyncMock()

        async def scenario():
            async with RegistryProvider(session=session):
                pass

        asyncio.run(scenario())
        session.close.assert_not_awaited()
