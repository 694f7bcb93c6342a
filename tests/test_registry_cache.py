import asyncio
from contextlib import asynccontextmanager

import pytest

from dealcore.integrations.cms.registry_cache import RegistryCache


@pytest.fixture
def make_cache(settings, clock):
    def factory(client, session_factory=None):
        return RegistryCache(client, session_factory=session_factory, settings=settings, clock=clock)
    return factory


class TestMemoryLayer:

    @pytest.mark.asyncio
    async def test_second_lookup_served_from_memory(self, make_cache, registry_client):
        cache = make_cache(registry_client)

        first = await cache.search_providers("Valley Grande", state="TX")
        second = await cache.search_providers("valley grande", state="tx")

        assert [p.ccn for p in first] == ["455678"]
        assert second == first
        assert registry_client.count("search") == 1

    @pytest.mark.asyncio
    async def test_entry_served_through_ttl_then_refetched(self, make_cache, registry_client, clock):
        cache = make_cache(registry_client)
        await cache.get_provider("455678")

        clock.advance(days=7)
        await cache.get_provider("455678")
        assert registry_client.count("provider") == 1

        clock.advance(seconds=1)
        await cache.get_provider("455678")
        assert registry_client.count("provider") == 2

    @pytest.mark.asyncio
    async def test_not_found_is_cached(self, make_cache, registry_client):
        cache = make_cache(registry_client)

        assert await cache.get_provider("999999") is None
        assert await cache.get_provider("999999") is None
        assert registry_client.count("provider") == 1

    @pytest.mark.asyncio
    async def test_failure_degrades_and_is_not_cached(self, make_cache, registry_client):
        cache = make_cache(registry_client)
        registry_client.fail = True

        assert await cache.search_providers("Valley Grande") == []
        assert await cache.get_provider("455678") is None

        registry_client.fail = False
        providers = await cache.search_providers("Valley Grande")
        assert [p.ccn for p in providers] == ["455678"]
        assert registry_client.count("search") == 2

    @pytest.mark.asyncio
    async def test_concurrent_lookups_share_one_fetch(self, make_cache, registry_client):
        cache = make_cache(registry_client)

        results = await asyncio.gather(*[cache.get_provider("455678") for _ in range(10)])

        assert all(r.ccn == "455678" for r in results)
        assert registry_client.count("provider") == 1

    @pytest.mark.asyncio
    async def test_penalties_and_deficiencies(self, make_cache, make_registry_client):
        client = make_registry_client(
            penalties={"455678": [{"penalty_type": "Fine", "fine_amount": "6,500"}]},
            deficiencies={"455678": [{"deficiency_prefix": "F", "deficiency_tag_number": "0689",
                                      "deficiency_corrected": "Y"}]},
        )
        cache = make_cache(client)

        penalties = await cache.get_penalties("455678")
        deficiencies = await cache.get_deficiencies("455678")

        assert penalties[0].fine_amount == 6500.0
        assert deficiencies[0].tag == "F0689"
        assert deficiencies[0].corrected is True


class TestPersistentLayer:

    @pytest.mark.asyncio
    async def test_shared_across_cache_instances(self, make_cache, make_registry_client, session_factory):
        first_client = make_registry_client()
        second_client = make_registry_client()

        await make_cache(first_client, session_factory).search_providers("Valley Grande", state="TX")
        providers = await make_cache(second_client, session_factory).search_providers("Valley Grande", state="TX")

        assert [p.ccn for p in providers] == ["455678"]
        assert first_client.count("search") == 1
        assert second_client.count("search") == 0

    @pytest.mark.asyncio
    async def test_not_found_persisted(self, make_cache, make_registry_client, session_factory):
        first_client = make_registry_client()
        second_client = make_registry_client()

        assert await make_cache(first_client, session_factory).get_provider("999999") is None
        assert await make_cache(second_client, session_factory).get_provider("999999") is None
        assert second_client.count("provider") == 0

    @pytest.mark.asyncio
    async def test_expired_persistent_entry_refetched(self, make_cache, make_registry_client, session_factory, clock):
        await make_cache(make_registry_client(), session_factory).get_provider("455678")

        clock.advance(days=8)
        client = make_registry_client()
        provider = await make_cache(client, session_factory).get_provider("455678")

        assert provider.ccn == "455678"
        assert client.count("provider") == 1

    @pytest.mark.asyncio
    async def test_purge_expired(self, make_cache, registry_client, session_factory, clock):
        cache = make_cache(registry_client, session_factory)
        await cache.get_provider("455678")
        clock.advance(days=3)
        await cache.get_provider("455999")

        clock.advance(days=5)
        assert await cache.purge_expired() == 1

    @pytest.mark.asyncio
    async def test_broken_store_does_not_fail_reads(self, make_cache, registry_client):
        @asynccontextmanager
        async def broken_session():
            raise RuntimeError("database unavailable")
            yield

        cache = make_cache(registry_client, broken_session)

        provider = await cache.get_provider("455678")
        assert provider.ccn == "455678"
        # memory layer still filled
        await cache.get_provider("455678")
        assert registry_client.count("provider") == 1


class TestMemoryBounds:

    @pytest.mark.asyncio
    async def test_key_locks_released_after_lookups(self, make_cache, registry_client):
        cache = make_cache(registry_client)

        await asyncio.gather(*[cache.get_provider(f"{n:06d}") for n in range(50)])
        await asyncio.gather(*[cache.get_provider("455678") for _ in range(10)])

        assert cache._key_locks == {}
        assert cache._lock_users == {}

    @pytest.mark.asyncio
    async def test_key_locks_released_after_failure(self, make_cache, registry_client):
        cache = make_cache(registry_client)
        registry_client.fail = True

        await cache.get_provider("455678")

        assert cache._key_locks == {}

    @pytest.mark.asyncio
    async def test_expired_entry_evicted_on_read(self, make_cache, registry_client, clock):
        cache = make_cache(registry_client)
        await cache.get_provider("455678")
        await cache.get_provider("999999")

        clock.advance(days=8)
        registry_client.fail = True
        await cache.get_provider("999999")

        assert "provider:999999" not in cache._memory
        assert "provider:455678" in cache._memory

    @pytest.mark.asyncio
    async def test_purge_evicts_expired_memory_entries(self, make_cache, registry_client, clock):
        cache = make_cache(registry_client)
        await cache.get_provider("455678")
        clock.advance(days=5)
        await cache.get_provider("455999")

        clock.advance(days=3)
        assert await cache.purge_expired() == 0

        assert list(cache._memory) == ["provider:455999"]
