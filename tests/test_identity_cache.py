# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md

import asyncio

from ledgerchat.sync.identity import IdentityCache
from ledgerchat.utils.helpers import placeholder_name

from fakes import ALICE, BOB, CAROL, FakeIdentityService, settle


def test_placeholder_and_handle_before_resolution():
    cache = IdentityCache(FakeIdentityService())
    assert cache.display_name(BOB) == f"User {BOB[:6]}...{BOB[-4:]}"
    assert cache.handle(BOB) == BOB[:8]
    assert BOB not in cache


def test_resolve_without_running_loop_stays_unresolved():
    svc = FakeIdentityService({BOB: "bob"})
    cache = IdentityCache(svc)
    assert cache.resolve(BOB) is None
    assert svc.calls == []


def test_one_lookup_per_cycle_then_cached_forever():
    async def scenario():
        svc = FakeIdentityService({BOB: "bob"})
        cache = IdentityCache(svc)
        assert cache.resolve(BOB) is None
        assert cache.resolve(BOB) is None
        await settle()
        assert svc.calls == [BOB]
        assert cache.resolve(BOB) == "bob"
        cache.begin_cycle()
        assert cache.resolve(BOB) == "bob"
        await settle()
        assert svc.calls == [BOB]
        assert cache.display_name(BOB) == "bob"
        assert cache.handle(BOB) == "bob"

    asyncio.run(scenario())


def test_failed_lookup_degrades_silently_and_retries_next_cycle():
    async def scenario():
        svc = FakeIdentityService({CAROL: "carol"})
        svc.fail[CAROL] = RuntimeError("node down")
        cache = IdentityCache(svc)
        cache.resolve(CAROL)
        await settle()
        assert cache.lookup(CAROL) is None
        assert cache.display_name(CAROL) == placeholder_name(CAROL)

        cache.resolve(CAROL)
        await settle()
        assert svc.calls == [CAROL]

        del svc.fail[CAROL]
        cache.begin_cycle()
        cache.resolve(CAROL)
        await settle()
        assert cache.lookup(CAROL) == "carol"
        assert svc.calls == [CAROL, CAROL]

    asyncio.run(scenario())


def test_prefetch_counts_new_names_and_skips_unknown_profiles():
    async def scenario():
        svc = FakeIdentityService({BOB: "bob", CAROL: "carol"})
        cache = IdentityCache(svc)
        seen = []
        cache.on_resolved = lambda p, n: seen.append((p, n))
        added = await cache.prefetch([BOB, CAROL, ALICE, BOB])
        assert added == 2
        assert len(cache) == 2
        assert sorted(seen) == sorted([(BOB, "bob"), (CAROL, "carol")])
        assert await cache.prefetch([BOB, CAROL]) == 0
        assert svc.calls.count(BOB) == 1

    asyncio.run(scenario())


def test_prefetch_joins_a_lookup_already_in_flight():
    async def scenario():
        svc = FakeIdentityService({BOB: "bob"})
        svc.gate = asyncio.Event()
        cache = IdentityCache(svc)
        cache.resolve(BOB)
        waiter = asyncio.create_task(cache.prefetch([BOB]))
        await settle()
        assert not waiter.done()
        svc.gate.set()
        assert await waiter == 1
        assert svc.calls == [BOB]

    asyncio.run(scenario())


def test_cache_without_service_only_uses_placeholders():
    async def scenario():
        cache = IdentityCache(None)
        assert cache.resolve(BOB) is None
        assert await cache.prefetch([BOB]) == 0
        assert cache.display_name(BOB) == placeholder_name(BOB)

    asyncio.run(scenario())
