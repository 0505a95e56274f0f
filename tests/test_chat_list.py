# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md

import asyncio
from dataclasses import replace

from ledgerchat.core.errors import DiscoveryError, FetchError
from ledgerchat.sync.chat_list import ChatListReconciler
from ledgerchat.sync.scheduler import CancelToken
from ledgerchat.sync.state import SessionState

from fakes import ALICE, BOB, CAROL, FakeLedger, settle


def _setup():
    ledger = FakeLedger()
    st = SessionState(ALICE)
    return ledger, st, ChatListReconciler(st, ledger)


def test_refresh_builds_summaries_for_my_chats_only():
    async def scenario():
        ledger, st, rec = _setup()
        c1 = ledger.add_chat(ALICE, BOB)
        ledger.add_message(c1, BOB, "hello")
        c2 = ledger.add_chat(CAROL, ALICE)
        foreign = ledger.add_chat(BOB, CAROL)
        ledger.extra_ids.extend([foreign, c1, "0xmissing"])

        assert await rec.refresh() is True
        assert [s.id for s in st.chats] == [c1, c2]
        assert st.chats[0].unread_count == 1
        assert st.chats[0].last_message_preview == "hello"
        assert st.chats[1].other_participant == CAROL
        assert st.error is None
        assert st.is_loading_chats is False
        # each chat fetched once despite duplicate discovery
        assert ledger.count("fetch_chat_record") == 4

    asyncio.run(scenario())


def test_unchanged_refresh_keeps_every_object():
    async def scenario():
        ledger, st, rec = _setup()
        c1 = ledger.add_chat(ALICE, BOB)
        ledger.add_message(c1, BOB, "hello")
        await rec.refresh()
        held = st.chats
        rev = st.revision
        await rec.refresh(silent=True)
        assert st.chats is held
        assert st.revision == rev

    asyncio.run(scenario())


def test_broken_chat_aborts_the_cycle():
    async def scenario():
        ledger, st, rec = _setup()
        c1 = ledger.add_chat(ALICE, BOB)
        c2 = ledger.add_chat(ALICE, CAROL)
        await rec.refresh()
        held = st.chats

        ledger.add_message(c2, CAROL, "new")
        ledger.fetch_fail[c1] = FetchError("boom", chat_id=c1)
        assert await rec.refresh() is False
        assert st.chats is held
        assert st.error == "boom"
        assert st.is_loading_chats is False

        del ledger.fetch_fail[c1]
        assert await rec.refresh() is True
        assert st.chats[1].unread_count == 1
        assert st.error is None

    asyncio.run(scenario())


def test_discovery_failure_leaves_held_state_and_reports():
    async def scenario():
        ledger, st, rec = _setup()
        ledger.add_chat(ALICE, BOB)
        await rec.refresh()
        held = st.chats

        ledger.fail["list_chat_record_ids"] = DiscoveryError("Failed to fetch chats: rpc down")
        assert await rec.refresh() is False
        assert st.chats is held
        assert st.error == "Failed to fetch chats: rpc down"
        assert st.is_loading_chats is False

        del ledger.fail["list_chat_record_ids"]
        assert await rec.refresh() is True
        assert st.error is None

    asyncio.run(scenario())


def test_unexpected_error_is_wrapped_and_reported():
    async def scenario():
        ledger, st, rec = _setup()
        ledger.fail["list_chat_record_ids"] = RuntimeError("socket gone")
        assert await rec.refresh() is False
        assert "socket gone" in st.error

    asyncio.run(scenario())


def test_loading_flag_only_for_foreground_refresh():
    async def scenario():
        ledger, st, rec = _setup()
        ledger.add_chat(ALICE, BOB)
        gate = ledger.gates["list_chat_record_ids"] = asyncio.Event()

        task = asyncio.create_task(rec.refresh())
        await settle()
        assert st.is_loading_chats is True
        gate.set()
        await task
        assert st.is_loading_chats is False

        gate.clear()
        task = asyncio.create_task(rec.refresh(silent=True))
        await settle()
        assert st.is_loading_chats is False
        gate.set()
        await task

    asyncio.run(scenario())


def test_cancelled_cycle_result_is_dropped():
    async def scenario():
        ledger, st, rec = _setup()
        ledger.add_chat(ALICE, BOB)
        gate = ledger.gates["fetch_chat_record"] = asyncio.Event()
        token = CancelToken("list")

        task = asyncio.create_task(rec.refresh(silent=True, token=token))
        await settle()
        token.cancel()
        gate.set()
        assert await task is False
        assert st.chats == ()

    asyncio.run(scenario())


def test_absorb_updates_one_summary():
    async def scenario():
        ledger, st, rec = _setup()
        c1 = ledger.add_chat(ALICE, BOB)
        m = ledger.add_message(c1, BOB, "ping")
        await rec.refresh()
        assert st.chats[0].unread_count == 1

        ledger.chats[c1]["messages"][0] = replace(m, is_read=True)
        summary = rec.absorb(ledger.record(c1))
        assert summary.unread_count == 0
        assert st.chats[0] is summary
        assert rec.absorb(ledger.record(ledger.add_chat(BOB, CAROL))) is None

    asyncio.run(scenario())
