# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md

from ledgerchat.sync.pending import OptimisticWriteBuffer

from fakes import ALICE


def test_sends_in_the_same_millisecond_get_distinct_times():
    buf = OptimisticWriteBuffer(clock=lambda: 1000)
    w1 = buf.create("c1", ALICE, b"same")
    w2 = buf.create("c1", ALICE, b"same")
    assert (w1.sent_at, w2.sent_at) == (1000, 1001)
    assert w1.fingerprint != w2.fingerprint
    assert len(buf) == 2


def test_discard_removes_exactly_one_write():
    buf = OptimisticWriteBuffer(clock=lambda: 1000)
    w1 = buf.create("c1", ALICE, b"a")
    w2 = buf.create("c1", ALICE, b"b")
    assert buf.discard("c1", w1.sent_at) == w1
    assert buf.for_chat("c1") == (w2,)
    assert buf.discard("c1", 424242) is None
    assert buf.discard("nope", w2.sent_at) is None


def test_finalized_write_is_retired_on_next_reconcile():
    buf = OptimisticWriteBuffer(clock=lambda: 1000)
    w1 = buf.create("c1", ALICE, b"a")
    w2 = buf.create("c1", ALICE, b"b")
    buf.finalize("c1", w1.sent_at)
    assert buf.for_chat("c1") == (w1, w2)
    assert buf.reconcile("c1", []) == (w2,)
    assert buf.for_chat("c1") == (w2,)


def test_reconcile_retires_writes_the_ledger_already_shows():
    buf = OptimisticWriteBuffer(clock=lambda: 1000)
    w = buf.create("c1", ALICE, b"a")
    other = buf.create("c2", ALICE, b"a")
    assert buf.reconcile("c1", [b"unrelated"]) == (w,)
    assert buf.reconcile("c1", [w.fingerprint]) == ()
    assert buf.for_chat("c2") == (other,)
    assert len(buf) == 1


def test_clear_drops_everything():
    buf = OptimisticWriteBuffer(clock=lambda: 1000)
    w = buf.create("c1", ALICE, b"a")
    buf.finalize("c1", w.sent_at)
    buf.clear()
    assert len(buf) == 0
    assert buf.reconcile("c1", []) == ()
