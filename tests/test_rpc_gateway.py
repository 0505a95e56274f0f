# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md

import asyncio

import pytest

from ledgerchat.core.errors import DecodeError, DiscoveryError, FetchError, FinalityError, SubmissionError
from ledgerchat.core.types import MutationHandle
from ledgerchat.network.rpc_gateway import RpcIdentityService, RpcLedgerGateway
from ledgerchat.utils import config as CFG
from ledgerchat.utils.helpers import canonical_dumps
from ledgerchat.wallet.signer import WalletSigner


class StubClient:
    """Stands in for NodeClient: answers per wire type from a script."""

    def __init__(self, **replies):
        self.replies = {k: list(v) if isinstance(v, list) else [v] for k, v in replies.items()}
        self.sent = []

    def send(self, message):
        self.sent.append(message)
        queue = self.replies.get(message["type"])
        if not queue:
            return {"error": "No response from any node"}
        return queue.pop(0) if len(queue) > 1 else queue[0]


def _gw(client, **kw):
    kw.setdefault("finality_interval", 0.0)
    return RpcLedgerGateway(client, WalletSigner.generate(), **kw)


def test_discovery_request_and_reply():
    client = StubClient(CHAT_DISCOVER={"events": [
        {"type": "0xpkg::chat::ChatCreated", "parsedJson": {"chat_id": "0x1"}},
        {"type": "0xpkg::chat::ChatCreated", "parsedJson": {"chat_id": "0x2"}},
    ]})
    ids = asyncio.run(_gw(client).list_chat_record_ids("tsar1me"))
    assert ids == ["0x1", "0x2"]
    req = client.sent[0]
    assert req["address"] == "tsar1me"
    assert req["event"] == CFG.CHAT_CREATED_EVENT
    assert req["limit"] == CFG.CHAT_DISCOVERY_LIMIT


def test_discovery_error_reply_raises():
    with pytest.raises(DiscoveryError):
        asyncio.run(_gw(StubClient()).list_chat_record_ids("tsar1me"))


def test_fetch_decodes_record_and_maps_absence_to_none():
    chat = {"id": {"id": "0x1"}, "participant_1": "tsar1a", "participant_2": "tsar1b",
            "messages": [{"sender": "tsar1a", "encrypted_message": list(b"hi"), "content_hash": [],
                          "sent_timestamp": "9"}]}
    client = StubClient(CHAT_GET=[{"chat": chat}, {"chat": None}, {"chat": {"id": "0x3"}}, {"error": "boom"}])
    gw = _gw(client)

    async def scenario():
        rec = await gw.fetch_chat_record("0x1")
        assert rec.messages[0].body == b"hi" and rec.messages[0].sent_at == 9
        assert await gw.fetch_chat_record("0x2") is None
        with pytest.raises(DecodeError):
            await gw.fetch_chat_record("0x3")
        with pytest.raises(FetchError) as ei:
            await gw.fetch_chat_record("0x4")
        assert ei.value.chat_id == "0x4"

    asyncio.run(scenario())


def test_mutations_are_signed_by_the_wallet():
    client = StubClient(CHAT_SEND={"digest": "d1"})
    gw = _gw(client)
    handle = asyncio.run(gw.submit_message("0x1", b"hello", b"\x01\x02"))
    assert handle == MutationHandle(digest="d1", kind="send", chat_id="0x1")

    msg = client.sent[0]
    payload = msg["payload"]
    assert payload["encrypted_message"] == b"hello".hex()
    assert payload["content_hash"] == "0102"
    assert payload["sender"] == gw.signer.address
    assert WalletSigner.verify(payload["pubkey"], canonical_dumps(payload), msg["sig"])


@pytest.mark.parametrize("reply", [{"error": "mempool full"}, {"ok": True}, {"status": "error", "reason": "nope"}])
def test_rejected_or_digestless_submission_raises(reply):
    with pytest.raises(SubmissionError):
        asyncio.run(_gw(StubClient(CHAT_READ=reply)).submit_read_receipt("0x1", 0))


def test_chat_creation_validates_address_before_sending():
    client = StubClient(CHAT_START={"digest": "d9"})
    gw = _gw(client)
    with pytest.raises(SubmissionError):
        asyncio.run(gw.submit_chat_creation("not-an-address"))
    assert client.sent == []

    other = WalletSigner.generate().address
    handle = asyncio.run(gw.submit_chat_creation(other))
    assert handle.kind == "start"
    assert client.sent[0]["payload"]["participant_2"] == other


def test_locked_wallet_refuses_to_sign():
    gw = RpcLedgerGateway(StubClient(CHAT_SEND={"digest": "d1"}), WalletSigner(None))
    with pytest.raises(SubmissionError):
        asyncio.run(gw.submit_message("0x1", b"x", b""))


def test_finality_polls_until_final():
    client = StubClient(TX_STATUS=[
        {"status": "pending"},
        {"error": "No response from any node"},
        {"status": "success", "events": [{"type": "0xp::chat::ChatCreated", "parsedJson": {"chat_id": "0x5"}}]},
    ])
    receipt = asyncio.run(_gw(client).await_finality(MutationHandle("d1", "start")))
    assert receipt.find_event("ChatCreated").data == {"chat_id": "0x5"}
    assert len(client.sent) == 3


def test_failed_or_stuck_mutation_raises_finality_error():
    gw = _gw(StubClient(TX_STATUS={"status": "failure", "reason": "abort 3"}))
    with pytest.raises(FinalityError) as ei:
        asyncio.run(gw.await_finality(MutationHandle("d1", "send")))
    assert "abort 3" in str(ei.value)
    assert ei.value.digest == "d1"

    stuck = _gw(StubClient(TX_STATUS={"status": "pending"}), finality_timeout=0.0)
    with pytest.raises(FinalityError):
        asyncio.run(stuck.await_finality(MutationHandle("d2", "send")))


def test_identity_service_reads_profiles():
    client = StubClient(PROFILE_GET=[{"profile": {"username": "bob"}}, {"error": "profile not found"},
                                     {"profile": {}}])
    svc = RpcIdentityService(client)

    async def scenario():
        assert await svc.resolve("tsar1bob") == "bob"
        assert await svc.resolve("tsar1x") is None
        assert await svc.resolve("tsar1y") is None

    asyncio.run(scenario())
