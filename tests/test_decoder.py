# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md

import pytest

from ledgerchat.core.decoder import decode_chat_ids, decode_chat_record, decode_receipt
from ledgerchat.core.errors import DecodeError, FetchError

from fakes import ALICE, BOB


def _wrapped(fields):
    return {"data": {"objectId": "0xabc", "content": {"dataType": "moveObject", "fields": fields}}}


def test_nested_object_with_string_numbers_and_byte_arrays():
    raw = _wrapped({
        "id": {"id": "0xabc"},
        "participant_1": ALICE,
        "participant_2": BOB,
        "created_at": "1700",
        "messages": [
            {"fields": {"sender": BOB, "encrypted_message": list(b"later"), "content_hash": [1, 2],
                        "sent_timestamp": "2000", "is_read": False}},
            {"fields": {"sender": ALICE, "encrypted_message": "0x" + b"first".hex(), "content_hash": "0x0304",
                        "sent_timestamp": 1000, "is_read": True}},
        ],
    })
    rec = decode_chat_record(raw)
    assert rec.id == "0xabc"
    assert (rec.participant_a, rec.participant_b) == (ALICE, BOB)
    assert rec.created_at == 1700
    assert [m.body for m in rec.messages] == [b"first", b"later"]
    assert rec.messages[0].content_fingerprint == b"\x03\x04"
    assert rec.messages[0].is_read is True
    assert rec.messages[1].sent_at == 2000


def test_flat_record_takes_id_from_caller():
    rec = decode_chat_record({"participant_1": ALICE, "participant_2": BOB, "messages": []}, chat_id="0xdef")
    assert rec.id == "0xdef"
    assert rec.messages == ()
    assert rec.created_at == 0


def test_equal_timestamps_keep_ledger_order():
    msgs = [{"sender": BOB, "body": list(t.encode()), "content_hash": [], "sent_at": 5} for t in ("a", "b", "c")]
    rec = decode_chat_record({"id": "0x1", "participant_1": ALICE, "participant_2": BOB, "messages": msgs})
    assert [m.body for m in rec.messages] == [b"a", b"b", b"c"]


@pytest.mark.parametrize("fields", [
    {"id": "0x1", "participant_2": BOB, "messages": []},
    {"id": "0x1", "participant_1": ALICE, "participant_2": BOB, "messages": "nope"},
    {"id": "0x1", "participant_1": ALICE, "participant_2": BOB,
     "messages": [{"sender": BOB, "body": "zz", "sent_at": 1}]},
    {"id": "0x1", "participant_1": ALICE, "participant_2": BOB,
     "messages": [{"sender": BOB, "body": [], "sent_at": "soon"}]},
    {"participant_1": ALICE, "participant_2": BOB, "messages": []},
])
def test_malformed_records_raise_decode_error(fields):
    with pytest.raises(DecodeError):
        decode_chat_record(fields)


def test_decode_error_is_a_fetch_error_carrying_the_chat_id():
    bad = {"id": "0x9", "participant_1": ALICE, "participant_2": BOB,
           "messages": [{"sender": "", "body": [], "sent_at": 1}]}
    with pytest.raises(FetchError) as ei:
        decode_chat_record(bad)
    assert ei.value.chat_id == "0x9"


def test_chat_ids_from_ids_and_events_are_deduplicated():
    raw = {
        "ids": ["0x1", "0x2"],
        "events": [
            {"type": "0xpkg::chat::ChatCreated", "parsedJson": {"chat_id": "0x2"}},
            {"type": "0xpkg::chat::ChatCreated", "parsedJson": {"chat_id": "0x3"}},
            {"type": "0xpkg::chat::Other", "parsedJson": {}},
        ],
    }
    assert decode_chat_ids(raw) == ["0x1", "0x2", "0x3"]


def test_receipt_finds_event_by_suffix():
    receipt = decode_receipt({"events": [
        {"type": "0xpkg::chat::MessageSent", "parsedJson": {}},
        {"type": "0xpkg::chat::ChatCreated", "parsedJson": {"chat_id": "0x77"}},
    ]}, digest="d1")
    assert receipt.digest == "d1"
    assert receipt.find_event("ChatCreated").data["chat_id"] == "0x77"
    assert receipt.find_event("Created") is None


@pytest.mark.parametrize("flag, expected", [("false", False), ("True", True), (True, True), (None, False)])
def test_read_flag_accepts_string_encodings(flag, expected):
    msg = {"sender": BOB, "body": [], "sent_at": 1, "is_read": flag}
    rec = decode_chat_record({"id": "0x1", "participant_1": ALICE, "participant_2": BOB, "messages": [msg]})
    assert rec.messages[0].is_read is expected


@pytest.mark.parametrize("flag", ["no", 1, "0"])
def test_read_flag_rejects_anything_else(flag):
    msg = {"sender": BOB, "body": [], "sent_at": 1, "is_read": flag}
    with pytest.raises(DecodeError):
        decode_chat_record({"id": "0x1", "participant_1": ALICE, "participant_2": BOB, "messages": [msg]})
