# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
"""
Single normalization point between the node's JSON and the canonical types.

Ledger objects reach the client in a few equivalent encodings (an object
wrapper with ``data.content.fields``, a bare ``fields`` wrapper, or the flat
field map; each message may itself be wrapped in ``fields``; byte vectors as
int arrays or hex strings; numbers as decimal strings; flags as "true" or
"false"). Everything is normalized here once so the reconcilers never branch
on representation.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from .errors import DecodeError
from .types import ChatRecord, FinalityReceipt, LedgerEvent, Message


def _unwrap_fields(obj: Any) -> Dict[str, Any]:
    if not isinstance(obj, dict):
        raise DecodeError(f"expected object, got {type(obj).__name__}")
    data = obj.get("data")
    if isinstance(data, dict) and isinstance(data.get("content"), dict):
        content = data["content"]
        if content.get("dataType", "moveObject") != "moveObject":
            raise DecodeError(f"unsupported content type {content.get('dataType')!r}")
        obj = content
    inner = obj.get("fields")
    if isinstance(inner, dict):
        return inner
    return obj


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise DecodeError(f"{name}: boolean is not a number")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise DecodeError(f"{name}: not an integer ({value!r})")


def _as_bool(value: Any, name: str) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise DecodeError(f"{name}: not a boolean ({value!r})")


def _as_bytes(value: Any, name: str) -> bytes:
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, list):
        try:
            return bytes(int(b) for b in value)
        except (TypeError, ValueError) as exc:
            raise DecodeError(f"{name}: invalid byte vector") from exc
    if isinstance(value, str):
        s = value[2:] if value.startswith("0x") else value
        try:
            return bytes.fromhex(s)
        except ValueError as exc:
            raise DecodeError(f"{name}: invalid hex string") from exc
    raise DecodeError(f"{name}: unsupported byte encoding {type(value).__name__}")


def _as_address(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value:
        raise DecodeError(f"{name}: missing participant")
    return value


def _object_id(fields: Dict[str, Any], fallback: Optional[str]) -> str:
    raw = fields.get("id", fallback)
    if isinstance(raw, dict):
        raw = raw.get("id")
    if not isinstance(raw, str) or not raw:
        raise DecodeError("chat object without id")
    return raw


def decode_message(raw: Any) -> Message:
    f = _unwrap_fields(raw)
    return Message(
        sender=_as_address(f.get("sender"), "sender"),
        body=_as_bytes(f.get("encrypted_message", f.get("body")), "encrypted_message"),
        content_fingerprint=_as_bytes(f.get("content_hash"), "content_hash"),
        sent_at=_as_int(f.get("sent_timestamp", f.get("sent_at")), "sent_timestamp"),
        is_read=_as_bool(f.get("is_read"), "is_read"),
    )


def decode_chat_record(raw: Any, chat_id: Optional[str] = None) -> ChatRecord:
    fields = _unwrap_fields(raw)
    cid = _object_id(fields, chat_id)
    raw_msgs = fields.get("messages") or []
    if not isinstance(raw_msgs, list):
        raise DecodeError("messages must be a list", chat_id=cid)
    try:
        msgs = [decode_message(m) for m in raw_msgs]
    except DecodeError as exc:
        raise DecodeError(f"chat {cid}: {exc}", chat_id=cid) from exc
    # stable: equal timestamps keep ledger order
    msgs.sort(key=lambda m: m.sent_at)
    return ChatRecord(
        id=cid,
        participant_a=_as_address(fields.get("participant_1"), "participant_1"),
        participant_b=_as_address(fields.get("participant_2"), "participant_2"),
        messages=tuple(msgs),
        created_at=_as_int(fields.get("created_at", 0), "created_at"),
    )


def decode_event(raw: Any) -> LedgerEvent:
    if not isinstance(raw, dict) or not isinstance(raw.get("type"), str):
        raise DecodeError("event without type")
    data = raw.get("parsedJson", raw.get("data")) or {}
    if not isinstance(data, dict):
        raise DecodeError(f"event {raw['type']}: payload is not an object")
    return LedgerEvent(type=raw["type"], data=dict(data))


def decode_receipt(raw: Dict[str, Any], digest: str) -> FinalityReceipt:
    events = raw.get("events") or []
    if not isinstance(events, list):
        raise DecodeError("events must be a list")
    return FinalityReceipt(digest=str(raw.get("digest") or digest), events=tuple(decode_event(e) for e in events))


def decode_chat_ids(raw: Dict[str, Any]) -> List[str]:
    """Chat ids from a discovery reply: ``ids`` list or ``ChatCreated`` events."""
    out: List[str] = []
    seen = set()

    def _add(cid: Any) -> None:
        if isinstance(cid, str) and cid and cid not in seen:
            seen.add(cid)
            out.append(cid)

    ids = raw.get("ids")
    if isinstance(ids, list):
        for cid in ids:
            _add(cid)
    events: Sequence[Any] = raw.get("events") or raw.get("data") or []
    if isinstance(events, list):
        for ev in events:
            if isinstance(ev, dict):
                payload = ev.get("parsedJson") or ev.get("data") or {}
                if isinstance(payload, dict):
                    _add(payload.get("chat_id"))
    return out
