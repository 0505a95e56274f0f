# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
from __future__ import annotations
import hashlib, json, time

from ..utils import config as CFG


def now_ms() -> int:
    return int(time.time() * 1000)

def sha256(b: bytes) -> bytes:
    return hashlib.sha256(b).digest()

def canonical_dumps(obj) -> bytes:
    return json.dumps(obj, separators=CFG.CANONICAL_SEP, sort_keys=True, ensure_ascii=False).encode("utf-8")


# ======== PARTICIPANT DISPLAY ========

def mask_addr(addr: str) -> str:
    a = addr or ""
    return a if len(a) <= 16 else (a[:8] + ":" + a[-8:])

def placeholder_name(addr: str) -> str:
    """Deterministic display form used until (or instead of) a resolved username."""
    a = addr or ""
    head, tail = CFG.PLACEHOLDER_HEAD, CFG.PLACEHOLDER_TAIL
    return f"User {a[:head]}...{a[-tail:] if tail else ''}"

def handle_for(addr: str, username: str | None = None) -> str:
    return username or (addr or "")[:CFG.HANDLE_CHARS]


# ======== MESSAGE BODIES ========

def encode_body(text: str) -> bytes:
    body = (text or "").encode("utf-8")
    if len(body) > CFG.CHAT_MAX_BODY_BYTES:
        raise ValueError(f"message body too large ({len(body)} > {CFG.CHAT_MAX_BODY_BYTES} bytes)")
    return body

def decode_body(body: bytes) -> str:
    try:
        return bytes(body).decode("utf-8")
    except (UnicodeDecodeError, TypeError):
        return CFG.UNDECODABLE_MESSAGE_TEXT

def content_fingerprint(sender: str, body: bytes, sent_at: int) -> bytes:
    # unique per send: two identical texts sent twice never share a fingerprint
    return sha256(b"|".join([b"CHAT_MSG", sender.encode("utf-8"), str(int(sent_at)).encode(), bytes(body)]))
