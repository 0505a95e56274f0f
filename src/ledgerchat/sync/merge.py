# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
"""
Pure comparison and merge primitives shared by both reconcilers.

Every function here is side-effect free and deterministic. The merge
functions hand back the *held* object whenever nothing visible changed, so
callers can use ``is`` to decide whether the UI has anything to re-render.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..core.types import (ChatRecord, ChatSummary, Confirmed, Message, MessageEntry, Participant,
                          Pending, PendingWrite)
from ..utils.helpers import decode_body

# Fields whose change makes a summary worth replacing.
SUMMARY_DIFF_FIELDS = ("last_message_timestamp", "unread_count")


# ---------- derivation ----------

def unread_count(messages: Iterable[Message], me: Participant) -> int:
    return sum(1 for m in messages if m.sender != me and not m.is_read)


def derive_summary(record: ChatRecord, me: Participant) -> ChatSummary:
    last = record.last_message
    return ChatSummary(
        id=record.id,
        other_participant=record.other_participant(me),
        last_message_preview=decode_body(last.body) if last else None,
        last_message_timestamp=last.sent_at if last else None,
        unread_count=unread_count(record.messages, me),
        created_at=record.created_at,
    )


def entries_from_record(record: ChatRecord) -> Tuple[MessageEntry, ...]:
    return tuple(Confirmed(m) for m in record.messages)


# ---------- change detection ----------

def summary_changed(old: ChatSummary, new: ChatSummary) -> bool:
    return any(getattr(old, f) != getattr(new, f) for f in SUMMARY_DIFF_FIELDS)


def _same_slot(a: MessageEntry, b: MessageEntry) -> bool:
    # a provisional timestamp lives in the client's clock domain, never the ledger's
    if type(a) is not type(b):
        return False
    return a.sent_at == b.sent_at


def sequence_changed(old: Sequence[MessageEntry], new: Sequence[MessageEntry]) -> bool:
    if len(old) != len(new):
        return True
    return any(not _same_slot(a, b) for a, b in zip(old, new))


# ---------- merges ----------

def merge_summaries(held: Tuple[ChatSummary, ...], fresh: Sequence[ChatSummary]) -> Tuple[ChatSummary, ...]:
    """Anti-flicker merge of a freshly derived batch into the held collection.

    Held ids keep their position and their object unless a diff field moved;
    ids missing from the batch are kept; unseen ids are appended in batch order.
    """
    if not held:
        deduped: Dict[str, ChatSummary] = {}
        for s in fresh:
            deduped.setdefault(s.id, s)
        return tuple(deduped.values())

    incoming: Dict[str, ChatSummary] = {}
    for s in fresh:
        incoming.setdefault(s.id, s)

    changed = False
    merged: List[ChatSummary] = []
    held_ids = set()
    for old in held:
        held_ids.add(old.id)
        new = incoming.get(old.id)
        if new is not None and summary_changed(old, new):
            merged.append(new)
            changed = True
        else:
            merged.append(old)

    for cid, new in incoming.items():
        if cid not in held_ids:
            merged.append(new)
            changed = True

    return tuple(merged) if changed else held


def overlay_pending(confirmed: Tuple[MessageEntry, ...], writes: Sequence[PendingWrite]) -> Tuple[MessageEntry, ...]:
    """Durable entries followed by every outstanding write the ledger has not shown yet."""
    if not writes:
        return confirmed
    durable = {(e.sender, e.message.content_fingerprint) for e in confirmed if isinstance(e, Confirmed)}
    extra = tuple(Pending(w) for w in writes if (w.sender, w.fingerprint) not in durable)
    return confirmed + extra if extra else confirmed


def merge_messages(held: Tuple[MessageEntry, ...], fresh: Tuple[MessageEntry, ...]) -> Tuple[MessageEntry, ...]:
    return fresh if sequence_changed(held, fresh) else held


def find_summary(held: Sequence[ChatSummary], chat_id: str) -> Optional[ChatSummary]:
    for s in held:
        if s.id == chat_id:
            return s
    return None
