# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..core.types import Participant, PendingWrite
from ..utils.helpers import content_fingerprint, now_ms

# ---------------- Logger ----------------
from ..utils.chat_logging import get_ctx_logger
log = get_ctx_logger("ledgerchat.sync(pending)")


class OptimisticWriteBuffer:
    """In-memory holding area for sends the ledger has not confirmed yet.

    Lives only as long as the session state that owns it; nothing here is ever
    written to disk.
    """

    def __init__(self, clock=now_ms) -> None:
        self._clock = clock
        self._by_chat: Dict[str, List[PendingWrite]] = {}
        self._final: Set[Tuple[str, int]] = set()

    def create(self, chat_id: str, sender: Participant, body: bytes) -> PendingWrite:
        sent_at = int(self._clock())
        # two sends in the same millisecond must stay distinguishable for rollback
        for w in self._by_chat.get(chat_id, ()):
            if w.sent_at >= sent_at:
                sent_at = w.sent_at + 1
        write = PendingWrite(
            chat_id=chat_id,
            sender=sender,
            body=bytes(body),
            fingerprint=content_fingerprint(sender, body, sent_at),
            sent_at=sent_at,
        )
        self._by_chat.setdefault(chat_id, []).append(write)
        log.trace("[pending] +1 chat=%s sent_at=%d outstanding=%d", chat_id, sent_at, len(self._by_chat[chat_id]))
        return write

    def discard(self, chat_id: str, sent_at: int) -> Optional[PendingWrite]:
        items = self._by_chat.get(chat_id)
        if not items:
            return None
        for i, w in enumerate(items):
            if w.sent_at == sent_at:
                del items[i]
                self._final.discard((chat_id, sent_at))
                if not items:
                    self._by_chat.pop(chat_id, None)
                log.trace("[pending] -1 chat=%s sent_at=%d", chat_id, sent_at)
                return w
        return None

    def finalize(self, chat_id: str, sent_at: int) -> None:
        """The ledger reported the write durable; the next reconciliation of the chat retires it."""
        for w in self._by_chat.get(chat_id, ()):
            if w.sent_at == sent_at:
                self._final.add((chat_id, sent_at))
                return

    def reconcile(self, chat_id: str, durable_fingerprints: Iterable[bytes]) -> Tuple[PendingWrite, ...]:
        """Retire writes superseded by a successful fetch; returns the ones still in flight."""
        items = self._by_chat.get(chat_id)
        if not items:
            return ()
        seen = set(durable_fingerprints)
        keep: List[PendingWrite] = []
        for w in items:
            key = (chat_id, w.sent_at)
            if key in self._final or w.fingerprint in seen:
                self._final.discard(key)
                log.trace("[pending] retired chat=%s sent_at=%d", chat_id, w.sent_at)
                continue
            keep.append(w)
        if keep:
            self._by_chat[chat_id] = keep
        else:
            self._by_chat.pop(chat_id, None)
        return tuple(keep)

    def for_chat(self, chat_id: str) -> Tuple[PendingWrite, ...]:
        return tuple(self._by_chat.get(chat_id, ()))

    def clear(self) -> None:
        self._by_chat.clear()
        self._final.clear()

    def __len__(self) -> int:
        return sum(len(v) for v in self._by_chat.values())
