# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

Participant = str


# ==================================================
# ============ Durable ledger objects ==============
# ==================================================

@dataclass(frozen=True)
class Message:
    sender: Participant
    body: bytes
    content_fingerprint: bytes
    sent_at: int
    is_read: bool = False


@dataclass(frozen=True)
class ChatRecord:
    id: str
    participant_a: Participant
    participant_b: Participant
    messages: Tuple[Message, ...] = ()
    created_at: int = 0

    def has_participant(self, who: Participant) -> bool:
        return who in (self.participant_a, self.participant_b)

    def other_participant(self, me: Participant) -> Participant:
        return self.participant_b if self.participant_a == me else self.participant_a

    @property
    def last_message(self) -> Optional[Message]:
        return self.messages[-1] if self.messages else None


@dataclass(frozen=True)
class ChatSummary:
    id: str
    other_participant: Participant
    last_message_preview: Optional[str]
    last_message_timestamp: Optional[int]
    unread_count: int
    created_at: int


# ==================================================
# ============ Local (optimistic) entries ==========
# ==================================================

@dataclass(frozen=True)
class PendingWrite:
    """A locally originated message the ledger has not confirmed yet."""
    chat_id: str
    sender: Participant
    body: bytes
    fingerprint: bytes
    sent_at: int


@dataclass(frozen=True)
class Confirmed:
    message: Message

    @property
    def sent_at(self) -> int:
        return self.message.sent_at

    @property
    def sender(self) -> Participant:
        return self.message.sender

    @property
    def body(self) -> bytes:
        return self.message.body

    @property
    def is_read(self) -> bool:
        return self.message.is_read


@dataclass(frozen=True)
class Pending:
    write: PendingWrite

    @property
    def sent_at(self) -> int:
        return self.write.sent_at

    @property
    def sender(self) -> Participant:
        return self.write.sender

    @property
    def body(self) -> bytes:
        return self.write.body

    @property
    def is_read(self) -> bool:
        return False


MessageEntry = Union[Confirmed, Pending]


# ==================================================
# ============ Mutations ===========================
# ==================================================

@dataclass(frozen=True)
class MutationHandle:
    digest: str
    kind: str
    chat_id: Optional[str] = None


@dataclass(frozen=True)
class LedgerEvent:
    type: str
    data: dict = field(default_factory=dict)


@dataclass(frozen=True)
class FinalityReceipt:
    digest: str
    events: Tuple[LedgerEvent, ...] = ()

    def find_event(self, suffix: str) -> Optional[LedgerEvent]:
        for ev in self.events:
            if ev.type == suffix or ev.type.endswith("::" + suffix):
                return ev
        return None


# ==================================================
# ============ UI-facing views =====================
# ==================================================

@dataclass(frozen=True)
class ChatListItem:
    id: str
    user: str
    handle: str
    last_msg: str
    timestamp: int
    unread: int


@dataclass(frozen=True)
class DecodedMessage:
    id: str
    sender: Participant
    text: str
    timestamp: int
    is_read: bool
    pending: bool = False
