# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
"""
Contracts of the two remote collaborators the sync engine talks to.

All methods are coroutines; they are the engine's only suspension points.
Implementations translate transport failures into the error kinds of
``ledgerchat.core.errors`` and hand back canonical types only.
"""
from __future__ import annotations

from typing import Optional, Sequence

from ..core.types import ChatRecord, FinalityReceipt, MutationHandle, Participant


class RemoteLedgerGateway:
    async def list_chat_record_ids(self, current_user: Participant) -> Sequence[str]:
        """Best-effort discovery, may return chats the user is not part of. Raises DiscoveryError."""
        raise NotImplementedError

    async def fetch_chat_record(self, chat_id: str) -> Optional[ChatRecord]:
        """Full read of one record, ``None`` when absent. Raises FetchError."""
        raise NotImplementedError

    async def submit_message(self, chat_id: str, body: bytes, fingerprint: bytes) -> MutationHandle:
        """Raises SubmissionError on signing refusal, network failure or rejection."""
        raise NotImplementedError

    async def submit_read_receipt(self, chat_id: str, message_index: int) -> MutationHandle:
        raise NotImplementedError

    async def submit_chat_creation(self, other: Participant) -> MutationHandle:
        raise NotImplementedError

    async def await_finality(self, handle: MutationHandle) -> FinalityReceipt:
        """Waits until the mutation is durable. Raises FinalityError when it provably failed or timed out."""
        raise NotImplementedError


class IdentityResolutionService:
    async def resolve(self, participant: Participant) -> Optional[str]:
        """Display name, or ``None`` when the participant has no profile."""
        raise NotImplementedError
