# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
from __future__ import annotations

from typing import Optional, Tuple

from ..core.types import ChatRecord, ChatSummary, MessageEntry, Participant
from .pending import OptimisticWriteBuffer


class SessionState:
    """Everything the engine holds for one connected account.

    Created when an account connects and dropped when it disconnects or
    switches. Reconcilers receive it by reference and only ever assign whole
    new values to its attributes, so the UI never observes a half-applied merge.
    """

    def __init__(self, current_user: Participant, write_buffer: Optional[OptimisticWriteBuffer] = None) -> None:
        self.current_user = current_user
        self.write_buffer = write_buffer if write_buffer is not None else OptimisticWriteBuffer()

        self.chats: Tuple[ChatSummary, ...] = ()
        self.current_chat: Optional[ChatRecord] = None
        self.messages: Tuple[MessageEntry, ...] = ()

        self.is_loading_chats = False
        self.is_loading_messages = False
        self.is_sending_message = False
        self.is_creating_chat = False
        self.error: Optional[str] = None

        self.closed = False
        self.revision = 0

    @property
    def current_chat_id(self) -> Optional[str]:
        return self.current_chat.id if self.current_chat is not None else None

    def touch(self) -> None:
        self.revision += 1

    def set_error(self, exc_or_msg) -> None:
        self.error = str(exc_or_msg) or exc_or_msg.__class__.__name__
        self.touch()

    def close(self) -> None:
        self.closed = True
        self.write_buffer.clear()
