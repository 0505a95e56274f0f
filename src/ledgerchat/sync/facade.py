# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
"""
Single entry point the UI talks to.

Owns one ``SessionState`` per connected account, the two poll schedules and
the identity cache. Foreground operations return ``None``/``False`` on failure
and leave a human readable message in :attr:`SynchronizationFacade.error`.
"""
from __future__ import annotations

import asyncio
from typing import Optional, Set, Tuple

from ..core.errors import FinalityError, SyncError
from ..core.types import ChatListItem, ChatRecord, DecodedMessage, MutationHandle, Participant, Pending
from ..network.gateway import IdentityResolutionService, RemoteLedgerGateway
from ..utils import config as CFG
from ..utils.helpers import decode_body
from .chat_list import ChatListReconciler
from .identity import IdentityCache
from .scheduler import CancelToken, PollHandle, PollScheduler
from .session import ChatSessionReconciler
from .state import SessionState

# ---------------- Logger ----------------
from ..utils.chat_logging import get_ctx_logger
log = get_ctx_logger("ledgerchat.sync(facade)")


class SynchronizationFacade:
    def __init__(self, gateway: RemoteLedgerGateway,
                 identity_service: Optional[IdentityResolutionService] = None,
                 scheduler: Optional[PollScheduler] = None,
                 list_interval_ms: int = CFG.CHAT_LIST_POLL_INTERVAL_MS,
                 chat_interval_ms: int = CFG.CHAT_POLL_INTERVAL_MS) -> None:
        self.gateway = gateway
        self.identities = IdentityCache(identity_service)
        self.scheduler = scheduler or PollScheduler()
        self.list_interval_ms = int(list_interval_ms)
        self.chat_interval_ms = int(chat_interval_ms)

        self.state: Optional[SessionState] = None
        self.chat_list: Optional[ChatListReconciler] = None
        self.session: Optional[ChatSessionReconciler] = None

        self._list_poll: Optional[PollHandle] = None
        self._chat_poll: Optional[PollHandle] = None
        self._open_token: Optional[CancelToken] = None
        self._background: Set[asyncio.Task] = set()
        self._error: Optional[str] = None

    # ==================================================
    # ============ Account lifecycle ===================
    # ==================================================
    @property
    def account(self) -> Optional[Participant]:
        return self.state.current_user if self.state is not None else None

    @property
    def connected(self) -> bool:
        return self.state is not None and not self.state.closed

    async def connect(self, account: Participant) -> bool:
        """Bind to ``account``: fresh state, initial list load, chat list polling."""
        if not account:
            await self.disconnect()
            self._error = CFG.ACCOUNT_NOT_CONNECTED
            return False
        if self.connected and self.state.current_user == account:
            return True
        await self.disconnect()

        st = SessionState(account)
        self.state = st
        self.chat_list = ChatListReconciler(st, self.gateway)
        self.session = ChatSessionReconciler(st, self.gateway, on_record=self.chat_list.absorb)
        self._error = None
        log.info("[connect] account %s", account, extra={"peer": account})

        await self.list_chats()
        if st.closed:
            return False
        self._list_poll = self.scheduler.start(self.list_interval_ms, self._list_tick, label=f"chats:{account[:12]}")
        return True

    async def disconnect(self) -> None:
        st = self.state
        self.close_chat()
        self.scheduler.cancel(self._list_poll)
        self._list_poll = None
        for task in list(self._background):
            task.cancel()
        self._background.clear()
        if st is not None and not st.closed:
            st.close()
            log.info("[disconnect] account %s", st.current_user, extra={"peer": st.current_user})
        self.state = None
        self.chat_list = None
        self.session = None

    def _require(self) -> Optional[SessionState]:
        if not self.connected:
            self._error = CFG.ACCOUNT_NOT_CONNECTED
            log.debug("[facade] operation refused, no account")
            return None
        return self.state

    # ==================================================
    # ============ Chat list ===========================
    # ==================================================
    async def list_chats(self, silent: bool = False) -> bool:
        st = self._require()
        if st is None:
            return False
        chat_list = self.chat_list
        self.identities.begin_cycle()
        ok = await chat_list.refresh(silent=silent)
        if ok and not st.closed:
            self._prefetch_names(st)
        return ok

    async def _list_tick(self, token: CancelToken) -> None:
        st = self.state
        if st is None or st.closed or token.cancelled:
            return
        self.identities.begin_cycle()
        if await self.chat_list.refresh(silent=True, token=token) and not token.cancelled:
            self._prefetch_names(st)

    def _prefetch_names(self, st: SessionState) -> None:
        others = [s.other_participant for s in st.chats if s.other_participant not in self.identities]
        if not others:
            return
        task = asyncio.get_running_loop().create_task(self.identities.prefetch(others))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def settle(self) -> None:
        """Wait for background name lookups scheduled so far."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def start_chat(self, other: Participant) -> Optional[str]:
        """Create a chat with ``other``; returns its id once it is durable and listed."""
        st = self._require()
        if st is None:
            return None
        st.is_creating_chat = True
        st.error = None
        st.touch()
        try:
            handle = await self.gateway.submit_chat_creation(other)
            receipt = await self.gateway.await_finality(handle)
            event = receipt.find_event(CFG.CHAT_CREATED_EVENT)
            chat_id = event.data.get("chat_id") if event is not None else None
            if not isinstance(chat_id, str) or not chat_id:
                raise FinalityError("Chat created but ID not found in events", digest=handle.digest)
        except Exception as exc:
            if not st.closed:
                if isinstance(exc, SyncError):
                    log.warning("[start_chat] with %s failed: %s", other, exc, extra={"peer": other, "op": "start"})
                    st.set_error(exc)
                else:
                    log.exception("[start_chat] unexpected error with %s", other, extra={"peer": other, "op": "start"})
                    st.set_error(f"Failed to create chat: {exc}")
            return None
        finally:
            if not st.closed:
                st.is_creating_chat = False
                st.touch()

        if st.closed:
            return None
        log.info("[start_chat] %s created with %s", chat_id, other, extra={"chat": chat_id, "peer": other, "op": "start"})
        await self.list_chats()
        return chat_id

    # ==================================================
    # ============ Open chat ===========================
    # ==================================================
    async def open_chat(self, chat_id: str) -> Optional[ChatRecord]:
        st = self._require()
        if st is None:
            return None
        self.close_chat()
        token = CancelToken(f"open:{chat_id}")
        self._open_token = token
        session = self.session

        record = await session.open_chat(chat_id, token=token)
        if record is None or token.cancelled or st.closed:
            return None
        self._start_chat_poll(session, chat_id)
        return record

    def _start_chat_poll(self, session: ChatSessionReconciler, chat_id: str) -> None:
        self._chat_poll = self.scheduler.start(
            self.chat_interval_ms,
            lambda t, cid=chat_id: session.poll(cid, silent=True, token=t),
            label=f"chat:{chat_id}",
        )

    def close_chat(self) -> None:
        if self._open_token is not None:
            self._open_token.cancel()
            self._open_token = None
        self.scheduler.cancel(self._chat_poll)
        self._chat_poll = None
        st = self.state
        if st is not None and not st.closed and (st.current_chat is not None or st.messages
                                                 or st.is_loading_messages):
            st.current_chat = None
            st.messages = ()
            st.is_loading_messages = False
            st.touch()

    async def get_chat_by_id(self, chat_id: str) -> Optional[ChatRecord]:
        """Make ``chat_id`` current without a foreground message load.

        Re-reading the open chat keeps its schedule. Any other chat replaces the
        open one: its poll is restarted and fills the message list on the next tick.
        """
        st = self._require()
        if st is None:
            return None
        session = self.session
        if self._chat_poll is not None and st.current_chat_id == chat_id:
            return await session.get_chat_by_id(chat_id, token=self._chat_poll.token)

        self.close_chat()
        token = CancelToken(f"get:{chat_id}")
        self._open_token = token
        record = await session.get_chat_by_id(chat_id, token=token)
        if record is None or token.cancelled or st.closed:
            return None
        self._start_chat_poll(session, chat_id)
        return record

    async def fetch_messages(self, chat_id: str, silent: bool = False) -> bool:
        if self._require() is None:
            return False
        return await self.session.fetch_messages(chat_id, silent=silent)

    async def refresh(self) -> None:
        """Foreground refresh of the list and, if one is open, the current chat."""
        st = self._require()
        if st is None:
            return
        await self.list_chats()
        chat_id = st.current_chat_id
        if chat_id is not None and not st.closed:
            await self.session.poll(chat_id, silent=False)

    # ==================================================
    # ============ Writes ==============================
    # ==================================================
    async def send_message(self, chat_id: str, text: str) -> Optional[MutationHandle]:
        if self._require() is None:
            return None
        return await self.session.send_message(chat_id, text)

    async def mark_read(self, chat_id: str, message_index: int) -> Optional[MutationHandle]:
        if self._require() is None:
            return None
        return await self.session.mark_read(chat_id, message_index)

    # ==================================================
    # ============ Views ===============================
    # ==================================================
    def _name(self, participant: Participant) -> str:
        # lookups are started by _prefetch_names, never by reading a view
        return self.identities.display_name(participant)

    @property
    def chats(self) -> Tuple[ChatListItem, ...]:
        st = self.state
        if st is None:
            return ()
        items = []
        for s in st.chats:
            ts = s.last_message_timestamp if s.last_message_timestamp is not None else s.created_at
            items.append(ChatListItem(
                id=s.id,
                user=self._name(s.other_participant),
                handle=self.identities.handle(s.other_participant),
                last_msg=s.last_message_preview if s.last_message_preview is not None else CFG.NO_MESSAGES_PREVIEW,
                timestamp=ts,
                unread=s.unread_count,
            ))
        return tuple(items)

    @property
    def messages(self) -> Tuple[DecodedMessage, ...]:
        st = self.state
        if st is None:
            return ()
        return tuple(
            DecodedMessage(
                id=str(e.sent_at),
                sender=e.sender,
                text=decode_body(e.body),
                timestamp=e.sent_at,
                is_read=e.is_read,
                pending=isinstance(e, Pending),
            )
            for e in st.messages
        )

    @property
    def current_chat(self) -> Optional[ChatRecord]:
        return self.state.current_chat if self.state is not None else None

    @property
    def is_loading_chats(self) -> bool:
        return bool(self.state and self.state.is_loading_chats)

    @property
    def is_loading_messages(self) -> bool:
        return bool(self.state and self.state.is_loading_messages)

    @property
    def is_sending_message(self) -> bool:
        return bool(self.state and self.state.is_sending_message)

    @property
    def is_creating_chat(self) -> bool:
        return bool(self.state and self.state.is_creating_chat)

    @property
    def error(self) -> Optional[str]:
        if self.state is not None and not self.state.closed:
            return self.state.error
        return self._error
