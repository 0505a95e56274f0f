# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
from __future__ import annotations

from typing import Callable, Optional

from ..core.errors import SubmissionError, SyncError
from ..core.types import ChatRecord, MutationHandle, Pending
from ..network.gateway import RemoteLedgerGateway
from ..utils.helpers import encode_body
from .merge import entries_from_record, merge_messages, overlay_pending
from .scheduler import NEVER_CANCELLED, CancelToken
from .state import SessionState

# ---------------- Logger ----------------
from ..utils.chat_logging import get_ctx_logger
log = get_ctx_logger("ledgerchat.sync(session)")


class ChatSessionReconciler:
    """Keeps the open chat's message sequence in step with the ledger.

    ``on_record`` is called with every record this reconciler successfully
    applies, so the chat list can fold in new previews and unread counts.
    """

    def __init__(self, state: SessionState, gateway: RemoteLedgerGateway,
                 on_record: Optional[Callable[[ChatRecord], None]] = None) -> None:
        self.state = state
        self.gateway = gateway
        self.on_record = on_record

    # ---------- helpers ----------
    def _stale(self, chat_id: str, token: CancelToken, *, opening: bool = False) -> bool:
        st = self.state
        if token.cancelled or st.closed:
            return True
        return (not opening) and st.current_chat_id != chat_id

    def _fresh_entries(self, record: ChatRecord):
        buf = self.state.write_buffer
        writes = buf.reconcile(record.id, (m.content_fingerprint for m in record.messages))
        return overlay_pending(entries_from_record(record), writes)

    def _set_current(self, record: ChatRecord) -> None:
        st = self.state
        if st.current_chat != record:
            st.current_chat = record
            st.touch()

    def _notify(self, record: ChatRecord) -> None:
        if self.on_record is None:
            return
        try:
            self.on_record(record)
        except Exception:
            log.exception("[session] on_record callback error", extra={"chat": record.id})

    def _begin(self, silent: bool) -> None:
        st = self.state
        if not silent:
            st.is_loading_messages = True
        st.error = None
        st.touch()

    def _end(self, silent: bool, token: CancelToken) -> None:
        st = self.state
        # a superseded load must not clear the flag of the one that replaced it
        if not silent and not st.closed and not token.cancelled:
            st.is_loading_messages = False
            st.touch()

    def _fail(self, chat_id: str, token: CancelToken, exc: Exception, what: str) -> None:
        if token.cancelled or self.state.closed:
            return
        if isinstance(exc, SyncError):
            log.warning("[%s] %s failed: %s", what, chat_id, exc, extra={"chat": chat_id})
            self.state.set_error(exc)
        else:
            log.exception("[%s] unexpected error for %s", what, chat_id, extra={"chat": chat_id})
            self.state.set_error(f"Failed to fetch chat: {exc}")

    # ---------- reads ----------
    async def get_chat_by_id(self, chat_id: str, token: CancelToken = NEVER_CANCELLED) -> Optional[ChatRecord]:
        """Fetch a record and make it the current chat.

        The message list is left alone while the same chat stays current; a
        switch to another chat empties it so the view never mixes two chats.
        """
        self.state.error = None
        try:
            record = await self.gateway.fetch_chat_record(chat_id)
        except Exception as exc:
            self._fail(chat_id, token, exc, "get_chat_by_id")
            return None
        if record is None or self._stale(chat_id, token, opening=True):
            return None
        st = self.state
        if st.current_chat_id != record.id and st.messages:
            st.messages = ()
        self._set_current(record)
        return record

    async def open_chat(self, chat_id: str, token: CancelToken = NEVER_CANCELLED) -> Optional[ChatRecord]:
        """First load of a chat: current chat and message list are replaced outright."""
        st = self.state
        self._begin(silent=False)
        try:
            record = await self.gateway.fetch_chat_record(chat_id)
            if self._stale(chat_id, token, opening=True):
                log.debug("[open_chat] dropped late result for %s", chat_id, extra={"chat": chat_id})
                return None
            if record is None:
                log.warning("[open_chat] chat %s not found", chat_id, extra={"chat": chat_id})
                st.current_chat = None
                st.messages = ()
                st.touch()
                return None
            st.current_chat = record
            st.messages = self._fresh_entries(record)
            st.touch()
            log.debug("[open_chat] %s opened with %d message(s)", chat_id, len(st.messages), extra={"chat": chat_id})
            self._notify(record)
            return record
        except Exception as exc:
            self._fail(chat_id, token, exc, "open_chat")
            return None
        finally:
            self._end(silent=False, token=token)

    async def fetch_messages(self, chat_id: str, silent: bool = False,
                             token: CancelToken = NEVER_CANCELLED) -> bool:
        """Re-fetch and replace the message list outright (no change detection)."""
        st = self.state
        self._begin(silent)
        try:
            record = await self.gateway.fetch_chat_record(chat_id)
            if self._stale(chat_id, token):
                return False
            if record is None:
                st.messages = ()
                st.touch()
                return False
            self._set_current(record)
            st.messages = self._fresh_entries(record)
            st.touch()
            self._notify(record)
            return True
        except Exception as exc:
            self._fail(chat_id, token, exc, "fetch_messages")
            return False
        finally:
            self._end(silent, token)

    async def poll(self, chat_id: str, silent: bool = True, token: CancelToken = NEVER_CANCELLED) -> bool:
        """Re-fetch and merge. Returns True when the held sequence was replaced."""
        st = self.state
        if not silent:
            self._begin(silent)
        try:
            record = await self.gateway.fetch_chat_record(chat_id)
            if self._stale(chat_id, token):
                log.trace("[poll] dropped stale result for %s", chat_id, extra={"chat": chat_id})
                return False
            if record is None:
                log.warning("[poll] chat %s vanished from the ledger, keeping held state", chat_id, extra={"chat": chat_id})
                return False

            self._set_current(record)
            self._notify(record)
            merged = merge_messages(st.messages, self._fresh_entries(record))
            if merged is st.messages:
                log.trace("[poll] %s unchanged (%d)", chat_id, len(merged), extra={"chat": chat_id})
                return False
            log.debug("[poll] %s replaced: %d -> %d entries", chat_id, len(st.messages), len(merged), extra={"chat": chat_id})
            st.messages = merged
            st.touch()
            return True
        except Exception as exc:
            if silent:
                # background tick: keep whatever the UI shows, try again next tick
                if not (token.cancelled or st.closed):
                    log.warning("[poll] %s failed: %s", chat_id, exc, extra={"chat": chat_id})
                return False
            self._fail(chat_id, token, exc, "poll")
            return False
        finally:
            self._end(silent, token)

    # ---------- writes ----------
    async def send_message(self, chat_id: str, text: str) -> Optional[MutationHandle]:
        st = self.state
        me = st.current_user
        st.error = None
        try:
            body = encode_body(text)
        except ValueError as exc:
            st.set_error(exc)
            return None

        # optimistic insert happens before the first await
        write = st.write_buffer.create(chat_id, me, body)
        if st.current_chat_id == chat_id:
            st.messages = st.messages + (Pending(write),)
        st.is_sending_message = True
        st.touch()
        log.debug("[send] %s -> %s queued sent_at=%d", me, chat_id, write.sent_at, extra={"chat": chat_id, "op": "send"})

        try:
            handle = await self.gateway.submit_message(chat_id, body, write.fingerprint)
            await self.gateway.await_finality(handle)
        except Exception as exc:
            self._rollback(chat_id, write.sent_at)
            if not st.closed:
                if isinstance(exc, SyncError):
                    log.warning("[send] %s failed: %s", chat_id, exc, extra={"chat": chat_id, "op": "send"})
                    st.set_error(exc)
                else:
                    log.exception("[send] unexpected error for %s", chat_id, extra={"chat": chat_id, "op": "send"})
                    st.set_error(SubmissionError(f"Failed to send message: {exc}"))
            return None
        finally:
            if not st.closed:
                st.is_sending_message = False
                st.touch()

        st.write_buffer.finalize(chat_id, write.sent_at)
        log.info("[send] %s durable digest=%s", chat_id, handle.digest, extra={"chat": chat_id, "op": "send"})
        if st.current_chat_id == chat_id:
            await self.poll(chat_id, silent=False)
        else:
            await self._refresh_out_of_view(chat_id)
        return handle

    async def _refresh_out_of_view(self, chat_id: str) -> None:
        """Re-read a chat that is not open so its summary and write buffer catch up."""
        st = self.state
        try:
            record = await self.gateway.fetch_chat_record(chat_id)
        except SyncError as exc:
            log.debug("[session] background re-read of %s failed: %s", chat_id, exc, extra={"chat": chat_id})
            return
        if record is None or st.closed:
            return
        st.write_buffer.reconcile(record.id, (m.content_fingerprint for m in record.messages))
        self._notify(record)

    def _rollback(self, chat_id: str, sent_at: int) -> None:
        st = self.state
        st.write_buffer.discard(chat_id, sent_at)
        if st.current_chat_id != chat_id:
            return
        kept = tuple(e for e in st.messages
                     if not (isinstance(e, Pending) and e.write.chat_id == chat_id and e.sent_at == sent_at))
        if len(kept) != len(st.messages):
            st.messages = kept
            st.touch()
            log.debug("[send] rolled back optimistic entry sent_at=%d", sent_at, extra={"chat": chat_id, "op": "send"})

    async def mark_read(self, chat_id: str, message_index: int) -> Optional[MutationHandle]:
        st = self.state
        st.error = None
        try:
            handle = await self.gateway.submit_read_receipt(chat_id, int(message_index))
            await self.gateway.await_finality(handle)
        except Exception as exc:
            if not st.closed:
                if isinstance(exc, SyncError):
                    log.warning("[mark_read] %s#%s failed: %s", chat_id, message_index, exc, extra={"chat": chat_id, "op": "read"})
                    st.set_error(exc)
                else:
                    log.exception("[mark_read] unexpected error for %s", chat_id, extra={"chat": chat_id, "op": "read"})
                    st.set_error(SubmissionError(f"Failed to mark message as read: {exc}"))
            return None

        log.debug("[mark_read] %s#%d durable", chat_id, message_index, extra={"chat": chat_id, "op": "read"})
        # read flags do not move any sent_at, so the change-detecting poll would skip them
        if st.current_chat_id == chat_id:
            await self.fetch_messages(chat_id, silent=False)
        else:
            await self._refresh_out_of_view(chat_id)
        return handle
