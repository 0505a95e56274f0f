# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
from __future__ import annotations

import asyncio
from typing import List, Optional

from ..core.errors import DiscoveryError, SyncError
from ..core.types import ChatRecord, ChatSummary
from ..network.gateway import RemoteLedgerGateway
from .merge import derive_summary, find_summary, merge_summaries
from .scheduler import NEVER_CANCELLED, CancelToken
from .state import SessionState

# ---------------- Logger ----------------
from ..utils.chat_logging import get_ctx_logger
log = get_ctx_logger("ledgerchat.sync(chat_list)")


class ChatListReconciler:
    def __init__(self, state: SessionState, gateway: RemoteLedgerGateway) -> None:
        self.state = state
        self.gateway = gateway

    async def refresh(self, silent: bool = False, token: CancelToken = NEVER_CANCELLED) -> bool:
        """One list cycle. Returns True when the cycle completed (changed or not).

        ``silent`` leaves ``is_loading_chats`` alone (background polling). On
        any failure the held collection is left exactly as it was.
        """
        st = self.state
        me = st.current_user
        if not silent:
            st.is_loading_chats = True
            st.touch()
        st.error = None
        try:
            log.trace("[refresh] listing chats for %s silent=%s", me, silent, extra={"op": "list"})
            fresh = await self._collect(token)
            if token.cancelled or st.closed:
                log.debug("[refresh] dropped late result for %s", me, extra={"op": "list"})
                return False

            merged = merge_summaries(st.chats, fresh)
            if merged is not st.chats:
                st.chats = merged
                st.touch()
                log.debug("[refresh] %d chat(s) held after merge (%d fetched)", len(merged), len(fresh), extra={"op": "list"})
            else:
                log.trace("[refresh] no visible change (%d fetched)", len(fresh), extra={"op": "list"})
            return True

        except SyncError as exc:
            if not (token.cancelled or st.closed):
                log.warning("[refresh] chat list cycle failed: %s", exc, extra={"op": "list"})
                st.set_error(exc)
            return False
        except Exception as exc:
            if not (token.cancelled or st.closed):
                log.exception("[refresh] unexpected error while listing chats", extra={"op": "list"})
                st.set_error(DiscoveryError(f"Failed to fetch chats: {exc}"))
            return False
        finally:
            if not silent and not st.closed:
                st.is_loading_chats = False
                st.touch()

    async def _collect(self, token: CancelToken) -> List[ChatSummary]:
        me = self.state.current_user
        ids = await self.gateway.list_chat_record_ids(me)
        if token.cancelled:
            return []
        ids = list(dict.fromkeys(ids))
        if not ids:
            return []

        records = await asyncio.gather(*(self.gateway.fetch_chat_record(cid) for cid in ids))
        out: List[ChatSummary] = []
        for rec in records:
            if rec is None:
                continue
            if not rec.has_participant(me):
                log.trace("[collect] skip %s, %s is not a participant", rec.id, me, extra={"chat": rec.id})
                continue
            out.append(derive_summary(rec, me))
        return out

    def absorb(self, record: ChatRecord) -> Optional[ChatSummary]:
        """Fold one freshly fetched record into the held list under the same merge rule."""
        st = self.state
        if st.closed or not record.has_participant(st.current_user):
            return None
        merged = merge_summaries(st.chats, [derive_summary(record, st.current_user)])
        if merged is not st.chats:
            st.chats = merged
            st.touch()
        return find_summary(st.chats, record.id)
