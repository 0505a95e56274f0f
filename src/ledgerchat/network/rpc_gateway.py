# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
"""
Production gateway: chat reads and signed chat mutations over ``NodeClient``.

Wire types: CHAT_DISCOVER, CHAT_GET, CHAT_SEND, CHAT_READ, CHAT_START,
TX_STATUS and PROFILE_GET. The blocking client runs in a worker thread via
``asyncio.to_thread`` so the event loop never waits on a socket.
"""
from __future__ import annotations

import asyncio, time
from typing import Any, Dict, Optional, Sequence

from ..core.decoder import decode_chat_ids, decode_chat_record, decode_receipt
from ..core.errors import DecodeError, DiscoveryError, FetchError, FinalityError, ResolutionError, SubmissionError
from ..core.types import ChatRecord, FinalityReceipt, MutationHandle, Participant
from ..utils import config as CFG
from ..utils.helpers import canonical_dumps, now_ms
from ..wallet.signer import WalletSigner, is_valid_address
from .gateway import IdentityResolutionService, RemoteLedgerGateway
from .rpc_client import NodeClient

# ---------------- Logger ----------------
from ..utils.chat_logging import get_ctx_logger
log = get_ctx_logger("ledgerchat.network(rpc_gateway)")

_FINAL_OK = {"success", "final", "confirmed"}
_FINAL_BAD = {"failure", "failed", "rejected", "dropped"}


def _reply_error(resp: Any) -> Optional[str]:
    if not isinstance(resp, dict):
        return "malformed reply"
    err = resp.get("error")
    if err:
        return str(err)
    if resp.get("status") == "error":
        return str(resp.get("reason") or resp.get("message") or "node error")
    return None


class RpcLedgerGateway(RemoteLedgerGateway):
    def __init__(self, client: NodeClient, signer: WalletSigner,
                 finality_timeout: float = CFG.FINALITY_TIMEOUT_S,
                 finality_interval: float = CFG.FINALITY_POLL_INTERVAL_S) -> None:
        self.client = client
        self.signer = signer
        self.finality_timeout = float(finality_timeout)
        self.finality_interval = float(finality_interval)

    async def _call(self, message: Dict[str, Any]) -> Dict[str, Any]:
        return await asyncio.to_thread(self.client.send, message)

    # ---------- reads ----------
    async def list_chat_record_ids(self, current_user: Participant) -> Sequence[str]:
        resp = await self._call({
            "type": "CHAT_DISCOVER",
            "address": current_user,
            "event": CFG.CHAT_CREATED_EVENT,
            "limit": CFG.CHAT_DISCOVERY_LIMIT,
        })
        err = _reply_error(resp)
        if err:
            raise DiscoveryError(f"Failed to fetch chats: {err}")
        ids = decode_chat_ids(resp)
        log.trace("[discover] %d candidate chat(s) for %s", len(ids), current_user, extra={"op": "list"})
        return ids

    async def fetch_chat_record(self, chat_id: str) -> Optional[ChatRecord]:
        resp = await self._call({"type": "CHAT_GET", "chat_id": chat_id})
        err = _reply_error(resp)
        if err:
            raise FetchError(f"Failed to fetch chat: {err}", chat_id=chat_id)
        raw = resp.get("chat")
        if raw is None:
            return None
        return decode_chat_record(raw, chat_id=chat_id)

    # ---------- mutations ----------
    def _signed(self, wire_type: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        payload = dict(fields)
        payload["sender"] = self.signer.address
        payload["pubkey"] = self.signer.pub_hex
        payload["ts"] = now_ms()
        sig = self.signer.sign(canonical_dumps(payload))
        return {"type": wire_type, "payload": payload, "sig": sig}

    async def _submit(self, wire_type: str, fields: Dict[str, Any], kind: str,
                      chat_id: Optional[str] = None) -> MutationHandle:
        msg = self._signed(wire_type, fields)
        resp = await self._call(msg)
        err = _reply_error(resp)
        if err:
            raise SubmissionError(f"{kind} rejected: {err}")
        digest = resp.get("digest") or resp.get("txid")
        if not isinstance(digest, str) or not digest:
            raise SubmissionError(f"{kind} accepted without a digest")
        log.debug("[submit] %s digest=%s", kind, digest, extra={"chat": chat_id or "-", "op": kind})
        return MutationHandle(digest=digest, kind=kind, chat_id=chat_id)

    async def submit_message(self, chat_id: str, body: bytes, fingerprint: bytes) -> MutationHandle:
        return await self._submit("CHAT_SEND", {
            "chat_id": chat_id,
            "encrypted_message": bytes(body).hex(),
            "content_hash": bytes(fingerprint).hex(),
        }, kind="send", chat_id=chat_id)

    async def submit_read_receipt(self, chat_id: str, message_index: int) -> MutationHandle:
        return await self._submit("CHAT_READ", {"chat_id": chat_id, "message_index": int(message_index)},
                                  kind="read", chat_id=chat_id)

    async def submit_chat_creation(self, other: Participant) -> MutationHandle:
        if not is_valid_address(other):
            raise SubmissionError(f"Invalid participant address: {other!r}")
        return await self._submit("CHAT_START", {"participant_2": other}, kind="start")

    async def await_finality(self, handle: MutationHandle) -> FinalityReceipt:
        deadline = time.monotonic() + self.finality_timeout
        while True:
            resp = await self._call({"type": "TX_STATUS", "digest": handle.digest})
            err = resp.get("error") if isinstance(resp, dict) else "malformed reply"
            status = str(resp.get("status", "")).lower() if isinstance(resp, dict) else ""
            if status in _FINAL_OK:
                try:
                    return decode_receipt(resp, handle.digest)
                except DecodeError as exc:
                    raise FinalityError(f"unreadable receipt: {exc}", digest=handle.digest) from exc
            if status in _FINAL_BAD:
                reason = resp.get("reason") or err or status
                raise FinalityError(f"Transaction failed: {reason}", digest=handle.digest)
            if err:
                # node unreachable right now; keep waiting until the deadline
                log.debug("[finality] %s status query failed: %s", handle.digest, err, extra={"op": handle.kind})
            if time.monotonic() >= deadline:
                raise FinalityError(f"Timed out waiting for {handle.kind} to finalize", digest=handle.digest)
            await asyncio.sleep(self.finality_interval)


class RpcIdentityService(IdentityResolutionService):
    def __init__(self, client: NodeClient) -> None:
        self.client = client

    async def resolve(self, participant: Participant) -> Optional[str]:
        resp = await asyncio.to_thread(self.client.send, {"type": "PROFILE_GET", "address": participant})
        err = _reply_error(resp)
        if err:
            if "not found" in err.lower():
                return None
            raise ResolutionError(f"profile lookup failed: {err}")
        profile = resp.get("profile", resp)
        if not isinstance(profile, dict):
            return None
        name = profile.get("username")
        return str(name) if name else None
