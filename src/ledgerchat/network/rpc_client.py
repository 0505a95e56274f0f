# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md

from __future__ import annotations

import json, socket, threading, time, logging, secrets
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .protocol import FrameError, dumps_request, loads_reply, recv_frame, send_frame
from ..utils import config as CFG

# ---------------- Logger ----------------
from ..utils.chat_logging import get_ctx_logger
log = get_ctx_logger("ledgerchat.network(rpc_client)")

Peer = Tuple[str, int]

_last_log_gate: Dict[str, float] = {}


def _throttle(key: str, interval_sec: float) -> bool:
    now = time.time()
    last = _last_log_gate.get(key, 0.0)
    if now - last >= interval_sec:
        _last_log_gate[key] = now
        return True
    return False


class PeerDirectory:
    """Known-good nodes with a TTL; the last node that answered is always tried first."""

    def __init__(self, ttl: float) -> None:
        self.ttl = ttl
        self.cache: List[Peer] = []
        self.ts = 0.0
        self.last_good: Optional[Peer] = None
        self.lock = threading.Lock()

    def get(self) -> List[Peer]:
        with self.lock:
            if not self.cache or (time.time() - self.ts) >= self.ttl:
                return []
            nodes = list(self.cache)
            if self.last_good in nodes:
                nodes.remove(self.last_good)
                nodes.insert(0, self.last_good)
            return nodes

    def set(self, peers: Sequence[Peer]) -> None:
        with self.lock:
            self.cache = list(dict.fromkeys(peers))
            self.ts = time.time()

    def mark_good(self, peer: Peer) -> None:
        with self.lock:
            self.last_good = peer
            if peer not in self.cache:
                self.cache.insert(0, peer)
                self.ts = time.time()


class NodeClient:
    """Blocking request/response client. ``send`` never raises; failures come back as ``{"error": ...}``."""

    def __init__(self, nodes: Optional[Sequence[Peer]] = None, timeout: float = CFG.RPC_TIMEOUT) -> None:
        configured = nodes or tuple(getattr(CFG, "BOOTSTRAP_NODES", ()) or (CFG.BOOTSTRAP_NODE,))
        self.nodes: List[Peer] = [(str(h), int(p)) for h, p in configured]
        self.timeout = float(timeout)
        self.dir = PeerDirectory(ttl=CFG.NODE_CACHE_TTL)
        self._send_lock = threading.Lock()
        self._last_send_ts = 0.0

    def _candidates(self) -> List[Peer]:
        cached = self.dir.get()
        rest = [p for p in self.nodes if p not in cached]
        return cached + rest

    def _pace(self) -> None:
        interval = float(getattr(CFG, "WALLET_RPC_MIN_INTERVAL", 0.0) or 0.0)
        if interval <= 0.0:
            return
        with self._send_lock:
            now = time.time()
            wait = (self._last_send_ts + interval) - now
            if wait > 0:
                time.sleep(wait)
                now = time.time()
            self._last_send_ts = now

    # ----------- Core Send -----------
    def _try_send_one(self, peer: Peer, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with socket.create_connection(peer, timeout=self.timeout) as s:
            send_frame(s, dumps_request(message))
            raw = recv_frame(s, timeout=self.timeout)
        if not raw:
            return None
        reply = loads_reply(raw)
        self.dir.mark_good(peer)
        return reply

    def send(self, message: Dict[str, Any]) -> Dict[str, Any]:
        req = secrets.token_hex(6)
        rpc = message.get("type", "-")
        peers = self._candidates()
        if not peers:
            if _throttle("no_peers", 10.0):
                log.warning("[send] no nodes configured", extra={"op": rpc})
            return {"error": "No peers"}

        for peer in peers:
            try:
                self._pace()
                resp = self._try_send_one(peer, message)
                if resp is not None:
                    if log.isEnabledFor(logging.DEBUG):
                        log.debug("[send] %s via %s:%d req=%s", rpc, peer[0], peer[1], req, extra={"op": rpc})
                    return resp
            except (OSError, FrameError, json.JSONDecodeError, UnicodeDecodeError) as e:
                if _throttle(f"send_err_{peer}", 5.0):
                    log.warning("[send] %s to %s:%d failed: %s req=%s", rpc, peer[0], peer[1], e, req, extra={"op": rpc})
                continue

        if _throttle("no_response", 10.0):
            log.error("[send] no response from any node req=%s", req, extra={"op": rpc})
        return {"error": "No response from any node"}
