# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
"""
Wire framing shared by every RPC exchange with a node.

A frame is ``>I`` length, then ``NETWORK_MAGIC``, then a UTF-8 JSON payload.
The length covers magic and payload.
"""
from __future__ import annotations

import errno, json, socket, struct
from typing import Any, Dict, Optional

from ..utils import config as CFG

# ---------------- Logger ----------------
from ..utils.chat_logging import get_ctx_logger, TRACE
log = get_ctx_logger("ledgerchat.network(protocol)")

_DISCONNECT_ERRNOS = {errno.ECONNRESET, errno.EPIPE, errno.ECONNABORTED, errno.ENOTCONN}


class FrameError(Exception):
    pass


def is_disconnect(exc: BaseException) -> bool:
    if isinstance(exc, (ConnectionResetError, BrokenPipeError, ConnectionAbortedError)):
        return True
    return isinstance(exc, OSError) and getattr(exc, "errno", None) in _DISCONNECT_ERRNOS


def encode_frame(payload: bytes) -> bytes:
    body = CFG.NETWORK_MAGIC + payload
    if len(body) > CFG.MAX_MSG:
        raise FrameError(f"frame too large ({len(body)} > {CFG.MAX_MSG})")
    return struct.pack(">I", len(body)) + body


def send_frame(sock: socket.socket, payload: bytes) -> None:
    frame = encode_frame(payload)
    sock.sendall(frame)
    if log.isEnabledFor(TRACE):
        log.trace("[send_frame] %d bytes", len(frame))


def recv_exact(sock: socket.socket, n: int) -> bytes:
    buf = bytearray()
    while len(buf) < n:
        part = sock.recv(n - len(buf))
        if not part:
            raise ConnectionError("connection closed mid-frame")
        buf += part
    return bytes(buf)


def recv_frame(sock: socket.socket, timeout: Optional[float] = None) -> Optional[bytes]:
    """Payload of the next frame, or ``None`` when the peer hung up or spoke another network."""
    if timeout is not None:
        sock.settimeout(timeout)
    try:
        n = struct.unpack(">I", recv_exact(sock, 4))[0]
        if n <= 0 or n > CFG.MAX_MSG:
            log.debug("[recv_frame] bad frame length %d", n)
            return None
        body = recv_exact(sock, n)
    except (ConnectionError, OSError) as exc:
        if is_disconnect(exc) or isinstance(exc, ConnectionError):
            log.debug("[recv_frame] peer closed: %s", exc)
            return None
        raise
    if not body.startswith(CFG.NETWORK_MAGIC):
        log.debug("[recv_frame] foreign magic, frame dropped")
        return None
    return body[len(CFG.NETWORK_MAGIC):]


def dumps_request(message: Dict[str, Any]) -> bytes:
    return json.dumps(message, separators=CFG.CANONICAL_SEP).encode("utf-8")


def loads_reply(raw: bytes) -> Dict[str, Any]:
    obj = json.loads(raw.decode("utf-8"))
    if not isinstance(obj, dict):
        raise FrameError(f"reply is not an object ({type(obj).__name__})")
    return obj
