# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md

import json
import socket
import struct
import threading

import pytest

from ledgerchat.network.protocol import FrameError, encode_frame, recv_frame, send_frame
from ledgerchat.network.rpc_client import NodeClient
from ledgerchat.utils import config as CFG


def test_frame_layout_and_receive():
    a, b = socket.socketpair()
    with a, b:
        send_frame(a, b'{"type":"PING"}')
        assert recv_frame(b, timeout=1.0) == b'{"type":"PING"}'
    frame = encode_frame(b"x")
    assert frame[:4] == struct.pack(">I", len(CFG.NETWORK_MAGIC) + 1)
    assert frame[4:-1] == CFG.NETWORK_MAGIC


def test_foreign_magic_and_hangup_yield_none():
    a, b = socket.socketpair()
    with a, b:
        body = b"OTHERNET" + b"{}"
        a.sendall(struct.pack(">I", len(body)) + body)
        assert recv_frame(b, timeout=1.0) is None
        a.close()
        assert recv_frame(b, timeout=1.0) is None


def test_oversized_frame_is_refused(monkeypatch):
    monkeypatch.setattr(CFG, "MAX_MSG", 16)
    with pytest.raises(FrameError):
        encode_frame(b"x" * 32)


def _serve_once(reply):
    srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    srv.bind(("127.0.0.1", 0))
    srv.listen(1)
    seen = []

    def run():
        conn, _ = srv.accept()
        with conn:
            seen.append(json.loads(recv_frame(conn, timeout=2.0)))
            send_frame(conn, json.dumps(reply).encode())
        srv.close()

    t = threading.Thread(target=run, daemon=True)
    t.start()
    return srv.getsockname(), seen, t


def _dead_port():
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    addr = s.getsockname()
    s.close()
    return addr


def test_node_client_fails_over_and_remembers_the_good_node():
    good, seen, t = _serve_once({"chat": None})
    dead = _dead_port()
    client = NodeClient(nodes=[dead, good], timeout=2.0)
    assert client.send({"type": "CHAT_GET", "chat_id": "0x1"}) == {"chat": None}
    t.join(2.0)
    assert seen == [{"type": "CHAT_GET", "chat_id": "0x1"}]
    assert client.dir.last_good == good
    assert client._candidates()[0] == good


def test_node_client_reports_errors_instead_of_raising():
    client = NodeClient(nodes=[_dead_port()], timeout=0.5)
    assert client.send({"type": "CHAT_GET"}) == {"error": "No response from any node"}
