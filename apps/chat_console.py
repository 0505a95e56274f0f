# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md

"""
LedgerChat — console client

Role
- Lists, opens and writes chats stored on the ledger through one node.

Usage
- chat_console.py [--node HOST:PORT] list
- chat_console.py open <chat_id>
- chat_console.py send <chat_id> <text...>
- chat_console.py read <chat_id> <index>
- chat_console.py start <address>
- chat_console.py watch [chat_id]   (runs both pollers until Ctrl+C)

Notes
- The signing key lives encrypted at CFG.WALLET_KEY_PATH; it is created on
  first use and its recovery phrase is printed once.
"""

import argparse, asyncio, colorama, getpass, os, sys
from datetime import datetime

# ---------- Local Project ----------
from ledgerchat.network.rpc_client import NodeClient
from ledgerchat.network.rpc_gateway import RpcIdentityService, RpcLedgerGateway
from ledgerchat.sync.facade import SynchronizationFacade
from ledgerchat.utils import config as CFG
from ledgerchat.utils.chat_logging import setup_logging
from ledgerchat.utils.helpers import mask_addr
from ledgerchat.wallet.signer import WalletSigner, load_key, save_key

colorama.init()
RESET  = "\033[0m"
YELLOW = "\033[33m"
GREEN  = "\033[32m"
RED    = "\033[31m"
CYAN   = "\033[36m"
DIM    = "\033[2m"


def clog(message: str, color: str = GREEN):
    print(f"{datetime.now():%Y.%m.%d %H:%M:%S} : {color}{message}{RESET}")


def _fmt_ts(ms: int) -> str:
    if not ms:
        return "-"
    return datetime.fromtimestamp(ms / 1000.0).strftime("%m-%d %H:%M")


def _parse_node(value: str):
    host, _, port = value.rpartition(":")
    if not host or not port.isdigit():
        raise argparse.ArgumentTypeError("expected HOST:PORT")
    return host, int(port)


def _open_signer(path: str) -> WalletSigner:
    if os.path.exists(path):
        return load_key(path, getpass.getpass("Key password: "))
    clog(f"No key at {path}, creating a new one.", color=YELLOW)
    pw = getpass.getpass("New key password: ")
    if pw != getpass.getpass("Repeat password: "):
        clog("Passwords do not match.", color=RED)
        sys.exit(2)
    signer = WalletSigner.generate()
    save_key(path, signer, pw)
    clog(f"Address: {signer.address}")
    clog(f"Recovery phrase (write it down): {signer.to_mnemonic()}", color=YELLOW)
    return signer


# ---------- Rendering ----------

def print_chats(facade: SynchronizationFacade):
    items = facade.chats
    if not items:
        clog("No chats yet.", color=DIM)
        return
    for it in items:
        badge = f" {YELLOW}({it.unread}){RESET}" if it.unread else ""
        print(f"{CYAN}{it.id}{RESET}  {it.user} @{it.handle}{badge}")
        print(f"    {DIM}{_fmt_ts(it.timestamp)}{RESET}  {it.last_msg}")


def print_messages(facade: SynchronizationFacade):
    me = facade.account
    for i, m in enumerate(facade.messages):
        who = "me" if m.sender == me else mask_addr(m.sender)
        flag = " …" if m.pending else (" ✓" if m.is_read else "")
        print(f"[{i:>3}] {DIM}{_fmt_ts(m.timestamp)}{RESET} {who}: {m.text}{flag}")


def report(facade: SynchronizationFacade, ok_msg: str, result) -> int:
    if result is None or result is False:
        clog(facade.error or "Operation failed", color=RED)
        return 1
    clog(ok_msg)
    return 0


# ---------- Commands ----------

async def _watch(facade: SynchronizationFacade, chat_id):
    if chat_id:
        await facade.open_chat(chat_id)
    seen = -1
    while True:
        rev = facade.state.revision if facade.state else 0
        if rev != seen:
            seen = rev
            print(f"{DIM}--- {datetime.now():%H:%M:%S} ---{RESET}")
            if chat_id:
                print_messages(facade)
            else:
                print_chats(facade)
            if facade.error:
                clog(facade.error, color=RED)
        await asyncio.sleep(0.5)


async def run(args) -> int:
    signer = _open_signer(args.key)
    client = NodeClient(nodes=[args.node] if args.node else None)
    facade = SynchronizationFacade(RpcLedgerGateway(client, signer), RpcIdentityService(client))

    if not await facade.connect(signer.address):
        clog(facade.error or CFG.ACCOUNT_NOT_CONNECTED, color=RED)
        return 1
    try:
        if args.cmd == "list":
            await facade.settle()
            print_chats(facade)
            return 0 if facade.error is None else 1
        if args.cmd == "open":
            rec = await facade.open_chat(args.chat_id)
            if rec is None:
                clog(facade.error or "Chat not found", color=RED)
                return 1
            print_messages(facade)
            return 0
        if args.cmd == "send":
            await facade.open_chat(args.chat_id)
            handle = await facade.send_message(args.chat_id, " ".join(args.text))
            return report(facade, f"Sent ({handle.digest})" if handle else "", handle)
        if args.cmd == "read":
            await facade.open_chat(args.chat_id)
            handle = await facade.mark_read(args.chat_id, args.index)
            return report(facade, "Marked as read", handle)
        if args.cmd == "start":
            chat_id = await facade.start_chat(args.address)
            return report(facade, f"Chat created: {chat_id}", chat_id)
        if args.cmd == "watch":
            await _watch(facade, args.chat_id)
        return 0
    finally:
        await facade.disconnect()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="LedgerChat console client")
    parser.add_argument("--node", type=_parse_node, help="Node to talk to (HOST:PORT)")
    parser.add_argument("--key", default=CFG.WALLET_KEY_PATH, help="Encrypted signing key file")
    sub = parser.add_subparsers(dest="cmd", required=True)
    sub.add_parser("list", help="List your chats")
    p = sub.add_parser("open", help="Show a chat's messages")
    p.add_argument("chat_id")
    p = sub.add_parser("send", help="Send a message")
    p.add_argument("chat_id")
    p.add_argument("text", nargs="+")
    p = sub.add_parser("read", help="Mark a message as read")
    p.add_argument("chat_id")
    p.add_argument("index", type=int)
    p = sub.add_parser("start", help="Start a chat with an address")
    p.add_argument("address")
    p = sub.add_parser("watch", help="Follow the chat list, or one chat")
    p.add_argument("chat_id", nargs="?")
    return parser.parse_args(argv)


def main():
    args = parse_args()
    try:
        code = asyncio.run(run(args))
    except KeyboardInterrupt:
        clog("Interrupted by user.", color=YELLOW)
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    setup_logging(force=True)
    main()
