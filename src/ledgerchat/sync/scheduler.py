# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
from __future__ import annotations

import asyncio
import itertools
from typing import Awaitable, Callable, Dict, Optional

from ..utils import config as CFG

# ---------------- Logger ----------------
from ..utils.chat_logging import get_ctx_logger
log = get_ctx_logger("ledgerchat.sync(scheduler)")


class CancelToken:
    """Flag threaded through every request started by one poll schedule.

    Once cancelled it never resets; a late response checked against it is dropped.
    """

    __slots__ = ("_cancelled", "label")

    def __init__(self, label: str = "") -> None:
        self._cancelled = False
        self.label = label

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __repr__(self) -> str:
        return f"CancelToken({self.label!r}, cancelled={self._cancelled})"


# token used by one-shot foreground operations that nobody cancels
NEVER_CANCELLED = CancelToken("foreground")

PollCallback = Callable[[CancelToken], Awaitable[None]]


class PollHandle:
    __slots__ = ("id", "label", "interval_s", "token", "task")

    def __init__(self, id: int, label: str, interval_s: float, token: CancelToken) -> None:
        self.id = id
        self.label = label
        self.interval_s = interval_s
        self.token = token
        self.task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return not self.token.cancelled


class PollScheduler:
    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._handles: Dict[int, PollHandle] = {}

    @staticmethod
    def _clamp_ms(interval_ms: int) -> float:
        delay = max(int(interval_ms), int(CFG.CHAT_POLL_MIN_INTERVAL_MS))
        return delay / 1000.0

    def start(self, interval_ms: int, callback: PollCallback, label: str = "") -> PollHandle:
        """Run ``callback(token)`` every ``interval_ms`` until the handle is cancelled.

        Must be called from inside a running event loop. The first tick fires
        after one full interval.
        """
        handle = PollHandle(next(self._ids), label, self._clamp_ms(interval_ms), CancelToken(label))
        handle.task = asyncio.get_running_loop().create_task(self._run(handle, callback))
        self._handles[handle.id] = handle
        log.debug("[scheduler] start #%d %s every %.2fs", handle.id, label, handle.interval_s)
        return handle

    def cancel(self, handle: Optional[PollHandle]) -> None:
        if handle is None:
            return
        handle.token.cancel()
        if handle.task is not None and not handle.task.done():
            handle.task.cancel()
        self._handles.pop(handle.id, None)
        log.debug("[scheduler] cancel #%d %s", handle.id, handle.label)

    def cancel_all(self) -> None:
        for handle in list(self._handles.values()):
            self.cancel(handle)

    def active_count(self) -> int:
        return sum(1 for h in self._handles.values() if h.active)

    async def _run(self, handle: PollHandle, callback: PollCallback) -> None:
        token = handle.token
        while not token.cancelled:
            await asyncio.sleep(handle.interval_s)
            if token.cancelled:
                break
            try:
                await callback(token)
            except Exception:
                # next tick is the retry
                log.exception("[scheduler] tick failed for #%d %s", handle.id, handle.label)
