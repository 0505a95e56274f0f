# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
from __future__ import annotations

import asyncio
from typing import Callable, Dict, Iterable, Optional, Set

from ..core.errors import ResolutionError
from ..core.types import Participant
from ..network.gateway import IdentityResolutionService
from ..utils.helpers import handle_for, placeholder_name

# ---------------- Logger ----------------
from ..utils.chat_logging import get_ctx_logger
log = get_ctx_logger("ledgerchat.sync(identity)")


class IdentityCache:
    """participant -> display name, filled lazily, never evicted.

    A miss costs exactly one lookup per poll cycle; failures and unknown
    profiles degrade to a placeholder and are never reported as errors.
    """

    def __init__(self, service: Optional[IdentityResolutionService],
                 placeholder: Callable[[str], str] = placeholder_name) -> None:
        self.service = service
        self.placeholder = placeholder
        self._names: Dict[Participant, str] = {}
        self._attempted: Set[Participant] = set()
        self._inflight: Dict[Participant, asyncio.Task] = {}
        self.on_resolved: Optional[Callable[[Participant, str], None]] = None

    # ---------- reads ----------
    def lookup(self, participant: Participant) -> Optional[str]:
        return self._names.get(participant)

    def display_name(self, participant: Participant) -> str:
        return self._names.get(participant) or self.placeholder(participant)

    def handle(self, participant: Participant) -> str:
        return handle_for(participant, self._names.get(participant))

    def __contains__(self, participant: Participant) -> bool:
        return participant in self._names

    def __len__(self) -> int:
        return len(self._names)

    # ---------- resolution ----------
    def begin_cycle(self) -> None:
        """Allow one fresh attempt for every participant still unresolved."""
        self._attempted.clear()

    def resolve(self, participant: Participant) -> Optional[str]:
        """Cached name, or ``None`` while a background lookup is (or was) attempted this cycle."""
        name = self._names.get(participant)
        if name is not None:
            return name
        if not self._should_attempt(participant):
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.debug("[resolve] no running loop, %s stays unresolved", participant)
            return None
        self._attempted.add(participant)
        task = loop.create_task(self._lookup(participant))
        self._inflight[participant] = task
        task.add_done_callback(lambda _t, p=participant: self._inflight.pop(p, None))
        return None

    async def prefetch(self, participants: Iterable[Participant]) -> int:
        """Resolve every miss once; returns how many new names were stored."""
        added = 0
        for p in dict.fromkeys(participants):
            if p in self._names:
                continue
            task = self._inflight.get(p)
            if task is not None:
                await asyncio.shield(task)
            elif self._should_attempt(p):
                self._attempted.add(p)
                await self._lookup(p)
            if p in self._names:
                added += 1
        return added

    def _should_attempt(self, participant: Participant) -> bool:
        return (self.service is not None
                and participant not in self._attempted
                and participant not in self._inflight)

    async def _lookup(self, participant: Participant) -> None:
        try:
            name = await self.service.resolve(participant)
        except Exception as exc:
            err = exc if isinstance(exc, ResolutionError) else ResolutionError(str(exc))
            log.debug("[identity] lookup failed for %s: %s", participant, err, extra={"peer": participant})
            return
        if not name:
            log.trace("[identity] no profile for %s", participant, extra={"peer": participant})
            return
        self._names[participant] = str(name)
        log.trace("[identity] %s -> %s", participant, name, extra={"peer": participant})
        if self.on_resolved is not None:
            try:
                self.on_resolved(participant, self._names[participant])
            except Exception:
                log.exception("[identity] on_resolved callback error")
