# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md


class SyncError(Exception):
    """Base for every recoverable synchronization failure."""


class DiscoveryError(SyncError):
    pass


class FetchError(SyncError):
    def __init__(self, message: str, chat_id: str | None = None):
        super().__init__(message)
        self.chat_id = chat_id


class DecodeError(FetchError):
    pass


class SubmissionError(SyncError):
    pass


class FinalityError(SyncError):
    def __init__(self, message: str, digest: str | None = None):
        super().__init__(message)
        self.digest = digest


class ResolutionError(SyncError):
    pass
