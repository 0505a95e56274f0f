# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md

'''
=============================================================================
 ---------------- CLIENT-SIDE SETTINGS - SAFE TO TUNE PER USER ----------------
=============================================================================

Nothing below is consensus-critical: the ledger is the source of truth and
every value here only shapes how often and how politely the client asks it.

  1) POLLING CADENCE
   - CHAT_LIST_POLL_INTERVAL_MS, CHAT_POLL_INTERVAL_MS, CHAT_POLL_MIN_INTERVAL_MS

  2) DISCOVERY & FINALITY
   - CHAT_DISCOVERY_LIMIT, FINALITY_TIMEOUT_S, FINALITY_POLL_INTERVAL_S

  3) UI TEXTS
   - NO_MESSAGES_PREVIEW, UNDECODABLE_MESSAGE_TEXT, ACCOUNT_NOT_CONNECTED

NETWORK ISOLATION (client cannot talk to nodes of another network):
   - NETWORK_MAGIC, ADDRESS_PREFIX

=============================================================================
'''

import os
import appdirs


# =============================================================================
# 1. MODE & APPLICATION
# =============================================================================
# ---- RUNTIME PROFILE ----
MODE   = "dev"  # default runtime profile, switch to "prod" for released clients
IS_DEV = (MODE.lower() == "dev")  # cached boolean to simplify dev/prod toggles

# ---- APP METADATA ----
APP_NAME        = "LedgerChat"  # display name used for user data directories
APP_AUTHOR      = "TsarStudio"  # vendor string passed into platform dir helpers
CLIENT_DATA_DIR = appdirs.user_data_dir(APP_NAME, APP_AUTHOR)  # OS-specific client folder resolved via appdirs


# =============================================================================
# 2. FILESYSTEM LAYOUT
# =============================================================================
# ---- WALLET FILES ----
WALLET_KEY_PATH = os.path.join(CLIENT_DATA_DIR, "chat_key.json")  # default signing key location for the console app


# =============================================================================
# 3. NETWORK IDENTITY
# =============================================================================
ADDRESS_PREFIX = "tsar"  # bech32 human readable part for participant addresses
NETWORK_MAGIC  = b"LEDGERCHAT"  # frame magic to avoid cross-network chatter
CANONICAL_SEP  = (",", ":")  # separators used when building canonical payloads


# =============================================================================
# 4. CHAT POLLING
# =============================================================================
# ---- CADENCE ----
CHAT_LIST_POLL_INTERVAL_MS = 8000  # background chat list refresh (new chats are rare)
CHAT_POLL_INTERVAL_MS      = 2000  # open chat message refresh
CHAT_POLL_MIN_INTERVAL_MS  = 500  # floor applied to any configured poll interval

# ---- DISCOVERY ----
CHAT_DISCOVERY_LIMIT = 50  # max ChatCreated events pulled per discovery query
CHAT_CREATED_EVENT   = "ChatCreated"  # event name emitted by a chat creation mutation

# ---- PAYLOAD LIMITS ----
CHAT_MAX_BODY_BYTES = 2 * 1024  # body size cap per chat message


# =============================================================================
# 5. MUTATIONS & FINALITY
# =============================================================================
FINALITY_TIMEOUT_S       = 30.0  # give up waiting for a mutation after this long
FINALITY_POLL_INTERVAL_S = 0.5  # spacing between TX_STATUS queries


# =============================================================================
# 6. RPC
# =============================================================================
# ---- ENDPOINTS ----
BOOTSTRAP_NODE  = ("127.0.0.1", 38169)  # default node used when nothing else is configured
BOOTSTRAP_NODES = (BOOTSTRAP_NODE,)  # failover list, tried in order

# ---- TIMEOUTS & FRAMING ----
RPC_TIMEOUT = 4.0  # request timeout in seconds
MAX_MSG     = 4 * 1024 * 1024  # max framed message size (bytes)

# ---- CLIENT THROTTLING ----
NODE_CACHE_TTL          = 60  # seconds a known-good node list stays valid
WALLET_RPC_MIN_INTERVAL = 0.0  # minimum spacing between RPC calls (0 disables pacing)


# =============================================================================
# 7. UI TEXTS
# =============================================================================
NO_MESSAGES_PREVIEW      = "No messages yet"  # preview shown for empty chats
UNDECODABLE_MESSAGE_TEXT = "[Unable to decode message]"  # body that is not valid UTF-8
ACCOUNT_NOT_CONNECTED    = "Account not connected"  # error when no account is bound
PLACEHOLDER_HEAD         = 6  # leading address chars kept in placeholder names
PLACEHOLDER_TAIL         = 4  # trailing address chars kept in placeholder names
HANDLE_CHARS             = 8  # address chars used as handle when no username exists


# =============================================================================
# 8. LOGGING
# =============================================================================
# ---- BASE OUTPUT ----
LOG_PATH             = os.path.join("data", "logging", "ledgerchat.log")  # canonical log file path before format-specific override
LOG_SHOW_PROCESS     = False  # include process metadata in log context when True
LOG_PROC_PLACEHOLDER = "-"  # value used when process info is hidden

# ---- MODE PROFILES ----
if IS_DEV:
    # ---- DEV PROFILE ----
    LOG_LEVEL                   = "TRACE"  # very verbose logging for development
    LOG_FORMAT                  = "plain"  # plain text logs ease local debugging
    LOG_TO_CONSOLE              = True  # mirror logs to stdout for dev loops
    LOG_RATE_LIMIT_SECONDS      = 0.0  # disable console throttling in dev
    LOG_FILE_RATE_LIMIT_SECONDS = 0.0  # disable file throttling in dev
    LOG_ROTATE_MAX_BYTES        = 5_000_000  # rollover log files after ~5MB in dev
    LOG_BACKUP_COUNT            = 3  # retain a few rotated dev log files
else:
    # ---- PROD PROFILE ----
    LOG_LEVEL                   = "INFO"  # balanced verbosity for released clients
    LOG_FORMAT                  = "json"  # JSON logs simplify ingestion
    LOG_TO_CONSOLE              = False  # keep the terminal quiet
    LOG_RATE_LIMIT_SECONDS      = 2.0  # throttle console spam (polling repeats a lot)
    LOG_FILE_RATE_LIMIT_SECONDS = 1.0  # throttle file spam
    LOG_ROTATE_MAX_BYTES        = 10_000_000  # rollover log files after ~10MB
    LOG_BACKUP_COUNT            = 7  # keep more history

# ---- LOG PATH NORMALIZATION ----
_LOG_BASE = os.path.join("data", "logging", "ledgerchat")  # base path used to pick extension
if str(LOG_FORMAT).lower().strip() == "json":
    LOG_PATH = _LOG_BASE + ".jsonl"  # JSON lines extension to aid parsing
else:
    LOG_PATH = _LOG_BASE + ".log"  # plain-text log extension fallback
