# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md

import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC_ROOT = os.path.join(PROJECT_ROOT, "src")
TESTS_ROOT = os.path.dirname(os.path.abspath(__file__))
for path in (SRC_ROOT, TESTS_ROOT):
    if path not in sys.path:
        sys.path.insert(0, path)
