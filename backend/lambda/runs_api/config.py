"""config.py — Environment configuration, key constants and logging for runs_api."""
from __future__ import annotations

import logging
import os

__all__ = [
    "ACTIVE_RUN_PARTITION",
    "DAY_SORT_PREFIX",
    "LOG_LEVEL",
    "METADATA_SORT_KEY",
    "RUN_KEY_PREFIX",
    "RUNS_INDEX_NAME",
    "TABLE_NAME",
    "logger",
]

# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------

TABLE_NAME = os.environ.get("TABLE_NAME", "mcrrc-drop-in-runs")
RUNS_INDEX_NAME = os.environ.get("RUNS_INDEX_NAME", "GSI1")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# ---------------------------------------------------------------------------
# Key layout
# ---------------------------------------------------------------------------

RUN_KEY_PREFIX = "RUN#"
METADATA_SORT_KEY = "METADATA"
ACTIVE_RUN_PARTITION = "ACTIVE_RUN"
DAY_SORT_PREFIX = "DAY#"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger()
logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
