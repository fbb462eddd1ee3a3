"""Runtime configuration defaults for persistence and logging."""

from __future__ import annotations

import os

DB_PATH = os.environ.get("RECEIPT_TYPES_DB", "data/receipt_types.db")

# The TUI owns stdout, so log records go to a file.
LOG_PATH = os.environ.get("RECEIPT_TYPES_LOG", "/tmp/receipt-types.log")
LOG_LEVEL = os.environ.get("RECEIPT_TYPES_LOG_LEVEL", "INFO")

# Group created by older schemas that predate grouping.
LEGACY_DEFAULT_GROUP_NAME = "Other Eligible Expenses"
