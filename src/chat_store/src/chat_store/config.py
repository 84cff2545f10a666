"""Runtime configuration for the chat sync store."""

from __future__ import annotations

import logging
import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()

CHAT_SYNC_UI_URL = os.environ.get("CHAT_SYNC_UI_URL")
CHAT_SYNC_LOG_LEVEL = os.environ.get("CHAT_SYNC_LOG_LEVEL", "INFO")
UI_TIMEOUT_SECONDS = float(os.environ.get("CHAT_SYNC_UI_TIMEOUT_SECONDS", "5.0"))

FETCH_THRESHOLD = timedelta(minutes=15)
# Large communities exceed the persisted-state quota.
STORAGE_SIZE_LIMIT = 100
PROVIDER_MIGRATION_VERSION = "0.6.0"
DEFAULT_PROVIDER = "slack"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for processes hosting the store."""
    logging.basicConfig(level=(level or CHAT_SYNC_LOG_LEVEL).upper())
