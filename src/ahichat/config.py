"""Central configuration for paths, endpoints and constants."""

import os
from pathlib import Path

# Data directory, override with AHICHAT_DATA_DIR env var
DATA_DIR = Path(os.environ.get("AHICHAT_DATA_DIR", str(Path.home() / ".ahichat")))

# Database path
SQLITE_PATH = DATA_DIR / "history.db"

# Backend, override with AHICHAT_BACKEND_URL env var
BACKEND_URL = os.environ.get("AHICHAT_BACKEND_URL", "http://localhost:3004")
CHAT_PATH = "/chat"
SESSION_OPEN_PATH = "/session-open"
REQUEST_TIMEOUT_SECONDS = float(os.environ.get("AHICHAT_REQUEST_TIMEOUT", "30"))

# Storage keys
CONVERSATIONS_KEY = "ahi_conversations_v1"
SESSION_KEY = "ahi_session_v1"

# Shown when a reply cannot be delivered
FALLBACK_TEXT = "Let’s pause for a moment."

# Typing delay per chunk: (max words, (low ms, high ms)); None is the open tier
TYPING_DELAY_TIERS_MS = (
    (10, (400, 600)),
    (20, (700, 1000)),
    (None, (1200, 1600)),
)
INTER_MESSAGE_PAUSE_MS = (300, 500)

# responseMode tags that imply staged delivery when allowMultiMessage is absent
MULTI_MESSAGE_RESPONSE_MODES = {"multi", "multi_message", "staged", "conversational"}

# Ids of the merged history views
YESTERDAY_MERGED_ID = "yesterday-merged"
EARLIER_MERGED_ID = "earlier-merged"
