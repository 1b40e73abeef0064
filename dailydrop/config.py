"""Centralized configuration for the DailyDrop backend.

Re-exports everything from dailydrop.infrastructure.settings so callers import
from one place, then adds typed constants for the database, the analysis
pipeline, the LLM call and the API. Environment variable overrides use safe
defaults so the app starts without extra env configuration.
"""

from __future__ import annotations

import os

from dailydrop.infrastructure.settings import *  # noqa: F401, F403

# --- App ---
APP_VERSION: str = "0.1.0"

# --- Database ---
DB_POOL_SIZE: int = int(os.getenv("DAILYDROP_DB_POOL_SIZE", "5"))
DB_POOL_TIMEOUT: float = float(os.getenv("DAILYDROP_DB_POOL_TIMEOUT", "5.0"))
DB_CONNECT_TIMEOUT: float = float(os.getenv("DAILYDROP_DB_CONNECT_TIMEOUT", "30.0"))
DB_TEMP_CONN_MAX: int = int(os.getenv("DAILYDROP_DB_TEMP_CONN_MAX", "10"))
DB_RETRY_MAX: int = int(os.getenv("DAILYDROP_DB_RETRY_MAX", "5"))
DB_RETRY_BASE_DELAY: float = float(os.getenv("DAILYDROP_DB_RETRY_BASE_DELAY", "0.1"))
DB_RETRY_MAX_DELAY: float = float(os.getenv("DAILYDROP_DB_RETRY_MAX_DELAY", "2.0"))
DB_RETRY_JITTER: float = float(os.getenv("DAILYDROP_DB_RETRY_JITTER", "0.1"))

# --- Analysis Pipeline ---
# Single source of truth for "how many unanalyzed drops unlock an analysis".
# Eligibility, the engine's minimum-data check and user-facing copy all read it.
ANALYSIS_REQUIRED_DROPS: int = 7
ANALYSIS_SUMMARY_MAX_WORDS: int = 15
ANALYSIS_MIN_BULLETS: int = 3
ANALYSIS_MAX_BULLETS: int = 5
ANALYSIS_COOLDOWN_MINUTES: int = int(os.getenv("DAILYDROP_ANALYSIS_COOLDOWN_MINUTES", "30"))
ANALYSIS_DEADLINE_SECONDS: float = float(os.getenv("DAILYDROP_ANALYSIS_DEADLINE", "90"))
ANALYSIS_FALLBACK_ENABLED: bool = (
    os.getenv("DAILYDROP_ANALYSIS_FALLBACK", "false").lower() == "true"
)

# --- Corpus ---
CORPUS_MAX_CHARS: int = int(os.getenv("DAILYDROP_CORPUS_MAX_CHARS", "60000"))
CORPUS_MIN_ENTRY_CHARS: int = 240

# --- LLM ---
LLM_TIMEOUT_SECONDS: int = int(os.getenv("DAILYDROP_LLM_TIMEOUT", "30"))
LLM_MAX_RETRIES: int = int(os.getenv("DAILYDROP_LLM_MAX_RETRIES", "2"))
LLM_BACKOFF_BASE_SECONDS: float = 1.0
LLM_BACKOFF_MAX_SECONDS: float = 8.0

# --- API ---
API_LIST_LIMIT_DEFAULT: int = 20
API_LIST_LIMIT_MAX: int = 100
