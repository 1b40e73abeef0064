"""
Application-wide settings and environment configuration
"""

from __future__ import annotations

import os
from pathlib import Path

# Project paths
DAILYDROP_ROOT = Path(__file__).parent.parent

# Environment
ENV = os.getenv("DAILYDROP_ENV", "development")

# API Configuration
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))

# Gemini
# Credentials (GOOGLE_API_KEY / GOOGLE_CLOUD_PROJECT) are read at call time by
# dailydrop.llm.gemini, not snapshotted here.
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash-001")
GEMINI_LOCATION = os.getenv("GEMINI_LOCATION", "us-central1")
GEMINI_MAX_TOKENS = int(os.getenv("GEMINI_MAX_TOKENS", "3000"))
# Low temperature keeps the section format stable across runs
GEMINI_TEMPERATURE = float(os.getenv("GEMINI_TEMPERATURE", "0.3"))


def is_development() -> bool:
    """Check if running in development"""
    return ENV == "development"
