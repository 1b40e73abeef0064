"""DailyDrop - daily journaling prompts with AI coaching and periodic analyses"""

from __future__ import annotations

__version__ = "0.1.0"
