"""
Utility exports: structured logging, analytics, prompt loading.
"""

from briki.utils.logger import configure_logging, get_logger, set_session_id
from briki.utils.metrics import EventTracker
from briki.utils.prompts import load_prompts

__all__ = [
    "configure_logging",
    "get_logger",
    "set_session_id",
    "EventTracker",
    "load_prompts",
]
