"""
Briki insurance assistant core: chat session, plan recommendation and
comparison selection.
"""

__version__ = "0.1.0"
