"""Edit history management for aidit.

This module tracks the undo/redo timeline of the active editing session
and keeps a bounded list of recently finished sessions.

Example:
    >>> from aidit.history import EditTool, HistoryManager
    >>> manager = HistoryManager()
    >>> session = manager.start_session("orig.jpg")
    >>> manager.apply_edit("e1.jpg", EditTool.AUTO_ENHANCE)
    >>> manager.can_undo()
    True

Features:
    - Linear history with destructive redo truncation
    - Current image derived from the cursor, never stored separately
    - Undo/redo are no-ops at the ends of the timeline
    - Recent sessions list (default capacity 20, most recent first)
"""

from .lib import HistoryManager
from .models import EditSession, EditTool, ImageState

__all__ = [
    # Manager
    "HistoryManager",
    # Models
    "EditSession",
    "EditTool",
    "ImageState",
]
