"""History Manager for aidit.

Owns the active editing session's undo/redo timeline and a bounded list of
recently finished sessions. No method here touches the filesystem; callers
release files through the artifact store.
"""

import logging
from pathlib import Path

from aidit.config import EnvVar, get_environment

from .models import EditSession, EditTool, ImageState

logger = logging.getLogger(__name__)


class HistoryManager:
    """State machine over editing sessions.

    Example:
        >>> manager = HistoryManager()
        >>> session = manager.start_session("orig.jpg")
        >>> manager.apply_edit("e1.jpg", EditTool.AUTO_ENHANCE)
        []
        >>> manager.undo()
        >>> manager.current_session.current_ref
        PosixPath('orig.jpg')

    Args:
        recent_limit: Number of finished sessions to keep. If None, read
            from AIDIT_RECENT_SESSIONS_LIMIT.
    """

    def __init__(self, recent_limit: int | None = None):
        limit = get_environment(EnvVar.AIDIT_RECENT_SESSIONS_LIMIT, override=recent_limit)
        if limit < 0:
            raise ValueError(f"recent_limit must not be negative, got {limit}")
        self._recent_limit = limit
        self._current: EditSession | None = None
        self._recent: list[EditSession] = []

    @property
    def recent_limit(self) -> int:
        return self._recent_limit

    @property
    def current_session(self) -> EditSession | None:
        """The active session, if any."""
        return self._current

    @property
    def recent_sessions(self) -> tuple[EditSession, ...]:
        """Finished sessions, most recent first."""
        return tuple(self._recent)

    # =========================================================================
    # Session Lifecycle
    # =========================================================================

    def start_session(self, original: Path | str) -> EditSession:
        """Start a new session anchored at *original*.

        Any active session is ended first, archiving it if it has edits.
        """
        if self._current is not None:
            self.end_session()

        self._current = EditSession.create(original)
        logger.debug(f"Started {self._current.id} at {original}")
        return self._current

    def end_session(self) -> EditSession | None:
        """End the active session.

        Sessions with at least one edit are archived in the recent list.

        Returns:
            The session that was ended, or None if none was active.
        """
        session = self._current
        if session is None:
            return None

        if len(session.history) > 1:
            self.add_recent_session(session)
        self._current = None
        logger.debug(f"Ended {session.id} after {session.edit_count} edit(s)")
        return session

    # =========================================================================
    # Timeline Navigation
    # =========================================================================

    def apply_edit(
        self, location: Path | str, tool: EditTool | str | None = None
    ) -> list[ImageState]:
        """Push a new state after the cursor.

        Any redo states after the cursor are discarded.

        Args:
            location: Image produced by the edit.
            tool: Operation that produced it.

        Returns:
            The discarded redo states, oldest first.
        """
        session = self._current
        if session is None:
            logger.debug("apply_edit ignored: no active session")
            return []

        discarded = session.history[session.cursor + 1 :]
        del session.history[session.cursor + 1 :]
        session.history.append(ImageState.create(location, tool))
        session.cursor = len(session.history) - 1
        session.touch()

        if discarded:
            logger.debug(f"{session.id}: discarded {len(discarded)} redo state(s)")
        return discarded

    def undo(self) -> None:
        """Move the cursor back one state; no-op at the original."""
        session = self._current
        if session is None or not session.can_undo:
            return
        session.cursor -= 1
        session.touch()

    def redo(self) -> None:
        """Move the cursor forward one state; no-op at the newest."""
        session = self._current
        if session is None or not session.can_redo:
            return
        session.cursor += 1
        session.touch()

    def can_undo(self) -> bool:
        return self._current is not None and self._current.can_undo

    def can_redo(self) -> bool:
        return self._current is not None and self._current.can_redo

    # =========================================================================
    # Recent Sessions
    # =========================================================================

    def add_recent_session(self, session: EditSession) -> None:
        """Prepend *session* to the recent list, dropping the oldest."""
        self._recent = [s for s in self._recent if s.id != session.id]
        self._recent.insert(0, session)
        del self._recent[self._recent_limit :]

    def remove_recent_session(self, session_id: str) -> bool:
        """Remove a session from the recent list.

        Returns:
            True if removed, False if not found.
        """
        before = len(self._recent)
        self._recent = [s for s in self._recent if s.id != session_id]
        return len(self._recent) != before

    def get_recent_session(self, session_id: str) -> EditSession | None:
        for session in self._recent:
            if session.id == session_id:
                return session
        return None


__all__ = ["HistoryManager"]
