"""Tests for edit history management.

Tests cover:
- Session and state models
- Apply, undo and redo transitions
- Redo truncation
- Recent session archiving
"""

from pathlib import Path

import pytest

from .lib import HistoryManager
from .models import EditSession, EditTool, ImageState

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def manager():
    return HistoryManager(recent_limit=20)


@pytest.fixture
def session(manager):
    return manager.start_session("orig.jpg")


def assert_cursor_in_bounds(session: EditSession) -> None:
    assert 0 <= session.cursor < len(session.history)
    assert session.current_ref == session.history[session.cursor].location


# =============================================================================
# Model Tests
# =============================================================================


class TestModels:
    """Tests for history models."""

    @pytest.mark.unit
    def test_image_state_normalises_tool(self):
        """EditTool members are stored as their string tag."""
        state = ImageState.create("a.jpg", EditTool.SMART_CROP)
        assert state.location == Path("a.jpg")
        assert state.tool == "smart-crop"

    @pytest.mark.unit
    def test_image_state_accepts_custom_tag(self):
        """Arbitrary tags are kept as given."""
        assert ImageState.create("a.jpg", "sepia").tool == "sepia"

    @pytest.mark.unit
    def test_session_factory(self):
        """A new session holds only the original."""
        session = EditSession.create("orig.jpg")
        assert session.id.startswith("session_")
        assert session.original_ref == Path("orig.jpg")
        assert session.current_ref == Path("orig.jpg")
        assert session.history[0].tool is None
        assert session.edit_count == 0

    @pytest.mark.unit
    def test_session_ids_are_unique(self):
        """Sessions created back to back get distinct ids."""
        assert EditSession.create("a").id != EditSession.create("a").id

    @pytest.mark.unit
    def test_session_rejects_bad_cursor(self):
        """Constructing a session with an out-of-range cursor fails."""
        with pytest.raises(ValueError, match="cursor"):
            EditSession(id="s", history=[ImageState.create("a")], cursor=1)
        with pytest.raises(ValueError, match="history"):
            EditSession(id="s", history=[])


# =============================================================================
# HistoryManager Tests
# =============================================================================


class TestTransitions:
    """Tests for start, apply, undo and redo."""

    @pytest.mark.unit
    def test_start_session(self, manager, session):
        """Starting anchors the history at the original."""
        assert manager.current_session is session
        assert [s.location for s in session.history] == [Path("orig.jpg")]
        assert session.cursor == 0
        assert manager.can_undo() is False
        assert manager.can_redo() is False

    @pytest.mark.unit
    def test_apply_undo_then_branch(self, manager, session):
        """Applying after undo discards the redo tail."""
        manager.apply_edit("e1.jpg", EditTool.AUTO_ENHANCE)
        assert session.cursor == 1
        assert manager.can_undo() is True

        manager.undo()
        assert session.cursor == 0
        assert session.current_ref == Path("orig.jpg")

        discarded = manager.apply_edit("e2.jpg", "crop")
        assert [s.location for s in session.history] == [
            Path("orig.jpg"),
            Path("e2.jpg"),
        ]
        assert session.cursor == 1
        assert [s.location for s in discarded] == [Path("e1.jpg")]
        assert manager.can_redo() is False

    @pytest.mark.unit
    @pytest.mark.parametrize("cursor", [0, 1, 2])
    def test_redo_truncation_length(self, manager, session, cursor):
        """After applying at cursor c the history has c + 2 states."""
        for i in range(3):
            manager.apply_edit(f"e{i}.jpg", EditTool.TAP_EDIT)
        while session.cursor > cursor:
            manager.undo()

        manager.apply_edit("branch.jpg", EditTool.MEET)
        assert len(session.history) == cursor + 2
        assert session.current_ref == Path("branch.jpg")

        for _ in range(5):
            manager.redo()
        assert session.current_ref == Path("branch.jpg")

    @pytest.mark.unit
    def test_undo_redo_are_noops_at_bounds(self, manager, session):
        """Undo at the start and redo at the end change nothing."""
        manager.undo()
        assert session.cursor == 0

        manager.apply_edit("e1.jpg", EditTool.ANIMATE)
        manager.redo()
        assert session.cursor == 1

    @pytest.mark.unit
    def test_undo_redo_walk(self, manager, session):
        """Cursor moves back and forth through the timeline."""
        manager.apply_edit("e1.jpg", EditTool.AUTO_ENHANCE)
        manager.apply_edit("e2.jpg", EditTool.OBJECT_REMOVAL)

        manager.undo()
        manager.undo()
        assert session.current_ref == Path("orig.jpg")
        assert manager.can_redo() is True

        manager.redo()
        assert session.current_ref == Path("e1.jpg")
        assert session.current_state.tool == "auto-enhance"

    @pytest.mark.unit
    def test_cursor_bounds_hold_over_random_walk(self, manager, session):
        """The cursor stays in range under any sequence of transitions."""
        actions = "aauurrruaaauuuuuarrau"
        for n, action in enumerate(actions):
            if action == "a":
                manager.apply_edit(f"e{n}.jpg", EditTool.PORTRAIT_ENHANCE)
            elif action == "u":
                manager.undo()
            else:
                manager.redo()
            assert_cursor_in_bounds(session)

    @pytest.mark.unit
    def test_operations_without_session(self, manager):
        """Transitions with no active session are no-ops."""
        assert manager.apply_edit("e.jpg", EditTool.MEET) == []
        manager.undo()
        manager.redo()
        assert manager.can_undo() is False
        assert manager.can_redo() is False
        assert manager.end_session() is None


class TestRecentSessions:
    """Tests for session archiving."""

    @pytest.mark.unit
    def test_session_without_edits_is_not_archived(self, manager, session):
        """Ending an unedited session leaves the recent list untouched."""
        assert manager.end_session() is session
        assert manager.current_session is None
        assert manager.recent_sessions == ()

    @pytest.mark.unit
    def test_edited_session_is_archived(self, manager, session):
        """An edited session is prepended to the recent list."""
        manager.apply_edit("e1.jpg", EditTool.AUTO_ENHANCE)
        manager.end_session()
        assert manager.recent_sessions == (session,)

    @pytest.mark.unit
    def test_undone_session_is_still_archived(self, manager, session):
        """Archiving depends on history length, not the cursor."""
        manager.apply_edit("e1.jpg", EditTool.AUTO_ENHANCE)
        manager.undo()
        manager.end_session()
        assert len(manager.recent_sessions) == 1

    @pytest.mark.unit
    def test_start_archives_previous_session(self, manager, session):
        """Starting a new session ends the previous one."""
        manager.apply_edit("e1.jpg", EditTool.AUTO_ENHANCE)
        second = manager.start_session("other.jpg")
        assert manager.current_session is second
        assert manager.recent_sessions[0] is session

    @pytest.mark.unit
    def test_recent_list_is_bounded(self):
        """Only the most recent sessions are kept, newest first."""
        manager = HistoryManager(recent_limit=3)
        ids = []
        for i in range(5):
            ids.append(manager.start_session(f"o{i}.jpg").id)
            manager.apply_edit(f"e{i}.jpg", EditTool.AUTO_ENHANCE)
            manager.end_session()

        assert [s.id for s in manager.recent_sessions] == ids[:1:-1]

    @pytest.mark.unit
    def test_default_capacity(self, monkeypatch):
        """The recent list holds 20 sessions by default."""
        monkeypatch.delenv("AIDIT_RECENT_SESSIONS_LIMIT", raising=False)
        manager = HistoryManager()
        for i in range(25):
            manager.start_session(f"o{i}.jpg")
            manager.apply_edit(f"e{i}.jpg", EditTool.AUTO_ENHANCE)
        manager.end_session()
        assert len(manager.recent_sessions) == 20

    @pytest.mark.unit
    def test_remove_and_get_recent(self, manager, session):
        """Recent sessions can be looked up and removed by id."""
        manager.apply_edit("e1.jpg", EditTool.AUTO_ENHANCE)
        manager.end_session()

        assert manager.get_recent_session(session.id) is session
        assert manager.remove_recent_session(session.id) is True
        assert manager.remove_recent_session(session.id) is False
        assert manager.get_recent_session(session.id) is None

    @pytest.mark.unit
    def test_negative_limit_rejected(self):
        """A negative capacity is a configuration error."""
        with pytest.raises(ValueError):
            HistoryManager(recent_limit=-1)
