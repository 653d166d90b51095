"""Tests for the editor context."""

from pathlib import Path

import pytest
from PIL import Image

from aidit.cache import CacheConfig, StorageError
from aidit.history import EditTool, HistoryManager
from aidit.image import ImagePreprocessor

from .lib import EditorContext, create_editor_context


class RecordingBackend:
    """EditBackend that inverts the image and records its calls."""

    def __init__(self, out_dir: Path):
        self.out_dir = out_dir
        self.calls: list[tuple[Path, str, tuple[int, int]]] = []

    def edit(self, image: Path, instruction: str) -> Path:
        with Image.open(image) as source:
            self.calls.append((image, instruction, source.size))
            result = source.convert("RGB").point(lambda v: 255 - v)
        self.out_dir.mkdir(parents=True, exist_ok=True)
        destination = self.out_dir / f"result_{len(self.calls)}.jpg"
        result.save(destination, format="JPEG")
        return destination


@pytest.fixture
def context(temp_dir):
    ctx = create_editor_context(home=temp_dir / "home", config=CacheConfig())
    ctx.initialize()
    return ctx


@pytest.fixture
def photo(temp_dir, make_image):
    return make_image(temp_dir / "in" / "photo.jpg", (640, 480))


@pytest.fixture
def results(temp_dir, make_image):
    """Factory for distinct edit result files."""

    def _make(name: str) -> Path:
        return make_image(temp_dir / "results" / f"{name}.jpg", (64, 48))

    return _make


class TestEditorContext:
    """Tests for EditorContext wiring."""

    @pytest.mark.unit
    def test_create_uses_home(self, temp_dir):
        """Directories default to subfolders of the given home."""
        ctx = create_editor_context(home=temp_dir / "home")
        assert ctx.store.cache_dir == (temp_dir / "home" / "cache").resolve()
        assert ctx.store.edits_dir == (temp_dir / "home" / "edits").resolve()
        assert ctx.preprocessor.work_dir == temp_dir / "home" / "work"
        assert ctx.preprocess_on_open is True
        assert not ctx.store.initialized

    @pytest.mark.unit
    def test_create_reads_environment(self, temp_dir, monkeypatch):
        """Limits and defaults come from AIDIT_* variables."""
        monkeypatch.setenv("AIDIT_CACHE_MAX_SIZE_MB", "5")
        monkeypatch.setenv("AIDIT_PREPROCESS_ON_OPEN", "false")
        monkeypatch.setenv("AIDIT_RECENT_SESSIONS_LIMIT", "3")
        ctx = create_editor_context(home=temp_dir)
        assert ctx.store.config.max_size_mb == 5
        assert ctx.preprocess_on_open is False
        assert ctx.history.recent_limit == 3

    @pytest.mark.unit
    def test_initialize_idempotent(self, context):
        """Initializing twice is harmless."""
        context.initialize()
        assert context.store.initialized

    @pytest.mark.unit
    def test_open_preprocesses_into_cache(self, context, photo):
        """The normalized original is cached and scratch files are removed."""
        session = context.open_image(photo)
        assert session.original_ref != photo
        assert context.store.find_key(session.original_ref) is not None
        assert list(context.preprocessor.work_dir.glob("*")) == []

    @pytest.mark.unit
    def test_open_without_preprocess(self, context, photo):
        """Without preprocessing the source path is the original."""
        session = context.open_image(photo, preprocess=False)
        assert session.original_ref == photo
        assert context.store.get_stats().entry_count == 0

    @pytest.mark.unit
    def test_open_ends_previous_session(self, context, photo, results):
        """Opening a new image archives an edited session."""
        first = context.open_image(photo, preprocess=False)
        context.commit_edit(results("a"), EditTool.AUTO_ENHANCE)
        second = context.open_image(photo, preprocess=False)
        assert second.id != first.id
        assert context.history.recent_sessions[0].id == first.id

    @pytest.mark.unit
    def test_commit_caches_and_pushes(self, context, photo, results):
        """Committed results are copied into the cache."""
        context.open_image(photo, preprocess=False)
        session = context.commit_edit(results("a"), EditTool.AUTO_ENHANCE)
        assert session.edit_count == 1
        assert session.current_state.tool == "auto-enhance"
        key = context.store.find_key(session.current_ref)
        assert key is not None and "auto-enhance" in key

    @pytest.mark.unit
    def test_commit_without_persist(self, context, photo, results):
        """persist=False references the result in place."""
        context.open_image(photo, preprocess=False)
        result = results("a")
        session = context.commit_edit(result, "custom", persist=False)
        assert session.current_ref == result
        assert context.store.get_stats().entry_count == 0

    @pytest.mark.unit
    def test_commit_without_session(self, context, results):
        """Nothing is cached when no session is active."""
        assert context.commit_edit(results("a")) is None
        assert context.store.get_stats().entry_count == 0

    @pytest.mark.unit
    def test_commit_releases_discarded_states(self, context, photo, results):
        """Redo states dropped by a new edit are deleted from the store."""
        context.open_image(photo, preprocess=False)
        context.commit_edit(results("a"), EditTool.AUTO_ENHANCE)
        context.commit_edit(results("b"), EditTool.TAP_EDIT)
        dropped = context.session.current_ref
        context.undo()

        context.commit_edit(results("c"), EditTool.SMART_CROP)

        assert not dropped.exists()
        assert context.store.find_key(dropped) is None
        assert context.store.get_stats().entry_count == 2
        assert context.session.can_redo is False

    @pytest.mark.unit
    def test_unmanaged_discards_are_kept(self, context, photo, results):
        """Files the store does not manage are never deleted."""
        context.open_image(photo, preprocess=False)
        outside = results("outside")
        context.commit_edit(outside, persist=False)
        context.undo()
        context.commit_edit(results("b"))
        assert outside.exists()

    @pytest.mark.unit
    def test_commit_failure_leaves_history(self, context, photo, temp_dir):
        """A result that cannot be cached is not pushed."""
        context.open_image(photo, preprocess=False)
        with pytest.raises(StorageError):
            context.commit_edit(temp_dir / "missing.jpg")
        assert context.session.edit_count == 0

    @pytest.mark.unit
    def test_undo_redo(self, context, photo, results):
        """Undo and redo move through the session."""
        session = context.open_image(photo, preprocess=False)
        context.commit_edit(results("a"))
        edited = session.current_ref
        context.undo()
        assert session.current_ref == photo
        context.undo()
        assert session.current_ref == photo
        context.redo()
        assert session.current_ref == edited

    @pytest.mark.unit
    def test_run_edit(self, context, photo, temp_dir):
        """The backend receives a model-sized image and its result is committed."""
        backend = RecordingBackend(temp_dir / "backend")
        context.open_image(photo, preprocess=False)

        session = context.run_edit(backend, EditTool.OBJECT_REMOVAL, "remove the bin")

        (image, instruction, size), = backend.calls
        assert instruction == "remove the bin"
        assert max(size) <= 1024
        assert not image.exists()
        assert session.edit_count == 1
        assert context.store.find_key(session.current_ref) is not None

    @pytest.mark.unit
    def test_run_edit_backend_failure(self, context, photo):
        """Backend errors propagate and leave history unchanged."""

        class FailingBackend:
            def edit(self, image, instruction):
                raise RuntimeError("model unavailable")

        context.open_image(photo, preprocess=False)
        with pytest.raises(RuntimeError, match="model unavailable"):
            context.run_edit(FailingBackend(), EditTool.TAP_EDIT, "anything")
        assert context.session.edit_count == 0
        assert list(context.preprocessor.work_dir.glob("*")) == []

    @pytest.mark.unit
    def test_run_edit_without_session(self, context, temp_dir):
        backend = RecordingBackend(temp_dir / "backend")
        assert context.run_edit(backend, EditTool.TAP_EDIT, "x") is None
        assert backend.calls == []

    @pytest.mark.unit
    def test_save_current(self, context, photo, results):
        """The current image is copied into saved edits."""
        context.open_image(photo, preprocess=False)
        context.commit_edit(results("a"))
        saved = context.save_current("holiday")
        assert saved.name == "holiday.jpg"
        assert context.store.list_saved_edits() == [saved]

    @pytest.mark.unit
    def test_save_without_session(self, context):
        assert context.save_current() is None

    @pytest.mark.unit
    def test_close_session(self, context, photo):
        """Closing returns the session and clears the active one."""
        session = context.open_image(photo, preprocess=False)
        assert context.close_session() is session
        assert context.session is None
        assert context.close_session() is None

    @pytest.mark.unit
    def test_explicit_wiring(self, temp_dir, photo):
        """Contexts can be assembled from explicit components."""
        from aidit.cache import ArtifactStore

        ctx = EditorContext(
            store=ArtifactStore(temp_dir / "c", temp_dir / "e"),
            history=HistoryManager(recent_limit=1),
            preprocessor=ImagePreprocessor(temp_dir / "w"),
            preprocess_on_open=False,
        )
        assert ctx.open_image(photo).original_ref == photo
        assert ctx.store.initialized
