"""End-to-end editing flow: open, edit, undo, branch, save, restart."""

from pathlib import Path

import pytest
from PIL import Image

from aidit.cache import CacheConfig
from aidit.editor import create_editor_context
from aidit.history import EditTool


class InvertBackend:
    """Stand-in for the remote model: writes the inverted image."""

    def __init__(self, out_dir: Path):
        self.out_dir = out_dir
        self.count = 0

    def edit(self, image: Path, instruction: str) -> Path:
        self.count += 1
        self.out_dir.mkdir(parents=True, exist_ok=True)
        destination = self.out_dir / f"model_{self.count}.jpg"
        with Image.open(image) as source:
            source.convert("RGB").point(lambda v: 255 - v).save(destination)
        return destination


@pytest.mark.integration
def test_editing_flow_survives_restart(temp_dir, make_image):
    """Cached states and saved edits persist across contexts."""
    home = temp_dir / "home"
    photo = make_image(temp_dir / "in" / "beach.jpg", (2400, 1600), split=True)
    backend = InvertBackend(temp_dir / "model")

    context = create_editor_context(home=home, config=CacheConfig())
    context.initialize()

    session = context.open_image(photo)
    with Image.open(session.original_ref) as original:
        assert original.size == (1920, 1280)

    context.run_edit(backend, EditTool.AUTO_ENHANCE, "more contrast")
    context.run_edit(backend, EditTool.TAP_EDIT, "remove the umbrella")
    branch_point = session.history[1].location
    dropped = session.current_ref

    context.undo()
    assert session.current_ref == branch_point
    context.run_edit(backend, EditTool.SMART_CROP, "square crop")

    assert session.edit_count == 2
    assert not dropped.exists()
    assert context.store.get_stats().entry_count == 3

    saved = context.save_current("beach-final")
    context.close_session()
    assert context.history.recent_sessions[0] is session

    restarted = create_editor_context(home=home, config=CacheConfig())
    restarted.initialize()
    assert restarted.store.get_stats().entry_count == 3
    assert restarted.store.list_saved_edits() == [saved]
    for state in session.history:
        key = restarted.store.find_key(state.location)
        assert restarted.store.get_cached(key) == state.location

    restarted.store.clear_cache()
    assert restarted.store.get_stats().entry_count == 0
    assert saved.exists()


@pytest.mark.integration
def test_small_cache_evicts_old_sessions(temp_dir, write_file):
    """A tight cap evicts earlier results while the newest stays."""
    config = CacheConfig(max_size_mb=64 / 1024)
    context = create_editor_context(home=temp_dir / "home", config=config)
    context.initialize()

    original = write_file(temp_dir / "in" / "photo.jpg", 1024)
    context.open_image(original, preprocess=False)
    for i in range(10):
        result = write_file(temp_dir / "results" / f"r{i}.jpg", 16 * 1024)
        context.commit_edit(result, EditTool.AUTO_ENHANCE)

    stats = context.store.get_stats()
    assert stats.total_size_bytes <= config.max_size_bytes
    assert context.store.find_key(context.session.current_ref) is not None
