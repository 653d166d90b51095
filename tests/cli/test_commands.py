"""Tests for the maintenance CLI."""

import pytest

import aidit.__main__ as cli
from aidit.cache import ArtifactStore, StorageError


@pytest.fixture(autouse=True)
def no_dotenv(monkeypatch):
    """Keep a developer's .env out of the tests."""
    monkeypatch.setattr(cli, "load_dotenv", lambda: None)


@pytest.fixture
def home(temp_dir):
    return temp_dir / "home"


@pytest.fixture
def populated(home, temp_dir, write_file):
    """A store under *home* with two cached files and one saved edit."""
    store = ArtifactStore(home / "cache", home / "edits")
    store.initialize()
    source = write_file(temp_dir / "src" / "photo.jpg", 2048)
    store.cache_image(source, "auto-enhance")
    store.cache_image(source, "tap-edit")
    store.save_edit(source, "keeper")
    return store


@pytest.mark.unit
def test_stats(home, populated, capsys):
    """stats reports the entry count."""
    assert cli.main(["--home", str(home), "stats"]) == 0
    out = capsys.readouterr().out
    assert "Entries:         2" in out
    assert str(populated.cache_dir) in out


@pytest.mark.unit
def test_cleanup_removes_orphans(home, populated, capsys):
    """cleanup deletes files the index does not reference."""
    (populated.cache_dir / "stray.jpg").write_bytes(b"x")
    assert cli.main(["--home", str(home), "cleanup"]) == 0
    out = capsys.readouterr().out
    assert "Orphans removed: 1" in out
    assert not (populated.cache_dir / "stray.jpg").exists()


@pytest.mark.unit
def test_clear_keeps_saved_edits(home, populated, capsys):
    """clear empties the cache but not the saved edits."""
    assert cli.main(["--home", str(home), "clear"]) == 0
    reopened = ArtifactStore(home / "cache", home / "edits")
    reopened.initialize()
    assert reopened.get_stats().entry_count == 0
    assert [p.name for p in reopened.list_saved_edits()] == ["keeper.jpg"]


@pytest.mark.unit
def test_edits(home, populated, capsys):
    assert cli.main(["--home", str(home), "edits"]) == 0
    assert "keeper.jpg" in capsys.readouterr().out


@pytest.mark.unit
def test_edits_empty(home, capsys):
    assert cli.main(["--home", str(home), "edits"]) == 0
    assert "No saved edits" in capsys.readouterr().out


@pytest.mark.unit
def test_env_category(capsys, monkeypatch):
    """env prints resolved values for one category."""
    monkeypatch.setenv("AIDIT_CACHE_MAX_SIZE_MB", "42")
    assert cli.main(["env", "--category", "cache"]) == 0
    out = capsys.readouterr().out
    assert "AIDIT_CACHE_MAX_SIZE_MB [cache] = 42" in out
    assert "AIDIT_HOME" not in out


@pytest.mark.unit
def test_cache_error_exit_code(home, monkeypatch):
    """Store failures exit with status 1."""

    def fail(self):
        raise StorageError("disk full")

    monkeypatch.setattr(ArtifactStore, "clear_cache", fail)
    assert cli.main(["--home", str(home), "clear"]) == 1


@pytest.mark.unit
def test_command_required():
    """A missing command is a usage error."""
    with pytest.raises(SystemExit) as excinfo:
        cli.main([])
    assert excinfo.value.code == 2
