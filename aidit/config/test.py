"""Tests for configuration management."""

from pathlib import Path

import pytest

from .lib import (
    EnvConfig,
    EnvVar,
    get_cache_dir,
    get_edits_dir,
    get_environment,
    get_environment_info,
    get_home_dir,
    get_work_dir,
    list_environment_variables,
)

# =============================================================================
# Tests for get_environment (main interface)
# =============================================================================


class TestGetEnvironment:
    """Tests for the unified get_environment interface."""

    @pytest.mark.unit
    def test_returns_default_when_not_set(self, monkeypatch):
        """Returns default value when env var is not set."""
        monkeypatch.delenv("AIDIT_CACHE_MAX_SIZE_MB", raising=False)
        result = get_environment(EnvVar.AIDIT_CACHE_MAX_SIZE_MB)
        assert result == 100

    @pytest.mark.unit
    def test_override_takes_priority(self, monkeypatch):
        """Override parameter takes highest priority."""
        monkeypatch.setenv("AIDIT_CACHE_MAX_SIZE_MB", "999")
        result = get_environment(EnvVar.AIDIT_CACHE_MAX_SIZE_MB, override=5)
        assert result == 5

    @pytest.mark.unit
    def test_int_type_conversion(self, monkeypatch):
        """Integer type conversion from string."""
        monkeypatch.setenv("AIDIT_CACHE_MAX_AGE_DAYS", "3")
        result = get_environment(EnvVar.AIDIT_CACHE_MAX_AGE_DAYS)
        assert result == 3
        assert isinstance(result, int)

    @pytest.mark.unit
    def test_invalid_int_returns_default(self, monkeypatch):
        """Invalid integer value returns default."""
        monkeypatch.setenv("AIDIT_RECENT_SESSIONS_LIMIT", "lots")
        result = get_environment(EnvVar.AIDIT_RECENT_SESSIONS_LIMIT)
        assert result == 20

    @pytest.mark.unit
    def test_bool_type_conversion(self, monkeypatch):
        """Boolean type conversion for true and false values."""
        for value in ("true", "1", "yes", "TRUE"):
            monkeypatch.setenv("AIDIT_PREPROCESS_ON_OPEN", value)
            assert get_environment(EnvVar.AIDIT_PREPROCESS_ON_OPEN) is True
        for value in ("false", "0", "no", "No"):
            monkeypatch.setenv("AIDIT_PREPROCESS_ON_OPEN", value)
            assert get_environment(EnvVar.AIDIT_PREPROCESS_ON_OPEN) is False

    @pytest.mark.unit
    def test_unrecognized_bool_returns_default(self, monkeypatch):
        """Unrecognized boolean strings fall back to the default."""
        monkeypatch.setenv("AIDIT_PREPROCESS_ON_OPEN", "maybe")
        assert get_environment(EnvVar.AIDIT_PREPROCESS_ON_OPEN) is True

    @pytest.mark.unit
    def test_path_type_conversion(self, monkeypatch, tmp_path):
        """Path variables are returned as Path objects."""
        monkeypatch.setenv("AIDIT_CACHE_DIR", str(tmp_path))
        result = get_environment(EnvVar.AIDIT_CACHE_DIR)
        assert result == tmp_path
        assert isinstance(result, Path)


class TestGetEnvironmentInfo:
    """Tests for environment variable metadata."""

    @pytest.mark.unit
    def test_returns_env_config(self):
        """Returns EnvConfig dataclass."""
        info = get_environment_info(EnvVar.AIDIT_CACHE_MAX_AGE_DAYS)
        assert isinstance(info, EnvConfig)
        assert info.name == "AIDIT_CACHE_MAX_AGE_DAYS"
        assert info.default == 7
        assert info.var_type is int
        assert info.category == "cache"


class TestListEnvironmentVariables:
    """Tests for listing environment variables."""

    @pytest.mark.unit
    def test_returns_all_variables(self):
        """Returns all EnvVar members when no category."""
        result = list_environment_variables()
        assert len(result) == len(EnvVar)

    @pytest.mark.unit
    def test_filter_by_category(self):
        """Filters by category correctly."""
        path_vars = list_environment_variables("paths")
        assert EnvVar.AIDIT_CACHE_DIR in path_vars
        assert EnvVar.AIDIT_EDITS_DIR in path_vars
        assert EnvVar.AIDIT_CACHE_MAX_SIZE_MB not in path_vars


# =============================================================================
# Tests for directory helpers
# =============================================================================


class TestDirectories:
    """Tests for data directory resolution."""

    @pytest.mark.unit
    def test_home_defaults_to_user_home(self, monkeypatch):
        """Home falls back to ~/.aidit."""
        monkeypatch.delenv("AIDIT_HOME", raising=False)
        assert get_home_dir() == Path.home() / ".aidit"

    @pytest.mark.unit
    def test_subdirs_follow_home(self, monkeypatch, tmp_path):
        """Cache, edits and work directories live under AIDIT_HOME."""
        monkeypatch.setenv("AIDIT_HOME", str(tmp_path))
        for name in ("AIDIT_CACHE_DIR", "AIDIT_EDITS_DIR", "AIDIT_WORK_DIR"):
            monkeypatch.delenv(name, raising=False)

        assert get_cache_dir() == tmp_path / "cache"
        assert get_edits_dir() == tmp_path / "edits"
        assert get_work_dir() == tmp_path / "work"

    @pytest.mark.unit
    def test_env_var_beats_home(self, monkeypatch, tmp_path):
        """A specific directory variable wins over AIDIT_HOME."""
        monkeypatch.setenv("AIDIT_HOME", str(tmp_path / "home"))
        monkeypatch.setenv("AIDIT_CACHE_DIR", str(tmp_path / "elsewhere"))
        assert get_cache_dir() == tmp_path / "elsewhere"

    @pytest.mark.unit
    def test_override_beats_env_var(self, monkeypatch, tmp_path):
        """Override takes precedence over environment variable."""
        monkeypatch.setenv("AIDIT_EDITS_DIR", str(tmp_path / "from_env"))
        assert get_edits_dir(str(tmp_path / "custom")) == tmp_path / "custom"

    @pytest.mark.unit
    def test_home_argument(self, monkeypatch, tmp_path):
        """Explicit home argument replaces AIDIT_HOME."""
        monkeypatch.setenv("AIDIT_HOME", str(tmp_path / "ignored"))
        monkeypatch.delenv("AIDIT_WORK_DIR", raising=False)
        assert get_work_dir(home=tmp_path) == tmp_path / "work"
