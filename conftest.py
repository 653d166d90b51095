"""Root pytest configuration and fixtures.

This module provides:
- Environment isolation (AIDIT_* variables cleared for every test)
- Temporary directory and file fixtures
- A small image factory built with Pillow
"""

import os
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from PIL import Image

# =============================================================================
# Environment
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_environment() -> Generator[None, None, None]:
    """Remove AIDIT_* variables so tests see documented defaults."""
    with pytest.MonkeyPatch.context() as mp:
        for name in list(os.environ):
            if name.startswith("AIDIT_"):
                mp.delenv(name, raising=False)
        yield


# =============================================================================
# Filesystem Fixtures
# =============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for the test.

    Yields:
        Resolved path to a directory removed after the test.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def write_file() -> Callable[[Path, int], Path]:
    """Factory writing *size* bytes to a path, creating parent directories."""

    def _write(path: Path, size: int) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(os.urandom(size))
        return path

    return _write


@pytest.fixture
def make_image() -> Callable[..., Path]:
    """Factory for small test images.

    The format follows the path suffix. With ``split=True`` the left half is
    red and the right half blue, so transforms can be checked by sampling.
    """

    def _make(
        path: Path,
        size: tuple[int, int] = (64, 48),
        mode: str = "RGB",
        split: bool = False,
    ) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        image = Image.new(mode, size, "red")
        if split:
            width, height = size
            image.paste("blue", (width // 2, 0, width, height))
        image.save(path)
        return path

    return _make
