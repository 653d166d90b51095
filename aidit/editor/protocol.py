"""Backend protocol for AI edits.

Defines the interface an image-editing model client must implement to be
driven by EditorContext.run_edit.
"""

from pathlib import Path
from typing import Protocol


class EditBackend(Protocol):
    """Protocol for the remote model that performs an edit.

    Implementations receive an image already prepared for the model and
    return the path of the file they produced. The editor copies that file
    into the cache; the backend keeps ownership of its output.
    """

    def edit(self, image: Path, instruction: str) -> Path:
        """Apply *instruction* to *image*.

        Args:
            image: Prepared input image.
            instruction: Natural language edit instruction.

        Returns:
            Path of the edited image.
        """
        ...


__all__ = ["EditBackend"]
