"""Data models for edit history.

This module defines image states, editing sessions and the tools that
produce new states.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from uuid import uuid4


class EditTool(str, Enum):
    """AI-assisted operations that produce a new image state."""

    AUTO_ENHANCE = "auto-enhance"
    BACKGROUND_REMOVAL = "background-removal"
    OBJECT_REMOVAL = "object-removal"
    TAP_EDIT = "tap-edit"
    PORTRAIT_ENHANCE = "portrait-enhance"
    MEET = "meet"
    ANIMATE = "animate"
    SMART_CROP = "smart-crop"


@dataclass(frozen=True)
class ImageState:
    """One point in an editing session's timeline.

    Attributes:
        location: Path of the image for this state.
        timestamp: When the state was created.
        tool: Tag of the operation that produced it; None for the original.
    """

    location: Path
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    tool: str | None = None

    @classmethod
    def create(cls, location: Path | str, tool: EditTool | str | None = None):
        """Factory method normalising the location and tool tag."""
        tag = tool.value if isinstance(tool, EditTool) else tool
        return cls(location=Path(location), tool=tag)


@dataclass
class EditSession:
    """A single editing session with a linear undo/redo history.

    The current image is always derived from ``history[cursor]``.

    Attributes:
        id: Unique session identifier.
        history: Ordered states; index 0 is the original image.
        cursor: Index of the active state.
        created_at: Creation timestamp.
        updated_at: Last modification timestamp.
    """

    id: str
    history: list[ImageState]
    cursor: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        if not self.history:
            raise ValueError("history must contain the original state")
        if not 0 <= self.cursor < len(self.history):
            raise ValueError(
                f"cursor {self.cursor} out of range for {len(self.history)} states"
            )

    @classmethod
    def create(cls, original: Path | str) -> "EditSession":
        """Factory method to start a session at *original*."""
        return cls(
            id=f"session_{uuid4().hex}",
            history=[ImageState.create(original)],
        )

    @property
    def original_ref(self) -> Path:
        return self.history[0].location

    @property
    def current_state(self) -> ImageState:
        return self.history[self.cursor]

    @property
    def current_ref(self) -> Path:
        return self.current_state.location

    @property
    def can_undo(self) -> bool:
        return self.cursor > 0

    @property
    def can_redo(self) -> bool:
        return self.cursor < len(self.history) - 1

    @property
    def edit_count(self) -> int:
        """Number of edits applied on top of the original."""
        return len(self.history) - 1

    def touch(self) -> None:
        """Update updated_at timestamp."""
        self.updated_at = datetime.now(UTC)


__all__ = ["EditTool", "ImageState", "EditSession"]
