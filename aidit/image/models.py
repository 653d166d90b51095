"""Data models for image preprocessing."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class ImageFormat(str, Enum):
    """Output encodings supported by the preprocessor."""

    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"

    @property
    def mime_type(self) -> str:
        return f"image/{self.value}"

    @property
    def suffix(self) -> str:
        return ".jpg" if self is ImageFormat.JPEG else f".{self.value}"

    @property
    def pillow_format(self) -> str:
        return self.value.upper()


class FlipDirection(str, Enum):
    """Mirror axis for `ImagePreprocessor.flip`."""

    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


@dataclass(frozen=True)
class PreprocessOptions:
    """Options for resizing and re-encoding an image.

    Attributes:
        max_width: Maximum output width in pixels.
        max_height: Maximum output height in pixels.
        quality: Compression quality from 0 (smallest) to 1 (best).
        format: Output encoding.
    """

    max_width: int = 1920
    max_height: int = 1920
    quality: float = 0.85
    format: ImageFormat = ImageFormat.JPEG

    def __post_init__(self) -> None:
        """Validate option values."""
        if self.max_width <= 0 or self.max_height <= 0:
            raise ValueError(
                f"Dimensions must be positive, got {self.max_width}x{self.max_height}"
            )
        if not 0.0 <= self.quality <= 1.0:
            raise ValueError(f"Quality must be between 0 and 1, got {self.quality}")
        object.__setattr__(self, "format", ImageFormat(self.format))

    @property
    def pillow_quality(self) -> int:
        """Quality mapped onto Pillow's 1-95 scale."""
        return max(1, min(95, round(self.quality * 95)))


@dataclass(frozen=True)
class CropRegion:
    """Rectangle in source pixel coordinates."""

    x: int
    y: int
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.x < 0 or self.y < 0:
            raise ValueError(f"Crop origin must not be negative, got ({self.x}, {self.y})")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                f"Crop size must be positive, got {self.width}x{self.height}"
            )

    @property
    def box(self) -> tuple[int, int, int, int]:
        """Pillow crop box (left, upper, right, lower)."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)


@dataclass(frozen=True)
class ImageInfo:
    """Result of a preprocessing operation.

    Attributes:
        path: Location of the produced image.
        width: Width in pixels.
        height: Height in pixels.
        size_bytes: Size of the source file, when known.
        mime_type: MIME type of the produced image.
    """

    path: Path
    width: int
    height: int
    mime_type: str
    size_bytes: int | None = None


__all__ = [
    "ImageFormat",
    "FlipDirection",
    "PreprocessOptions",
    "CropRegion",
    "ImageInfo",
]
