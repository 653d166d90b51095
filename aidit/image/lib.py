"""Image preprocessing with Pillow.

Normalizes images before they enter the cache or are sent to a model:
EXIF orientation is applied, images are fitted into a bounding box and
re-encoded. Every operation writes a new file into the work directory and
leaves its input untouched.
"""

import logging
from collections.abc import Callable
from pathlib import Path
from uuid import uuid4

from PIL import Image, ImageOps

from .models import (
    CropRegion,
    FlipDirection,
    ImageFormat,
    ImageInfo,
    PreprocessOptions,
)

logger = logging.getLogger(__name__)

EXIF_ORIENTATION = 0x0112
# Orientations 5-8 swap width and height once applied
_TRANSPOSED_ORIENTATIONS = {5, 6, 7, 8}

# Clockwise degrees to Pillow transposition
_ROTATIONS = {
    90: Image.Transpose.ROTATE_270,
    180: Image.Transpose.ROTATE_180,
    270: Image.Transpose.ROTATE_90,
}

_FLIPS = {
    FlipDirection.HORIZONTAL: Image.Transpose.FLIP_LEFT_RIGHT,
    FlipDirection.VERTICAL: Image.Transpose.FLIP_TOP_BOTTOM,
}

THUMBNAIL_OPTIONS = {"quality": 0.7, "format": ImageFormat.JPEG}
MODEL_INPUT_OPTIONS = PreprocessOptions(
    max_width=1024, max_height=1024, quality=0.9, format=ImageFormat.JPEG
)
EDIT_OPTIONS = PreprocessOptions(quality=0.9, format=ImageFormat.JPEG)


class PreprocessError(Exception):
    """Error while reading, transforming or writing an image."""

    def __init__(self, message: str, source: Path | str | None = None):
        super().__init__(message)
        self.source = Path(source) if source is not None else None


def _fit(image: Image.Image, max_width: int, max_height: int) -> Image.Image:
    """Shrink *image* to fit the box, keeping aspect ratio. Never upscales."""
    fitted = image.copy()
    fitted.thumbnail((max_width, max_height), Image.Resampling.LANCZOS)
    return fitted


def _encodable(image: Image.Image, fmt: ImageFormat) -> Image.Image:
    """Convert *image* to a mode the target format can store."""
    if fmt is ImageFormat.JPEG:
        return image if image.mode in ("RGB", "L") else image.convert("RGB")
    if image.mode in ("RGB", "RGBA", "L", "LA", "P"):
        return image
    return image.convert("RGBA")


class ImagePreprocessor:
    """Pillow-backed implementation of the image transform operations.

    Example:
        >>> preprocessor = ImagePreprocessor("~/.aidit/work")
        >>> info = preprocessor.prepare_for_model("photo.jpg")
        >>> info.width <= 1024 and info.height <= 1024
        True

    Args:
        work_dir: Directory receiving every produced file.
    """

    def __init__(self, work_dir: Path | str):
        self.work_dir = Path(work_dir).expanduser()

    def _output_path(self, source: Path, tag: str, fmt: ImageFormat) -> Path:
        name = f"{source.stem or 'img'}_{tag}_{uuid4().hex[:8]}{fmt.suffix}"
        return self.work_dir / name

    def _transform(
        self,
        source: Path | str,
        tag: str,
        operation: Callable[[Image.Image], Image.Image],
        options: PreprocessOptions = EDIT_OPTIONS,
        report_size: bool = False,
    ) -> ImageInfo:
        """Open *source*, apply *operation* and encode the result."""
        source = Path(source)
        destination = self._output_path(source, tag, options.format)

        try:
            size_bytes = source.stat().st_size if report_size else None
            with Image.open(source) as image:
                oriented = ImageOps.exif_transpose(image)
                result = _encodable(operation(oriented), options.format)
                self.work_dir.mkdir(parents=True, exist_ok=True)
                result.save(
                    destination,
                    format=options.format.pillow_format,
                    quality=options.pillow_quality,
                )
                width, height = result.size
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            destination.unlink(missing_ok=True)
            raise PreprocessError(f"Failed to {tag} image {source}: {e}", source) from e

        logger.debug(f"{tag}: {source} -> {destination} ({width}x{height})")
        return ImageInfo(
            path=destination,
            width=width,
            height=height,
            mime_type=options.format.mime_type,
            size_bytes=size_bytes,
        )

    # =========================================================================
    # Operations
    # =========================================================================

    def preprocess(
        self, source: Path | str, options: PreprocessOptions | None = None
    ) -> ImageInfo:
        """Resize and re-encode an image for storage or transmission.

        Args:
            source: Image to process.
            options: Size, quality and format. Defaults to 1920px JPEG at 0.85.

        Returns:
            Info about the produced image; size_bytes is the source size.

        Raises:
            PreprocessError: If the image cannot be read or written.
        """
        options = options or PreprocessOptions()
        return self._transform(
            source,
            "preprocess",
            lambda image: _fit(image, options.max_width, options.max_height),
            options,
            report_size=True,
        )

    def crop(self, source: Path | str, region: CropRegion) -> ImageInfo:
        """Crop an image to *region*, which must lie inside the image."""

        def operation(image: Image.Image) -> Image.Image:
            _, _, right, lower = region.box
            if right > image.width or lower > image.height:
                raise ValueError(
                    f"crop region {region.box} exceeds {image.width}x{image.height}"
                )
            return image.crop(region.box)

        return self._transform(source, "crop", operation)

    def rotate(self, source: Path | str, degrees: int) -> ImageInfo:
        """Rotate an image clockwise by 90, 180 or 270 degrees.

        Raises:
            PreprocessError: If *degrees* is not a quarter turn or the image
                cannot be processed.
        """
        if degrees not in _ROTATIONS:
            raise PreprocessError(
                f"degrees must be one of 90, 180, 270, got {degrees}", source
            )
        method = _ROTATIONS[degrees]
        return self._transform(source, "rotate", lambda image: image.transpose(method))

    def flip(self, source: Path | str, direction: FlipDirection | str) -> ImageInfo:
        """Mirror an image horizontally or vertically.

        Raises:
            PreprocessError: If *direction* is unknown or the image cannot be
                processed.
        """
        try:
            method = _FLIPS[FlipDirection(direction)]
        except ValueError as e:
            raise PreprocessError(f"Unknown flip direction {direction!r}", source) from e
        return self._transform(source, "flip", lambda image: image.transpose(method))

    def create_thumbnail(self, source: Path | str, size: int = 200) -> ImageInfo:
        """Create a small JPEG preview."""
        return self.preprocess(
            source, PreprocessOptions(max_width=size, max_height=size, **THUMBNAIL_OPTIONS)
        )

    def prepare_for_model(self, source: Path | str) -> ImageInfo:
        """Downscale to the size multimodal models handle best."""
        return self.preprocess(source, MODEL_INPUT_OPTIONS)

    def get_dimensions(self, source: Path | str) -> tuple[int, int]:
        """Displayed width and height, honouring EXIF orientation."""
        source = Path(source)
        try:
            with Image.open(source) as image:
                width, height = image.size
                orientation = image.getexif().get(EXIF_ORIENTATION)
        except (OSError, Image.DecompressionBombError) as e:
            raise PreprocessError(f"Failed to read image {source}: {e}", source) from e

        if orientation in _TRANSPOSED_ORIENTATIONS:
            return height, width
        return width, height


__all__ = ["ImagePreprocessor", "PreprocessError"]
