"""Image preprocessing for aidit.

Resizes, re-encodes and applies simple geometric transforms to images
before they are cached or sent to a multimodal model. Failures surface as
PreprocessError.

Example:
    >>> from aidit.image import ImagePreprocessor, PreprocessOptions
    >>> preprocessor = ImagePreprocessor("/tmp/aidit-work")
    >>> info = preprocessor.preprocess("photo.jpg", PreprocessOptions(max_width=800))
    >>> info.mime_type
    'image/jpeg'
"""

from .lib import ImagePreprocessor, PreprocessError
from .models import (
    CropRegion,
    FlipDirection,
    ImageFormat,
    ImageInfo,
    PreprocessOptions,
)

__all__ = [
    "ImagePreprocessor",
    "PreprocessError",
    "CropRegion",
    "FlipDirection",
    "ImageFormat",
    "ImageInfo",
    "PreprocessOptions",
]
