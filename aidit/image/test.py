"""Tests for image preprocessing."""

import pytest
from PIL import Image

from .lib import ImagePreprocessor, PreprocessError
from .models import (
    CropRegion,
    FlipDirection,
    ImageFormat,
    PreprocessOptions,
)


@pytest.fixture
def preprocessor(temp_dir):
    return ImagePreprocessor(temp_dir / "work")


@pytest.fixture
def landscape(temp_dir, make_image):
    """A 400x200 JPEG: red left half, blue right half."""
    return make_image(temp_dir / "in" / "landscape.jpg", (400, 200), split=True)


# =============================================================================
# Model Tests
# =============================================================================


class TestOptions:
    """Tests for option dataclasses."""

    @pytest.mark.unit
    def test_defaults(self):
        """Defaults match the documented values."""
        options = PreprocessOptions()
        assert (options.max_width, options.max_height) == (1920, 1920)
        assert options.quality == 0.85
        assert options.format == ImageFormat.JPEG

    @pytest.mark.unit
    def test_quality_mapping(self):
        """Quality maps onto Pillow's scale, clamped to 1-95."""
        assert PreprocessOptions(quality=1.0).pillow_quality == 95
        assert PreprocessOptions(quality=0.0).pillow_quality == 1

    @pytest.mark.unit
    def test_format_from_string(self):
        """Formats can be given by name."""
        options = PreprocessOptions(format="png")
        assert options.format is ImageFormat.PNG
        assert options.format.suffix == ".png"

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "kwargs,match",
        [
            ({"max_width": 0}, "Dimensions"),
            ({"quality": 1.2}, "Quality"),
        ],
    )
    def test_invalid_options(self, kwargs, match):
        """Invalid options raise ValueError."""
        with pytest.raises(ValueError, match=match):
            PreprocessOptions(**kwargs)

    @pytest.mark.unit
    def test_invalid_crop_region(self):
        """Crop regions need a non-negative origin and positive size."""
        with pytest.raises(ValueError):
            CropRegion(x=-1, y=0, width=10, height=10)
        with pytest.raises(ValueError):
            CropRegion(x=0, y=0, width=0, height=10)


# =============================================================================
# Preprocessor Tests
# =============================================================================


class TestImagePreprocessor:
    """Tests for Pillow-backed transforms."""

    @pytest.mark.unit
    def test_preprocess_fits_box(self, preprocessor, landscape):
        """Images shrink to fit while keeping aspect ratio."""
        info = preprocessor.preprocess(
            landscape, PreprocessOptions(max_width=100, max_height=100)
        )
        assert (info.width, info.height) == (100, 50)
        assert info.mime_type == "image/jpeg"
        assert info.size_bytes == landscape.stat().st_size
        assert info.path.parent == preprocessor.work_dir
        assert info.path != landscape
        with Image.open(info.path) as image:
            assert image.size == (100, 50)

    @pytest.mark.unit
    def test_preprocess_never_upscales(self, preprocessor, landscape):
        """Small images keep their size."""
        info = preprocessor.preprocess(landscape)
        assert (info.width, info.height) == (400, 200)

    @pytest.mark.unit
    def test_preprocess_png_output(self, preprocessor, temp_dir, make_image):
        """RGBA sources can be written as PNG without losing alpha."""
        source = make_image(temp_dir / "in" / "alpha.png", (50, 50), mode="RGBA")
        info = preprocessor.preprocess(source, PreprocessOptions(format=ImageFormat.PNG))
        assert info.path.suffix == ".png"
        assert info.mime_type == "image/png"
        with Image.open(info.path) as image:
            assert image.mode == "RGBA"

    @pytest.mark.unit
    def test_preprocess_rgba_to_jpeg(self, preprocessor, temp_dir, make_image):
        """Alpha is dropped when encoding JPEG."""
        source = make_image(temp_dir / "in" / "alpha.png", (50, 50), mode="RGBA")
        info = preprocessor.preprocess(source)
        with Image.open(info.path) as image:
            assert image.mode == "RGB"

    @pytest.mark.unit
    def test_create_thumbnail(self, preprocessor, landscape):
        """Thumbnails fit a square box."""
        info = preprocessor.create_thumbnail(landscape, size=40)
        assert (info.width, info.height) == (40, 20)

    @pytest.mark.unit
    def test_prepare_for_model(self, preprocessor, temp_dir, make_image):
        """Model input is capped at 1024 pixels."""
        source = make_image(temp_dir / "in" / "big.jpg", (2048, 1024))
        info = preprocessor.prepare_for_model(source)
        assert (info.width, info.height) == (1024, 512)

    @pytest.mark.unit
    def test_crop(self, preprocessor, landscape):
        """Crop keeps only the requested region."""
        info = preprocessor.crop(landscape, CropRegion(x=300, y=50, width=50, height=100))
        assert (info.width, info.height) == (50, 100)
        with Image.open(info.path) as image:
            red, green, blue = image.convert("RGB").getpixel((25, 50))
            assert blue > 200 and red < 60

    @pytest.mark.unit
    def test_crop_outside_image(self, preprocessor, landscape):
        """Regions beyond the image bounds are rejected."""
        with pytest.raises(PreprocessError, match="exceeds"):
            preprocessor.crop(landscape, CropRegion(x=350, y=0, width=100, height=10))
        assert list(preprocessor.work_dir.glob("*")) == []

    @pytest.mark.unit
    def test_rotate_clockwise(self, preprocessor, landscape):
        """A 90 degree rotation swaps dimensions and moves left to top."""
        info = preprocessor.rotate(landscape, 90)
        assert (info.width, info.height) == (200, 400)
        with Image.open(info.path) as image:
            red, _, blue = image.convert("RGB").getpixel((100, 50))
            assert red > 200 and blue < 60

    @pytest.mark.unit
    def test_rotate_invalid_degrees(self, preprocessor, landscape):
        """Only quarter turns are supported."""
        with pytest.raises(PreprocessError, match="degrees") as excinfo:
            preprocessor.rotate(landscape, 45)
        assert excinfo.value.source == landscape

    @pytest.mark.unit
    def test_flip_unknown_direction(self, preprocessor, landscape):
        """Unknown directions are reported as preprocessing failures."""
        with pytest.raises(PreprocessError, match="diagonal"):
            preprocessor.flip(landscape, "diagonal")
        assert not preprocessor.work_dir.exists()

    @pytest.mark.unit
    def test_flip_horizontal(self, preprocessor, landscape):
        """A horizontal flip mirrors left and right."""
        info = preprocessor.flip(landscape, FlipDirection.HORIZONTAL)
        with Image.open(info.path) as image:
            red, _, blue = image.convert("RGB").getpixel((10, 100))
            assert blue > 200 and red < 60

    @pytest.mark.unit
    def test_flip_accepts_string(self, preprocessor, landscape):
        """Directions can be given by name."""
        info = preprocessor.flip(landscape, "vertical")
        assert (info.width, info.height) == (400, 200)

    @pytest.mark.unit
    def test_get_dimensions(self, preprocessor, landscape):
        """Dimensions are read without writing anything."""
        assert preprocessor.get_dimensions(landscape) == (400, 200)
        assert not preprocessor.work_dir.exists()

    @pytest.mark.unit
    def test_get_dimensions_honours_orientation(self, preprocessor, temp_dir):
        """EXIF orientation 6 reports swapped dimensions."""
        path = temp_dir / "rotated.jpg"
        exif = Image.Exif()
        exif[0x0112] = 6
        Image.new("RGB", (40, 20), "white").save(path, exif=exif)

        assert preprocessor.get_dimensions(path) == (20, 40)
        info = preprocessor.preprocess(path)
        assert (info.width, info.height) == (20, 40)

    @pytest.mark.unit
    def test_missing_source(self, preprocessor, temp_dir):
        """Missing files raise PreprocessError with the source path."""
        missing = temp_dir / "missing.jpg"
        with pytest.raises(PreprocessError) as excinfo:
            preprocessor.preprocess(missing)
        assert excinfo.value.source == missing
        with pytest.raises(PreprocessError):
            preprocessor.get_dimensions(missing)

    @pytest.mark.unit
    def test_not_an_image(self, preprocessor, temp_dir):
        """Unreadable image data raises PreprocessError."""
        bogus = temp_dir / "bogus.jpg"
        bogus.write_bytes(b"definitely not a jpeg")
        with pytest.raises(PreprocessError):
            preprocessor.rotate(bogus, 180)
