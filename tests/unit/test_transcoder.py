"""Tests for pixelrelay.imaging.transcoder — detect, transform, re-encode.

Tests cover:
- Format conversion between every supported pair keeps dimensions.
- Exact (non-proportional) resize and cropping, applied in order.
- Alpha channels are dropped silently for JPEG output.
- Detection fallback to the extension hint and the failure taxonomy.
"""

from __future__ import annotations

import io
import itertools

import pytest
from PIL import Image

from pixelrelay.core.errors import (
    DecodeError,
    EncodeError,
    OperationError,
    TranscodeError,
    UnsupportedFormatError,
)
from pixelrelay.core.models import ImageEncoding, PixelSize, Position
from pixelrelay.imaging import codec
from pixelrelay.imaging.transcoder import Crop, Resize, Transcoder

requires_avif = pytest.mark.skipif(
    not codec.supports(ImageEncoding.AVIF), reason="Pillow built without AVIF support"
)

AVAILABLE = [e for e in ImageEncoding if codec.supports(e)]


def _open(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


class TestFormatConversion:
    """Transcoding without operations keeps dimensions and changes format."""

    @pytest.mark.parametrize(
        "source, target",
        list(itertools.product(AVAILABLE, AVAILABLE)),
        ids=lambda e: e.value,
    )
    def test_dimensions_unchanged(self, make_image, transcoder: Transcoder, source, target):
        raw = make_image(source.pillow_format, size=(40, 30))

        output = transcoder.transcode(raw, source.extension, target)

        image = _open(output)
        assert image.format == target.pillow_format
        assert image.size == (40, 30)

    def test_empty_operation_list_matches_none(self, make_image, transcoder: Transcoder):
        raw = make_image("PNG")
        assert transcoder.transcode(raw, "png", ImageEncoding.JPEG, []) == transcoder.transcode(
            raw, "png", ImageEncoding.JPEG
        )

    def test_output_is_deterministic(self, make_image, transcoder: Transcoder):
        raw = make_image("JPEG", size=(50, 20))
        ops = [Resize(PixelSize(25, 25))]
        first = transcoder.transcode(raw, "jpg", ImageEncoding.PNG, ops)
        second = transcoder.transcode(raw, "jpg", ImageEncoding.PNG, ops)
        assert first == second

    @requires_avif
    def test_png_to_avif(self, make_image, transcoder: Transcoder):
        output = transcoder.transcode(make_image("PNG", size=(20, 20)), "png", ImageEncoding.AVIF)
        image = _open(output)
        assert image.format == "AVIF"
        assert image.size == (20, 20)


class TestOperations:
    """Resize and crop operations."""

    @pytest.mark.parametrize("size", [(10, 90), (90, 10), (40, 30), (1, 1)])
    def test_resize_is_exact(self, make_image, transcoder: Transcoder, size):
        raw = make_image("PNG", size=(40, 30))
        output = transcoder.transcode(raw, "png", ImageEncoding.PNG, [Resize(PixelSize(*size))])
        assert _open(output).size == size

    def test_crop(self, make_image, transcoder: Transcoder):
        raw = make_image("PNG", size=(40, 30))
        output = transcoder.transcode(
            raw, "png", ImageEncoding.PNG, [Crop(Position(5, 5), PixelSize(10, 20))]
        )
        assert _open(output).size == (10, 20)

    def test_operations_apply_in_order(self, make_image, transcoder: Transcoder):
        raw = make_image("PNG", size=(40, 30))
        # The crop is only in bounds because the resize runs first.
        ops = [Resize(PixelSize(200, 200)), Crop(Position(100, 100), PixelSize(100, 50))]
        output = transcoder.transcode(raw, "png", ImageEncoding.PNG, ops)
        assert _open(output).size == (100, 50)

    def test_crop_out_of_bounds_fails(self, make_image, transcoder: Transcoder):
        raw = make_image("PNG", size=(40, 30))
        with pytest.raises(OperationError):
            transcoder.transcode(
                raw, "png", ImageEncoding.PNG, [Crop(Position(30, 0), PixelSize(20, 10))]
            )

    def test_zero_resize_fails(self, make_image, transcoder: Transcoder):
        raw = make_image("PNG")
        with pytest.raises(OperationError):
            transcoder.transcode(raw, "png", ImageEncoding.PNG, [Resize(PixelSize(0, 10))])


class TestAlphaHandling:
    """JPEG output drops alpha instead of failing."""

    @pytest.mark.parametrize("mode", ["RGBA", "LA"])
    def test_alpha_to_jpeg(self, make_image, transcoder: Transcoder, mode):
        raw = make_image("PNG", size=(16, 16), mode=mode)

        output = transcoder.transcode(raw, "png", ImageEncoding.JPEG)

        image = _open(output)
        assert image.format == "JPEG"
        assert image.mode == "RGB"
        assert image.size == (16, 16)

    def test_alpha_kept_for_png(self, make_image, transcoder: Transcoder):
        raw = make_image("PNG", size=(16, 16), mode="RGBA")
        output = transcoder.transcode(raw, "png", ImageEncoding.PNG)
        assert _open(output).mode == "RGBA"

    @requires_avif
    def test_alpha_to_avif(self, make_image, transcoder: Transcoder):
        raw = make_image("PNG", size=(16, 16), mode="RGBA")
        output = transcoder.transcode(raw, "png", ImageEncoding.AVIF)
        assert _open(output).size == (16, 16)


class TestFormatDetection:
    """Content sniffing, extension fallback and failure types."""

    def test_content_wins_over_hint(self, make_image, transcoder: Transcoder):
        raw = make_image("JPEG")
        assert transcoder.resolve_source_format(raw, "png") == "JPEG"

    def test_non_enum_sources_are_accepted(self, make_image, transcoder: Transcoder):
        raw = make_image("GIF", size=(12, 8))
        output = transcoder.transcode(raw, "gif", ImageEncoding.PNG)
        assert _open(output).size == (12, 8)

    def test_unrecognised_content_and_hint(self, transcoder: Transcoder):
        with pytest.raises(UnsupportedFormatError):
            transcoder.transcode(b"not an image at all", "txt", ImageEncoding.PNG)

    def test_unrecognised_content_without_hint(self, transcoder: Transcoder):
        with pytest.raises(UnsupportedFormatError):
            transcoder.transcode(b"not an image at all", None, ImageEncoding.PNG)

    def test_hint_fallback_then_decode_failure(self, transcoder: Transcoder):
        with pytest.raises(DecodeError):
            transcoder.transcode(b"not an image at all", "png", ImageEncoding.JPEG)

    def test_hint_fallback_resolves_alias(self, transcoder: Transcoder):
        assert transcoder.resolve_source_format(b"garbage", "JPG") == "JPEG"

    def test_failures_share_base_class(self, transcoder: Transcoder):
        with pytest.raises(TranscodeError):
            transcoder.transcode(b"", "bmp", ImageEncoding.PNG)


class TestTypedFailures:
    """Pillow failures surface as TranscodeError subclasses."""

    def test_oversized_source(self, make_image, transcoder: Transcoder, monkeypatch):
        raw = make_image("PNG", size=(40, 30))
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
        with pytest.raises(DecodeError):
            transcoder.transcode(raw, "png", ImageEncoding.JPEG)

    def test_mode_conversion_failure(self, make_image, transcoder: Transcoder, monkeypatch):
        raw = make_image("PNG", mode="RGBA")

        def refuse(self, *args, **kwargs):
            raise ValueError("conversion not supported")

        monkeypatch.setattr(Image.Image, "convert", refuse)
        with pytest.raises(EncodeError):
            transcoder.transcode(raw, "png", ImageEncoding.JPEG)
