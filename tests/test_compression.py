"""Unit tests for poster compression."""
import io
import os

import pytest
from PIL import Image

from posters.compression import (
    DEFAULT_QUALITY_SCHEDULE,
    JpegEncoder,
    compress_to_ceiling,
    quality_schedule,
)
from processor.errors import CompressionCeilingError, ImageDecodeError


def png_bytes(width, height, noise=False):
    if noise:
        image = Image.frombytes('RGB', (width, height), os.urandom(width * height * 3))
    else:
        image = Image.new('RGB', (width, height), (200, 40, 90))
    buffer = io.BytesIO()
    image.save(buffer, format='PNG')
    return buffer.getvalue()


class StubEncoder:
    """Deterministic sizes per quality; records the qualities tried."""

    def __init__(self, sizes):
        self.sizes = sizes
        self.calls = []

    def __call__(self, quality):
        self.calls.append(quality)
        return b'x' * self.sizes[quality]


class TestCompressToCeiling:
    """Test cases for the bounded-quality loop."""

    def test_default_schedule(self):
        assert DEFAULT_QUALITY_SCHEDULE == (80, 70, 60, 50, 40, 30)
        assert quality_schedule(90, 20, 40) == (90, 70, 50)

    def test_returns_first_size_below_ceiling(self):
        encoder = StubEncoder({80: 1500, 70: 1200, 60: 900, 50: 600, 40: 300, 30: 100})

        data = compress_to_ceiling(encoder, ceiling=1000)

        assert len(data) == 900
        assert encoder.calls == [80, 70, 60]

    def test_size_equal_to_ceiling_is_rejected(self):
        encoder = StubEncoder({80: 1000, 70: 999})

        data = compress_to_ceiling(encoder, schedule=(80, 70), ceiling=1000)

        assert len(data) == 999

    def test_raises_when_floor_is_still_too_large(self):
        encoder = StubEncoder({q: 2000 for q in DEFAULT_QUALITY_SCHEDULE})

        with pytest.raises(CompressionCeilingError):
            compress_to_ceiling(encoder, ceiling=1000)

        assert encoder.calls == list(DEFAULT_QUALITY_SCHEDULE)

    def test_first_quality_accepted_without_further_encoding(self):
        encoder = StubEncoder({80: 10})

        assert compress_to_ceiling(encoder, ceiling=1000) == b'x' * 10
        assert encoder.calls == [80]

    def test_never_returns_bytes_at_or_above_ceiling(self):
        for sizes in ({80: 5, 70: 1}, {80: 50, 70: 40, 60: 11}, {80: 12, 70: 10}):
            encoder = StubEncoder(sizes)
            try:
                data = compress_to_ceiling(encoder, schedule=tuple(sizes), ceiling=11)
            except CompressionCeilingError:
                continue
            assert len(data) < 11


class TestJpegEncoder:
    """Test cases for the Pillow encoder."""

    def test_downsizes_wide_images_preserving_aspect_ratio(self):
        encoder = JpegEncoder(png_bytes(2048, 1024), max_width=1024)

        assert encoder.image.size == (1024, 512)
        with Image.open(io.BytesIO(encoder(80))) as image:
            assert image.format == 'JPEG'
            assert image.size == (1024, 512)

    def test_never_upscales(self):
        encoder = JpegEncoder(png_bytes(300, 200), max_width=1024)

        assert encoder.image.size == (300, 200)

    def test_converts_transparent_images(self):
        image = Image.new('RGBA', (64, 64), (0, 0, 0, 0))
        buffer = io.BytesIO()
        image.save(buffer, format='PNG')

        data = JpegEncoder(buffer.getvalue())(70)

        assert data[:2] == b'\xff\xd8'

    def test_lower_quality_is_smaller_for_detailed_images(self):
        encoder = JpegEncoder(png_bytes(256, 256, noise=True))

        assert len(encoder(30)) < len(encoder(80))

    def test_rejects_non_image_bytes(self):
        with pytest.raises(ImageDecodeError):
            JpegEncoder(b'<html>not an image</html>')

    def test_real_encoder_respects_ceiling(self):
        encoder = JpegEncoder(png_bytes(512, 512, noise=True))

        with pytest.raises(CompressionCeilingError):
            compress_to_ceiling(encoder, ceiling=1000)

        data = compress_to_ceiling(encoder, ceiling=1024 * 1024)
        assert len(data) < 1024 * 1024
