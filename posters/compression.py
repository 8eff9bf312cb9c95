"""Bounded-quality JPEG compression for event posters."""
import io
import logging
from typing import Callable, Sequence, Tuple

from PIL import Image, UnidentifiedImageError

from processor.errors import CompressionCeilingError, ImageDecodeError

logger = logging.getLogger(__name__)

MAX_POSTER_BYTES = 1024 * 1024
MAX_POSTER_WIDTH = 1024


def quality_schedule(start: int = 80, step: int = 10, floor: int = 30) -> Tuple[int, ...]:
    """Descending JPEG qualities from ``start`` to ``floor`` inclusive."""
    if step <= 0:
        raise ValueError("step must be positive")
    return tuple(range(start, floor - 1, -step))


DEFAULT_QUALITY_SCHEDULE = quality_schedule()


def compress_to_ceiling(
    encode: Callable[[int], bytes],
    schedule: Sequence[int] = DEFAULT_QUALITY_SCHEDULE,
    ceiling: int = MAX_POSTER_BYTES
) -> bytes:
    """
    Encode at each quality in turn until the output is strictly below the ceiling.

    Args:
        encode: Returns the encoded bytes for one quality
        schedule: Qualities to try, in order
        ceiling: Exclusive upper bound on the output size in bytes

    Returns:
        The first encoding smaller than ``ceiling``

    Raises:
        CompressionCeilingError: If no quality in the schedule is small enough
    """
    smallest = None
    for quality in schedule:
        data = encode(quality)
        size = len(data)
        if size < ceiling:
            logger.debug(f"Encoded poster at quality {quality}: {size} bytes")
            return data
        smallest = size if smallest is None else min(smallest, size)

    raise CompressionCeilingError(
        f"cannot compress below ceiling of {ceiling} bytes "
        f"(smallest attempt: {smallest} bytes over {len(schedule)} qualities)"
    )


class JpegEncoder:
    """Pillow encoder: decodes once, downsizes, re-encodes per quality."""

    def __init__(self, source: bytes, max_width: int = MAX_POSTER_WIDTH):
        """
        Decode and resize the source image.

        Args:
            source: Raw image bytes in any format Pillow reads
            max_width: Maximum output width; smaller images are not upscaled

        Raises:
            ImageDecodeError: If the bytes are not a readable image
        """
        try:
            with Image.open(io.BytesIO(source)) as im:
                image = im.convert('RGB')
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
            raise ImageDecodeError(f"unreadable poster image: {e}") from e

        if image.width > max_width:
            height = max(1, round(image.height * max_width / image.width))
            image = image.resize((max_width, height), Image.Resampling.LANCZOS)

        self.image = image

    def __call__(self, quality: int) -> bytes:
        buffer = io.BytesIO()
        self.image.save(buffer, format='JPEG', quality=quality, optimize=True)
        return buffer.getvalue()
