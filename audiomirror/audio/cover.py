"""
Cover art downscaling

Players on small devices rarely need a 3000px cover; the mirror can carry a
resized JPEG instead of the original image.
"""

from pathlib import Path
from typing import Union

from PIL import Image, UnidentifiedImageError

from ..exceptions import CoverError
from ..utils.logger import get_logger

logger = get_logger(__name__)


def downscale_cover(
    src: Union[str, Path],
    dst: Union[str, Path],
    max_size: int = 500,
    quality: int = 90
) -> None:
    """
    Write a downscaled JPEG copy of a cover image

    The aspect ratio is kept; images already within max_size are re-encoded
    but not enlarged.

    Args:
        src: Source image path
        dst: Destination path (always written as JPEG)
        max_size: Maximum width and height in pixels
        quality: JPEG quality

    Raises:
        CoverError: If the image cannot be read or written
    """
    try:
        with Image.open(src) as img:
            # Convert transparency and palette modes for JPEG
            if img.mode != 'RGB':
                img = img.convert('RGB')
            original = img.size
            if img.width > max_size or img.height > max_size:
                img.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
            img.save(dst, format='JPEG', quality=quality, optimize=True)
            logger.debug(f"Cover {src}: {original[0]}x{original[1]} -> {img.width}x{img.height}")
    except (OSError, UnidentifiedImageError, ValueError) as e:
        raise CoverError(
            f"cannot downscale cover {src}: {e}",
            details={'path': str(src), 'original_error': e}
        )
