"""Decide per image whether raw pixels are needed or original bytes can pass through."""

import logging
from dataclasses import dataclass
from typing import Optional

from ..config import CompressionOptions
from ..core import ImageAsset, encode_png, resize_image
from ..errors import UnsupportedInputFormat
from .policy import FormatPolicy

logger = logging.getLogger("ktxforge.preprocess")


@dataclass(frozen=True)
class PreparedInput:
    """Encoder input: an existing file to forward, or bytes to write first."""

    file_path: Optional[str] = None
    data: Optional[bytes] = None
    extension: str = ""
    passthrough: bool = True


def is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


def previous_power_of_two(n: int) -> int:
    """Return the largest power of two <= *n* (bit smear, then drop the low bits)."""
    n = int(n)
    n |= n >> 1
    n |= n >> 2
    n |= n >> 4
    n |= n >> 8
    n |= n >> 16
    return n - (n >> 1)


def raw_pixels_reason(image: ImageAsset, policy: FormatPolicy) -> Optional[str]:
    """Return why *image* needs raw pixel access, or None for passthrough."""
    if policy.requires_power_of_two:
        dims = image.dimensions
        if dims is None:
            return "power-of-two dimensions required but the image could not be decoded"
        width, height = dims
        if not (is_power_of_two(width) and is_power_of_two(height)):
            return f"{width}x{height} is not a power of two"
    if image.changed:
        return "image changed since it was loaded"
    if not policy.accepts(image.extension):
        return f"extension '{image.extension}' is not accepted by {policy.tool}"
    return None


def prepare_input(image: ImageAsset, options: CompressionOptions,
                  policy: FormatPolicy) -> PreparedInput:
    """Return the encoder input for *image*.

    Raw pixels are resized to the previous power of two when the policy
    demands it and re-encoded as PNG. The image's own pixels are never
    modified.
    """
    reason = raw_pixels_reason(image, policy)
    if reason is None:
        if image.file_path is not None:
            logger.debug("%s: forwarding original file %s", image.image_id, image.file_path)
            return PreparedInput(file_path=image.file_path, extension=image.extension)
        logger.debug("%s: forwarding embedded %s bytes", image.image_id, image.extension)
        return PreparedInput(data=image.source, extension=image.extension)

    logger.debug("%s: raw pixels required (%s)", image.image_id, reason)
    if image.pixels is None:
        raise UnsupportedInputFormat(
            f'The input image format "{options.format.value}" is not supported '
            f"for texture compression (image '{image.image_id}', "
            f"extension '{image.extension}')."
        )

    pixels = image.pixels
    if policy.requires_power_of_two:
        width, height = image.dimensions
        if not (is_power_of_two(width) and is_power_of_two(height)):
            new_width = previous_power_of_two(width)
            new_height = previous_power_of_two(height)
            logger.info(
                "%s: resizing %dx%d -> %dx%d for %s",
                image.image_id, width, height, new_width, new_height,
                options.format.value,
            )
            pixels = resize_image(pixels, new_width, new_height)

    # PNG is lossless and accepted by every encoder
    return PreparedInput(data=encode_png(pixels), extension=".png", passthrough=False)
