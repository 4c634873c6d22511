"""Image asset and compressed result records."""

import logging
import os
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .io import decode_image, has_transparency, normalize_extension

logger = logging.getLogger("ktxforge.records")


@dataclass(frozen=True)
class CompressedResult:
    """Encoder output read back from the workspace."""

    buffer: bytes
    extension: str


@dataclass
class ImageAsset:
    """Single image scheduled for compression.

    Either ``file_path`` or ``source`` holds the original encoded bytes.
    ``pixels`` is the decoded (H, W, C) uint8 array when the original
    format could be decoded, otherwise None. ``changed`` marks pixel
    content modified after loading, so the original bytes are stale.
    """

    image_id: str
    extension: str
    transparent: bool = False
    changed: bool = False
    file_path: Optional[str] = None
    source: Optional[bytes] = None
    pixels: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        """Normalize the extension and require an original byte source."""
        self.extension = normalize_extension(self.extension)
        if self.file_path is None and self.source is None:
            raise ValueError(
                f"ImageAsset '{self.image_id}' needs a file_path or an embedded source"
            )

    @property
    def dimensions(self) -> Optional[Tuple[int, int]]:
        """Return ``(width, height)`` of the decoded pixels, if any."""
        if self.pixels is None:
            return None
        height, width = self.pixels.shape[:2]
        return int(width), int(height)

    def replace_source(self, buffer: bytes, extension: str) -> None:
        """Install compressed bytes as this image's new embedded source."""
        self.source = bytes(buffer)
        self.extension = normalize_extension(extension)
        self.file_path = None

    @classmethod
    def from_bytes(cls, data: bytes, extension: str,
                   image_id: Optional[str] = None) -> "ImageAsset":
        """Build an embedded asset, decoding pixels when the format allows it."""
        ext = normalize_extension(extension)
        pixels = _try_decode(ext, data, image_id or ext)
        return cls(
            image_id=image_id or f"embedded{ext}",
            extension=ext,
            transparent=pixels is not None and has_transparency(pixels),
            source=bytes(data),
            pixels=pixels,
        )

    @classmethod
    def from_file(cls, path: str, image_id: Optional[str] = None) -> "ImageAsset":
        """Build an external-file asset, decoding pixels when possible."""
        ext = normalize_extension(os.path.splitext(path)[1])
        with open(path, "rb") as f:
            data = f.read()
        pixels = _try_decode(ext, data, path)
        return cls(
            image_id=image_id or os.path.basename(path),
            extension=ext,
            transparent=pixels is not None and has_transparency(pixels),
            file_path=os.path.abspath(path),
            pixels=pixels,
        )


def _try_decode(ext: str, data: bytes, label: str) -> Optional[np.ndarray]:
    try:
        return decode_image(ext, data)
    except ValueError as e:
        logger.debug("No raw pixels for %s: %s", label, e)
        return None
