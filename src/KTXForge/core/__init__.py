"""Core utilities -- re-exports all public symbols for convenience."""

from .records import CompressedResult, ImageAsset
from .io import (
    DECODABLE_EXTENSIONS,
    decode_image,
    encode_png,
    has_transparency,
    normalize_extension,
    resize_image,
)
from .pixel_format import PixelFormat
from .ktx import KTXContainer, load_ktx, parse_ktx
from .workspace import TempWorkspace
from .logging import setup_logging

__all__ = [
    "CompressedResult", "ImageAsset",
    "DECODABLE_EXTENSIONS", "decode_image", "encode_png", "has_transparency",
    "normalize_extension", "resize_image",
    "PixelFormat",
    "KTXContainer", "load_ktx", "parse_ktx",
    "TempWorkspace",
    "setup_logging",
]
