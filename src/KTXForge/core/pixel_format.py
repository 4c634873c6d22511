"""OpenGL pixel formats recognized in KTX containers."""

from enum import IntEnum
from typing import Dict, Tuple


class PixelFormat(IntEnum):
    """glInternalFormat values accepted by the KTX parser."""

    DEPTH_COMPONENT = 0x1902
    DEPTH_STENCIL = 0x84F9
    ALPHA = 0x1906
    RGB = 0x1907
    RGBA = 0x1908
    LUMINANCE = 0x1909
    LUMINANCE_ALPHA = 0x190A

    RGB_DXT1 = 0x83F0
    RGBA_DXT1 = 0x83F1
    RGBA_DXT3 = 0x83F2
    RGBA_DXT5 = 0x83F3

    RGB_PVRTC_4BPPV1 = 0x8C00
    RGB_PVRTC_2BPPV1 = 0x8C01
    RGBA_PVRTC_4BPPV1 = 0x8C02
    RGBA_PVRTC_2BPPV1 = 0x8C03
    RGBA_PVRTC_2BPPV2 = 0x9137
    RGBA_PVRTC_4BPPV2 = 0x9138

    RGB_ETC1 = 0x8D64
    RGB8_ETC2 = 0x9274
    RGB8_PUNCHTHROUGH_ALPHA1_ETC2 = 0x9276
    RGBA8_ETC2_EAC = 0x9278

    RGBA_ASTC_4x4 = 0x93B0
    RGBA_ASTC_5x4 = 0x93B1
    RGBA_ASTC_5x5 = 0x93B2
    RGBA_ASTC_6x5 = 0x93B3
    RGBA_ASTC_6x6 = 0x93B4
    RGBA_ASTC_8x5 = 0x93B5
    RGBA_ASTC_8x6 = 0x93B6
    RGBA_ASTC_8x8 = 0x93B7
    RGBA_ASTC_10x5 = 0x93B8
    RGBA_ASTC_10x6 = 0x93B9
    RGBA_ASTC_10x8 = 0x93BA
    RGBA_ASTC_10x10 = 0x93BB
    RGBA_ASTC_12x10 = 0x93BC
    RGBA_ASTC_12x12 = 0x93BD

    @classmethod
    def validate(cls, value: int) -> bool:
        """Return True when *value* is a known pixel format."""
        try:
            cls(value)
        except ValueError:
            return False
        return True

    @property
    def is_compressed(self) -> bool:
        return (
            self in _BYTES_PER_4X4_BLOCK
            or self in _PVRTC_BITS_PER_PIXEL
            or self in _ASTC_BLOCK_DIMS
        )

    def compressed_texture_size(self, width: int, height: int) -> int:
        """Return the byte size of one mip level of this compressed format."""
        block_bytes = _BYTES_PER_4X4_BLOCK.get(self)
        if block_bytes is not None:
            return ((width + 3) // 4) * ((height + 3) // 4) * block_bytes

        bpp = _PVRTC_BITS_PER_PIXEL.get(self)
        if bpp == 4:
            return (max(width, 8) * max(height, 8) * 4 + 7) // 8
        if bpp == 2:
            return (max(width, 16) * max(height, 8) * 2 + 7) // 8

        dims = _ASTC_BLOCK_DIMS.get(self)
        if dims is not None:
            block_w, block_h = dims
            return -(-width // block_w) * -(-height // block_h) * 16

        raise ValueError(f"{self.name} is not a compressed format")


_BYTES_PER_4X4_BLOCK: Dict[PixelFormat, int] = {
    PixelFormat.RGB_DXT1: 8,
    PixelFormat.RGBA_DXT1: 8,
    PixelFormat.RGBA_DXT3: 16,
    PixelFormat.RGBA_DXT5: 16,
    PixelFormat.RGB_ETC1: 8,
    PixelFormat.RGB8_ETC2: 8,
    PixelFormat.RGB8_PUNCHTHROUGH_ALPHA1_ETC2: 8,
    PixelFormat.RGBA8_ETC2_EAC: 16,
}

_PVRTC_BITS_PER_PIXEL: Dict[PixelFormat, int] = {
    PixelFormat.RGB_PVRTC_4BPPV1: 4,
    PixelFormat.RGBA_PVRTC_4BPPV1: 4,
    PixelFormat.RGBA_PVRTC_4BPPV2: 4,
    PixelFormat.RGB_PVRTC_2BPPV1: 2,
    PixelFormat.RGBA_PVRTC_2BPPV1: 2,
    PixelFormat.RGBA_PVRTC_2BPPV2: 2,
}

_ASTC_BLOCK_DIMS: Dict[PixelFormat, Tuple[int, int]] = {
    fmt: tuple(int(v) for v in fmt.name.rsplit("_", 1)[1].split("x"))
    for fmt in PixelFormat
    if fmt.name.startswith("RGBA_ASTC_")
}

# Sized internal formats emitted by some tools (table 2 of glTexImage2D).
SIZED_FORMAT_ALIASES: Dict[int, PixelFormat] = {
    0x8051: PixelFormat.RGB,   # GL_RGB8
    0x8058: PixelFormat.RGBA,  # GL_RGBA8
}
