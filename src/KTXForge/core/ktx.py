"""Parse KTX 1.1 containers into a single level-0 compressed texture.

The following parts of the KTX format are rejected or ignored:

- big-endian files (rejected, never byte-swapped)
- key/value metadata (skipped)
- 3D textures, texture arrays and cubemaps (rejected)
- mipmaps (only level 0 is exposed; later levels are dropped)

See https://registry.khronos.org/KTX/specs/1.0/ktxspec.v1.html
"""

import logging
import os
import struct
from dataclasses import dataclass, field
from typing import Union

from ..errors import (
    InvalidContainer,
    InvalidInternalFormat,
    UnsupportedFeature,
    WrongEndianness,
)
from .pixel_format import SIZED_FORMAT_ALIASES, PixelFormat

logger = logging.getLogger("ktxforge.ktx")

KTX_IDENTIFIER = bytes([
    0xAB, 0x4B, 0x54, 0x58, 0x20, 0x31, 0x31, 0xBB, 0x0D, 0x0A, 0x1A, 0x0A,
])
ENDIANNESS_LE = 0x04030201

# glType .. bytesOfKeyValueData, directly after the endianness marker.
_HEADER_FIELDS = struct.Struct("<12I")
_HEADER_SIZE = len(KTX_IDENTIFIER) + 4 + _HEADER_FIELDS.size  # 64

BufferLike = Union[bytes, bytearray, memoryview]


@dataclass(frozen=True)
class KTXContainer:
    """Level-0 texture decoded from a KTX container.

    ``buffer_view`` is a non-owning ``memoryview`` over the caller's
    buffer; it stays valid only while that buffer is alive and unchanged.
    """

    internal_format: PixelFormat
    width: int
    height: int
    buffer_view: memoryview = field(compare=False, repr=False)
    byte_offset: int = 0

    def tobytes(self) -> bytes:
        """Return an owned copy of the level-0 texture data."""
        return self.buffer_view.tobytes()


def _u32_le(view: memoryview, offset: int) -> int:
    return int(struct.unpack_from("<I", view, offset)[0])


def parse_ktx(data: BufferLike) -> KTXContainer:
    """Decode and validate a KTX 1.1 container held in memory."""
    view = memoryview(data)
    if view.ndim != 1 or view.format != "B":
        view = view.cast("B")
    total = len(view)

    if total < len(KTX_IDENTIFIER) or bytes(view[:len(KTX_IDENTIFIER)]) != KTX_IDENTIFIER:
        raise InvalidContainer("Invalid KTX file.")

    offset = len(KTX_IDENTIFIER)
    if total < offset + 4:
        raise InvalidContainer("Invalid KTX file: truncated header.")
    endianness = _u32_le(view, offset)
    offset += 4
    if endianness != ENDIANNESS_LE:
        raise WrongEndianness("File is the wrong endianness.")

    if total < _HEADER_SIZE:
        raise InvalidContainer(
            f"Invalid KTX file: header needs {_HEADER_SIZE} bytes, got {total}."
        )
    (
        gl_type,
        gl_type_size,
        gl_format,
        gl_internal_format,
        gl_base_internal_format,
        pixel_width,
        pixel_height,
        pixel_depth,
        number_of_array_elements,
        number_of_faces,
        number_of_mipmap_levels,
        bytes_of_key_value_data,
    ) = _HEADER_FIELDS.unpack_from(view, offset)
    offset = _HEADER_SIZE

    # Skip metadata
    offset += bytes_of_key_value_data
    if total < offset + 4:
        raise InvalidContainer(
            "Invalid KTX file: key/value data runs past the end of the buffer."
        )
    image_size = _u32_le(view, offset)
    offset += 4
    if total < offset + image_size:
        raise InvalidContainer(
            f"Invalid KTX file: imageSize {image_size} exceeds the "
            f"{total - offset} bytes remaining."
        )
    texture_offset = offset
    texture_length = image_size

    # Some tools use a sized internal format.
    gl_internal_format = SIZED_FORMAT_ALIASES.get(gl_internal_format, gl_internal_format)

    if not PixelFormat.validate(gl_internal_format):
        raise InvalidInternalFormat(
            f"glInternalFormat 0x{gl_internal_format:04X} is not a valid format."
        )
    pixel_format = PixelFormat(gl_internal_format)

    if pixel_format.is_compressed:
        if gl_type != 0:
            raise UnsupportedFeature("glType must be zero when the texture is compressed.")
        if gl_type_size != 1:
            raise UnsupportedFeature("The type size for compressed textures must be 1.")
        if gl_format != 0:
            raise UnsupportedFeature("glFormat must be zero when the texture is compressed.")
        if number_of_mipmap_levels == 0:
            raise UnsupportedFeature(
                "Generating mipmaps for a compressed texture is unsupported."
            )
    elif gl_base_internal_format != gl_format:
        raise UnsupportedFeature(
            "The base internal format must be the same as the format for "
            "uncompressed textures."
        )

    if pixel_depth != 0:
        raise UnsupportedFeature("3D textures are unsupported.")
    if number_of_array_elements != 0:
        raise UnsupportedFeature("Texture arrays are unsupported.")
    if number_of_faces != 1:
        raise UnsupportedFeature("Cubemaps are unsupported.")

    # Only use the level 0 mipmap
    if pixel_format.is_compressed and number_of_mipmap_levels > 1:
        level_size = pixel_format.compressed_texture_size(pixel_width, pixel_height)
        if total < texture_offset + level_size:
            raise InvalidContainer(
                f"Invalid KTX file: level 0 needs {level_size} bytes, "
                f"got {total - texture_offset}."
            )
        logger.debug(
            "Dropping %d trailing mip level(s); keeping %d bytes of level 0",
            number_of_mipmap_levels - 1, level_size,
        )
        texture_length = level_size

    return KTXContainer(
        internal_format=pixel_format,
        width=int(pixel_width),
        height=int(pixel_height),
        buffer_view=view[texture_offset:texture_offset + texture_length],
        byte_offset=texture_offset,
    )


def load_ktx(path_or_buffer: Union[str, os.PathLike, BufferLike]) -> KTXContainer:
    """Parse a KTX container from a file path or an in-memory buffer."""
    if isinstance(path_or_buffer, (bytes, bytearray, memoryview)):
        return parse_ktx(path_or_buffer)
    with open(path_or_buffer, "rb") as f:
        data = f.read()
    return parse_ktx(data)
