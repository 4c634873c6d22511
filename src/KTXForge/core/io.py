"""Raw pixel utilities -- decode, resize and PNG-encode uint8 pixel arrays."""

import io
import logging

import cv2
import numpy as np
from PIL import Image

logger = logging.getLogger("ktxforge.io")

# Extensions the raw-pixel path can decode. Anything else (gif, ktx, dds,
# crn, ...) is forwarded as-is or rejected when raw pixels are required.
DECODABLE_EXTENSIONS = frozenset({
    ".png", ".jpg", ".jpeg", ".bmp", ".tga", ".tif", ".tiff",
})


def normalize_extension(extension: str) -> str:
    """Return a lowercase extension with a leading dot."""
    ext = (extension or "").strip().lower()
    if ext and not ext.startswith("."):
        ext = "." + ext
    return ext


def decode_image(extension: str, data: bytes) -> np.ndarray:
    """Decode encoded image bytes into an (H, W, 3|4) uint8 array.

    Palette, grayscale and CMYK images are expanded to RGB/RGBA so every
    caller sees the same channel layout.
    """
    ext = normalize_extension(extension)
    if ext not in DECODABLE_EXTENSIONS:
        raise ValueError(f"Cannot decode image with extension '{ext}'")

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            has_alpha = (
                img.mode in ("RGBA", "LA", "PA")
                or (img.mode == "P" and "transparency" in img.info)
            )
            target_mode = "RGBA" if has_alpha else "RGB"
            if img.mode != target_mode:
                logger.debug("Converting %s image from %s->%s", ext, img.mode, target_mode)
                with img.convert(target_mode) as converted:
                    arr = np.asarray(converted, dtype=np.uint8)
            else:
                arr = np.asarray(img, dtype=np.uint8)
    except (OSError, SyntaxError) as e:
        # Pillow reports truncated/corrupt data as OSError or SyntaxError.
        raise ValueError(f"Failed to decode {ext} image: {e}") from e

    return np.ascontiguousarray(arr)


def resize_image(pixels: np.ndarray, width: int, height: int) -> np.ndarray:
    """Return a resized copy of *pixels* at ``width`` x ``height``."""
    if width < 1 or height < 1:
        raise ValueError(f"Invalid resize target {width}x{height}")
    src_h, src_w = pixels.shape[:2]
    if (src_w, src_h) == (width, height):
        return pixels.copy()
    # INTER_AREA (box filter) for downscale avoids aliasing
    if width <= src_w and height <= src_h:
        interp = cv2.INTER_AREA
    else:
        interp = cv2.INTER_LINEAR
    resized = cv2.resize(pixels, (width, height), interpolation=interp)
    if resized.ndim == 2:
        resized = resized[:, :, np.newaxis]
    return resized


def encode_png(pixels: np.ndarray) -> bytes:
    """Encode *pixels* losslessly as PNG, accepted by every encoder."""
    arr = np.ascontiguousarray(pixels, dtype=np.uint8)
    if arr.ndim == 3 and arr.shape[-1] == 1:
        arr = arr[:, :, 0]
    buf = io.BytesIO()
    with Image.fromarray(arr) as img:
        img.save(buf, format="PNG")
    return buf.getvalue()


def has_transparency(pixels: np.ndarray) -> bool:
    """Return True when the alpha channel holds any non-opaque pixel."""
    if pixels.ndim != 3 or pixels.shape[-1] != 4:
        return False
    return bool((pixels[:, :, 3] < 255).any())
