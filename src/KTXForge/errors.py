"""Exception types raised by option validation, compression and KTX parsing."""

from typing import List, Optional, Tuple


class InvalidOptions(ValueError):
    """Raised before any work starts when compression options are invalid."""


class UnsupportedFormat(InvalidOptions):
    """Raised when a compression format name is not one of the known formats."""


class UnsupportedInputFormat(RuntimeError):
    """Raised when an image needs raw pixel access but could not be decoded."""


class ToolExecutionError(RuntimeError):
    """Raised when an external encoder fails to start or exits non-zero."""

    def __init__(self, message: str, tool: str = "", returncode: Optional[int] = None,
                 os_error: Optional[OSError] = None):
        super().__init__(message)
        self.tool = tool
        self.returncode = returncode
        self.os_error = os_error


class KTXError(RuntimeError):
    """Base class for KTX container decode failures."""


class InvalidContainer(KTXError):
    """Raised when the buffer is not a KTX 1.1 container."""


class WrongEndianness(KTXError):
    """Raised for big-endian containers, which are not byte-swapped."""


class InvalidInternalFormat(KTXError):
    """Raised when glInternalFormat is not a known pixel format."""


class UnsupportedFeature(KTXError):
    """Raised for mipmap generation, 3D textures, arrays, cubemaps and similar."""


class BatchCompressionError(RuntimeError):
    """Raised after a batch settles when one or more images failed."""

    def __init__(self, failures: List[Tuple[object, BaseException]], total: int):
        self.failures = failures
        self.total = total
        details = "; ".join(
            f"{getattr(image, 'image_id', image)}: {exc}" for image, exc in failures[:5]
        )
        if len(failures) > 5:
            details = f"{details}; ..."
        super().__init__(
            f"Texture compression failed for {len(failures)}/{total} image(s): {details}"
        )
