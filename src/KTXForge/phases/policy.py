"""Map each compression format to its encoder, accepted inputs and CLI arguments.

Every builder rescales the shared 0-10 quality value to its encoder's own
scale and picks the opaque / 1-bit-alpha / full-alpha variant from the
image's transparency and the ``alpha_bit`` option.
"""

import logging
import math
import os
import platform
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Callable, FrozenSet, Mapping, Optional, Tuple, Union

from ..config import CompressionFormat, CompressionOptions, ToolConfig, parse_format

logger = logging.getLogger("ktxforge.policy")

PVRTEXTOOL = "PVRTexToolCLI"
ETCTOOL = "EtcTool"
CRUNCH = "crunch"
ASTCENC = "astcenc"

_PVRTEXTOOL_EXTENSIONS = frozenset({".jpeg", ".jpg", ".png", ".bmp"})
_ETCTOOL_EXTENSIONS = frozenset({".png"})
_CRUNCH_EXTENSIONS = frozenset({".jpeg", ".jpg", ".png", ".bmp"})
_ASTCENC_EXTENSIONS = frozenset({".jpeg", ".jpg", ".png", ".bmp", ".gif"})

_PVRTC_QUALITY = ("pvrtcfastest", "pvrtcfast", "pvrtcnormal", "pvrtchigh", "pvrtcbest")
_CRUNCH_QUALITY = ("superfast", "fast", "normal", "better", "uber")
_ASTC_QUALITY = ("-veryfast", "-fast", "-medium", "-thorough", "-exhaustive")


@dataclass(frozen=True)
class EncoderInvocation:
    """Executable plus argument list for one encoder run."""

    executable: str
    arguments: Tuple[str, ...]

    @property
    def command(self) -> list:
        return [self.executable, *self.arguments]


ArgumentBuilder = Callable[
    [str, str, CompressionOptions, bool, str, int], EncoderInvocation
]


@dataclass(frozen=True)
class FormatPolicy:
    """Per-format encoder choice, accepted inputs and resize requirement."""

    tool: str
    input_extensions: FrozenSet[str]
    requires_power_of_two: bool
    argument_builder: ArgumentBuilder

    def accepts(self, extension: str) -> bool:
        return extension.lower() in self.input_extensions


def quality_tier(quality: int) -> int:
    """Map the 0-10 quality scale onto a 0-4 encoder tier."""
    return int(math.floor(quality / 2.1))


def _format_rate(bitrate: float) -> str:
    # astcenc requires bitrates to have at least one decimal
    if float(bitrate).is_integer():
        return f"{bitrate:.1f}"
    return repr(float(bitrate))


def build_etctool_arguments(input_path, output_path, options, transparent,
                            executable, cpu_count) -> EncoderInvocation:
    """Build EtcTool (etc2comp) arguments; effort uses a 0-100 scale."""
    if options.format is CompressionFormat.ETC1:
        cli_format = "ETC1"
    elif transparent and options.alpha_bit:
        cli_format = "RGB8A1"
    elif transparent:
        cli_format = "RGBA8"
    else:
        cli_format = "RGB8"

    effort = options.quality * 10
    return EncoderInvocation(executable, (
        input_path,
        "-format", cli_format,
        "-effort", str(effort),
        "-jobs", str(cpu_count),
        "-output", output_path,
    ))


def build_pvrtextool_arguments(input_path, output_path, options, transparent,
                               executable, cpu_count) -> EncoderInvocation:
    """Build PVRTexToolCLI arguments.

    The tool is single-threaded so ``cpu_count`` is ignored. iOS requires
    square power-of-two PVRTC textures; the tool shrinks to the previous one.
    """
    bits = int(options.bitrate)
    if options.format is CompressionFormat.PVRTC1:
        cli_format = f"PVRTC1_{bits}" if transparent else f"PVRTC1_{bits}_RGB"
    else:
        cli_format = f"PVRTC2_{bits}"

    return EncoderInvocation(executable, (
        "-i", input_path,
        "-o", output_path,
        "-f", cli_format,
        "-q", _PVRTC_QUALITY[quality_tier(options.quality)],
        "-square", "-",
        "-pot", "-",
    ))


def build_crunch_arguments(input_path, output_path, options, transparent,
                           executable, cpu_count) -> EncoderInvocation:
    """Build crunch arguments for plain DXT (.ktx) and clustered DXT (.crn)."""
    variant = options.format.dxt_variant
    if variant == "dxt1":
        cli_format = "-DXT1A" if transparent else "-DXT1"
    else:
        cli_format = f"-{variant.upper()}"

    return EncoderInvocation(executable, (
        "-file", input_path,
        "-out", output_path,
        "-fileformat", "crn" if options.format.is_crunch else "ktx",
        "-helperThreads", str(cpu_count),
        "-dxtQuality", _CRUNCH_QUALITY[quality_tier(options.quality)],
        "-rescalemode", "lo",
        "-mipMode", "None",
        cli_format,
    ))


def build_astcenc_arguments(input_path, output_path, options, transparent,
                            executable, cpu_count) -> EncoderInvocation:
    """Build astcenc arguments; a non-default bitrate overrides the block size."""
    if options.bitrate != 2.0:
        rate = _format_rate(options.bitrate)
    else:
        rate = options.block_size

    arguments = [
        "-cl", input_path, output_path, rate,
        "-j", str(cpu_count),
        _ASTC_QUALITY[quality_tier(options.quality)],
    ]
    if transparent:
        arguments.append("-alphablend")
    return EncoderInvocation(executable, tuple(arguments))


_PVRTC_POLICY = FormatPolicy(PVRTEXTOOL, _PVRTEXTOOL_EXTENSIONS, False,
                             build_pvrtextool_arguments)
# etc2comp has no resize option and ETC sizes must be block aligned,
# so round down to a power of two before encoding.
_ETC_POLICY = FormatPolicy(ETCTOOL, _ETCTOOL_EXTENSIONS, True,
                           build_etctool_arguments)
_CRUNCH_POLICY = FormatPolicy(CRUNCH, _CRUNCH_EXTENSIONS, False,
                              build_crunch_arguments)
_ASTC_POLICY = FormatPolicy(ASTCENC, _ASTCENC_EXTENSIONS, True,
                            build_astcenc_arguments)

FORMAT_POLICIES: Mapping[CompressionFormat, FormatPolicy] = MappingProxyType({
    CompressionFormat.PVRTC1: _PVRTC_POLICY,
    CompressionFormat.PVRTC2: _PVRTC_POLICY,
    CompressionFormat.ETC1: _ETC_POLICY,
    CompressionFormat.ETC2: _ETC_POLICY,
    CompressionFormat.ASTC: _ASTC_POLICY,
    CompressionFormat.DXT1: _CRUNCH_POLICY,
    CompressionFormat.DXT3: _CRUNCH_POLICY,
    CompressionFormat.DXT5: _CRUNCH_POLICY,
    CompressionFormat.CRUNCH_DXT1: _CRUNCH_POLICY,
    CompressionFormat.CRUNCH_DXT3: _CRUNCH_POLICY,
    CompressionFormat.CRUNCH_DXT5: _CRUNCH_POLICY,
})


def get_policy(fmt: Union[str, CompressionFormat]) -> FormatPolicy:
    """Return the policy for *fmt*; unknown names raise `UnsupportedFormat`."""
    return FORMAT_POLICIES[parse_format(fmt)]


def resolve_tool(tool: str, tool_config: Optional[ToolConfig] = None) -> str:
    """Resolve the executable path for an encoder.

    Order: explicit ``tool_paths`` entry, ``<tool_dir>/<platform>/``,
    ``<tool_dir>/``, then ``PATH``. When nothing is found the platform
    path is returned so the spawn reports the missing executable.
    """
    tool_config = tool_config or ToolConfig()
    explicit = tool_config.tool_paths.get(tool)
    if explicit:
        return os.path.expanduser(explicit)

    from .. import BIN_DIR
    bin_dir = Path(tool_config.tool_dir).expanduser() if tool_config.tool_dir else BIN_DIR
    exe_suffix = ".exe" if platform.system() == "Windows" else ""
    candidates = [
        bin_dir / sys.platform / f"{tool}{exe_suffix}",
        bin_dir / f"{tool}{exe_suffix}",
    ]
    for candidate in candidates:
        if candidate.is_file():
            logger.debug("Using bundled encoder: %s", candidate)
            return str(candidate)

    on_path = shutil.which(tool)
    if on_path:
        logger.debug("Using encoder from PATH: %s", on_path)
        return on_path

    logger.warning(
        "Encoder '%s' not found in %s or on PATH. Set tools.tool_paths.%s "
        "in config or install it on PATH.",
        tool, bin_dir, tool,
    )
    return str(candidates[0])


def build_invocation(policy: FormatPolicy, input_path: str, output_path: str,
                     options: CompressionOptions, transparent: bool,
                     tool_config: Optional[ToolConfig] = None,
                     executable: Optional[str] = None) -> EncoderInvocation:
    """Return a fresh invocation for one image.

    Pass *executable* to reuse an already resolved encoder path.
    """
    tool_config = tool_config or ToolConfig()
    if executable is None:
        executable = resolve_tool(policy.tool, tool_config)
    return policy.argument_builder(
        input_path,
        output_path,
        options,
        bool(transparent),
        executable,
        tool_config.resolve_helper_threads(),
    )
