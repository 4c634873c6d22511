"""Define compression options and typed runtime configuration.

Use `CompressionOptions` for a single validated compression request and
`ForgeConfig` to load, validate, and persist runtime settings.
"""

import os
import logging
import yaml
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, Union
from enum import Enum

from .errors import InvalidOptions, UnsupportedFormat

logger = logging.getLogger("ktxforge.config")


class CompressionFormat(Enum):
    """Enumerate supported texture compression targets."""

    PVRTC1 = "pvrtc1"
    PVRTC2 = "pvrtc2"
    ETC1 = "etc1"
    ETC2 = "etc2"
    ASTC = "astc"
    DXT1 = "dxt1"
    DXT3 = "dxt3"
    DXT5 = "dxt5"
    CRUNCH_DXT1 = "crunch-dxt1"
    CRUNCH_DXT3 = "crunch-dxt3"
    CRUNCH_DXT5 = "crunch-dxt5"

    @property
    def is_crunch(self) -> bool:
        """Return True for formats written to a crunch (.crn) container."""
        return self.value.startswith("crunch-")

    @property
    def is_pvrtc(self) -> bool:
        return self in (CompressionFormat.PVRTC1, CompressionFormat.PVRTC2)

    @property
    def dxt_variant(self) -> Optional[str]:
        """Return ``dxt1``/``dxt3``/``dxt5`` for the DXT family, else None."""
        name = self.value[len("crunch-"):] if self.is_crunch else self.value
        return name if name.startswith("dxt") else None

    @property
    def container_extension(self) -> str:
        # crunch output cannot be embedded in a KTX container
        return ".crn" if self.is_crunch else ".ktx"


FORMAT_NAMES: Tuple[str, ...] = tuple(f.value for f in CompressionFormat)

ASTC_BLOCK_SIZES: Tuple[str, ...] = (
    "4x4", "5x4", "5x5", "6x5", "6x6", "8x5", "8x6", "8x8",
    "10x5", "10x6", "10x8", "10x10", "12x10", "12x12",
)

PVRTC_BITRATES = (2.0, 4.0)


def parse_format(value: Union[str, CompressionFormat]) -> CompressionFormat:
    """Coerce a format name into `CompressionFormat`.

    Raises `UnsupportedFormat` for anything that is not one of the
    eleven supported identifiers.
    """
    if isinstance(value, CompressionFormat):
        return value
    try:
        return CompressionFormat(value)
    except ValueError:
        raise UnsupportedFormat(
            f'format "{value}" is not a supported format. '
            f"Supported formats are {', '.join(FORMAT_NAMES)}."
        ) from None


@dataclass(frozen=True)
class CompressionOptions:
    """Validated, immutable description of one compression request.

    ``bitrate`` only matters for pvrtc and astc, ``block_size`` only for
    astc (and is ignored there when ``bitrate`` differs from the 2.0
    default).
    """

    format: CompressionFormat
    quality: int = 5
    bitrate: float = 2.0
    block_size: str = "8x8"  # 8x8 corresponds to 2.0 bpp for astc
    alpha_bit: bool = False

    def __post_init__(self) -> None:
        """Coerce the format name and reject invalid combinations."""
        if self.format is None:
            raise InvalidOptions("format must be defined.")
        object.__setattr__(self, "format", parse_format(self.format))

        errors = []
        quality = self.quality
        if isinstance(quality, bool) or not isinstance(quality, (int, float)):
            errors.append(f"quality must be an integer between 0 and 10, got {quality!r}")
        elif quality != int(quality) or not (0 <= quality <= 10):
            errors.append(f"quality must be an integer between 0 and 10, got {quality!r}")
        else:
            object.__setattr__(self, "quality", int(quality))

        bitrate = self.bitrate
        if isinstance(bitrate, bool) or not isinstance(bitrate, (int, float)):
            errors.append(f"bitrate must be a number, got {bitrate!r}")
        else:
            object.__setattr__(self, "bitrate", float(bitrate))
            if self.format.is_pvrtc and float(bitrate) not in PVRTC_BITRATES:
                errors.append(
                    "bitrate (bits-per-pixel) must be 2 or 4 when using pvrtc, "
                    f"got {bitrate!r}"
                )

        if self.format is CompressionFormat.ASTC and self.block_size not in ASTC_BLOCK_SIZES:
            errors.append(
                f'Block size "{self.block_size}" is not supported. '
                f"Supported values are {', '.join(ASTC_BLOCK_SIZES)}."
            )

        object.__setattr__(self, "alpha_bit", bool(self.alpha_bit))

        if errors:
            raise InvalidOptions(
                "Invalid compression options:\n  - " + "\n  - ".join(errors)
            )

    @classmethod
    def from_mapping(cls, data: dict) -> "CompressionOptions":
        """Build options from a plain dict, accepting camelCase keys too."""
        aliases = {"blockSize": "block_size", "alphaBit": "alpha_bit"}
        kwargs = {}
        for key, value in dict(data).items():
            name = aliases.get(key, key)
            if name not in ("format", "quality", "bitrate", "block_size", "alpha_bit"):
                raise InvalidOptions(f"Unknown compression option: '{key}'")
            if value is not None:
                kwargs[name] = value
        if "format" not in kwargs:
            raise InvalidOptions("format must be defined.")
        return cls(**kwargs)


@dataclass
class TextureConfig:
    """Store the default compression request used by the CLI."""

    format: str = "etc1"
    quality: int = 5
    bitrate: float = 2.0
    block_size: str = "8x8"
    alpha_bit: bool = False

    def to_options(self) -> CompressionOptions:
        """Return validated immutable options for this configuration."""
        return CompressionOptions(
            format=self.format,
            quality=self.quality,
            bitrate=self.bitrate,
            block_size=self.block_size,
            alpha_bit=self.alpha_bit,
        )


@dataclass
class ToolConfig:
    """Store encoder discovery and threading settings."""

    tool_dir: str = ""
    tool_paths: Dict[str, str] = field(default_factory=dict)
    helper_threads: int = 0  # 0 = host logical core count

    def resolve_helper_threads(self) -> int:
        """Return the core count passed to multi-threaded encoders."""
        if self.helper_threads > 0:
            return self.helper_threads
        return os.cpu_count() or 1


_SUPPORTED_CONFIG_VERSION = 1


@dataclass
class ForgeConfig:
    """Master runtime configuration."""

    config_version: int = 1
    temp_dir: str = ""
    log_level: str = "INFO"

    texture: TextureConfig = field(default_factory=TextureConfig)
    tools: ToolConfig = field(default_factory=ToolConfig)

    @classmethod
    def from_yaml(cls, path: str) -> "ForgeConfig":
        """Load configuration from YAML or return defaults."""
        if not os.path.exists(path):
            logger.info("Config file '%s' not found. Using defaults.", path)
            config = cls()
            config.validate()
            return config
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(
                f"Failed to parse YAML config '{path}': {exc}"
            ) from exc
        if not isinstance(data, dict):
            raise ValueError(
                f"Config file '{path}' must contain a YAML mapping, "
                f"got {type(data).__name__}"
            )
        yaml_version = data.get("config_version", 1)
        if isinstance(yaml_version, int) and yaml_version > _SUPPORTED_CONFIG_VERSION:
            logger.warning(
                "Config file '%s' has config_version=%d, but this build only "
                "supports up to version %d. Some settings may be ignored.",
                path, yaml_version, _SUPPORTED_CONFIG_VERSION,
            )
        config = cls()
        _merge_dict_to_dataclass(config, data)
        try:
            config.validate()
        except ValueError as exc:
            raise ValueError(f"{path}: {exc}") from exc
        return config

    def to_yaml(self, path: str):
        """Write configuration to a YAML file."""
        import dataclasses
        import threading as _th
        data = dataclasses.asdict(self)
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        ext = os.path.splitext(path)[1]
        tmp_path = f"{path}.tmp.{os.getpid()}.{_th.get_ident()}{ext}"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                yaml.dump(data, f, default_flow_style=False, sort_keys=False)
            os.replace(tmp_path, path)
        finally:
            if os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError:
                    pass

    def validate(self):
        """Validate configuration values. Raises ValueError on invalid config."""
        errors = []

        valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.log_level.upper() not in valid_log_levels:
            errors.append(
                f"log_level must be one of {sorted(valid_log_levels)}, "
                f"got '{self.log_level}'"
            )
        if self.temp_dir and os.path.exists(self.temp_dir) and not os.path.isdir(self.temp_dir):
            errors.append(f"temp_dir must be a directory, got file '{self.temp_dir}'")

        if self.tools.helper_threads < 0:
            errors.append("tools.helper_threads must be >= 0 (0 = auto)")
        if self.tools.helper_threads > 256:
            errors.append("tools.helper_threads must be <= 256")
        for tool, tool_path in self.tools.tool_paths.items():
            if not isinstance(tool_path, str) or not tool_path.strip():
                errors.append(f"tools.tool_paths.{tool} must be a non-empty path")

        try:
            self.texture.to_options()
        except InvalidOptions as exc:
            errors.append(f"texture: {exc}")

        if errors:
            raise ValueError(
                "Config validation failed:\n  - " + "\n  - ".join(errors)
            )


def _merge_dict_to_dataclass(obj, data: dict, _path: str = ""):
    import dataclasses
    for key, value in data.items():
        if hasattr(obj, key):
            field_val = getattr(obj, key)
            if dataclasses.is_dataclass(field_val) and isinstance(value, dict):
                _merge_dict_to_dataclass(field_val, value, f"{_path}{key}.")
            else:
                full_key = f"{_path}{key}"
                if value is None and field_val is not None:
                    logger.warning(
                        "Config key '%s' is null but field default is %s. "
                        "Using default value.",
                        full_key, type(field_val).__name__,
                    )
                    continue
                expected_type = type(field_val)
                # Allow int->float and integral float->int promotion
                if (field_val is not None
                        and not isinstance(value, expected_type)
                        and not (expected_type is float
                                 and isinstance(value, int))
                        and not (expected_type is int
                                 and isinstance(value, float)
                                 and value == int(value))):
                    logger.warning(
                        "Config type mismatch for '%s': expected %s, got %s (%r). "
                        "Using default value.",
                        full_key, expected_type.__name__, type(value).__name__, value,
                    )
                    continue
                if (expected_type is int and isinstance(value, float)
                        and value == int(value)):
                    value = int(value)
                if isinstance(field_val, dict) and isinstance(value, dict):
                    field_val.update(value)
                else:
                    setattr(obj, key, value)
        else:
            full_key = f"{_path}{key}"
            logger.warning("Unknown config key ignored: '%s'", full_key)
