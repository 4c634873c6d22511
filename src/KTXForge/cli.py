"""Command-line interface for texture compression."""

import argparse
import asyncio
import logging
import os
import sys

from tqdm import tqdm

from .config import ASTC_BLOCK_SIZES, FORMAT_NAMES, ForgeConfig, TextureConfig
from .core import DECODABLE_EXTENSIONS, ImageAsset, load_ktx, setup_logging
from .errors import BatchCompressionError, KTXError

logger = logging.getLogger("ktxforge")


def _collect_inputs(paths, extensions):
    """Return ``(path, relative_stem)`` pairs for files and directory trees."""
    found = []
    for root_path in paths:
        if os.path.isfile(root_path):
            stem = os.path.splitext(os.path.basename(root_path))[0]
            found.append((root_path, stem))
            continue
        if not os.path.isdir(root_path):
            raise FileNotFoundError(f"Input not found: {root_path}")
        for dirpath, dirnames, filenames in os.walk(root_path):
            dirnames.sort()
            for name in sorted(filenames):
                if os.path.splitext(name)[1].lower() not in extensions:
                    continue
                full = os.path.join(dirpath, name)
                rel = os.path.relpath(full, root_path)
                found.append((full, os.path.splitext(rel)[0]))
    return found


def _output_collisions(inputs):
    """Group input paths that would be written to the same output name."""
    by_stem = {}
    for path, stem in inputs:
        by_stem.setdefault(os.path.normcase(stem), []).append(path)
    return {stem: paths for stem, paths in by_stem.items() if len(paths) > 1}


def _inspect(path: str) -> int:
    try:
        container = load_ktx(path)
    except (OSError, KTXError) as exc:
        logger.error("Cannot inspect %s: %s", path, exc)
        print(f"Error: {exc}")
        return 1
    fmt = container.internal_format
    print(f"{path}:")
    print(f"  format:     {fmt.name} (0x{int(fmt):04X})")
    print(f"  dimensions: {container.width}x{container.height}")
    print(f"  level 0:    {len(container.buffer_view)} bytes at offset {container.byte_offset}")
    return 0


def _apply_overrides(texture: TextureConfig, args) -> None:
    if args.format is not None:
        texture.format = args.format
    if args.quality is not None:
        texture.quality = args.quality
    if args.bitrate is not None:
        texture.bitrate = args.bitrate
    if args.block_size is not None:
        texture.block_size = args.block_size
    if args.alpha_bit:
        texture.alpha_bit = True


def main(argv=None):
    """Parse CLI arguments and compress the requested images."""
    parser = argparse.ArgumentParser(
        prog="ktxforge",
        description="Compress images into GPU texture formats with external encoders",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ktxforge -i ./textures -o ./compressed -f etc2 -q 8
  ktxforge -i logo.png -o ./out -f astc --block-size 6x6
  ktxforge -i ./textures -o ./out --config config.yaml
  ktxforge --inspect ./out/logo.ktx
  ktxforge --generate-config
        """
    )
    parser.add_argument("--input", "-i", nargs="+", help="Input image files or directories")
    parser.add_argument("--output", "-o", help="Output directory")
    parser.add_argument("--config", "-c", help="Path to config YAML")
    parser.add_argument("--format", "-f", choices=FORMAT_NAMES, help="Compression format")
    parser.add_argument("--quality", "-q", type=int, help="Quality 0-10")
    parser.add_argument("--bitrate", type=float,
                        help="Bits per pixel (pvrtc: 2 or 4; astc: overrides block size)")
    parser.add_argument("--block-size", choices=ASTC_BLOCK_SIZES, help="ASTC block size")
    parser.add_argument("--alpha-bit", action="store_true",
                        help="Use 1-bit alpha for transparent etc2 images")
    parser.add_argument("--generate-config", action="store_true",
                        help="Generate default config.yaml")
    parser.add_argument("--inspect", metavar="FILE",
                        help="Print the format, size and level-0 length of a KTX file")
    parser.add_argument("--log-level",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])

    args = parser.parse_args(argv)

    if args.inspect:
        setup_logging(args.log_level or "WARNING")
        sys.exit(_inspect(args.inspect))

    if args.generate_config:
        config = ForgeConfig()
        dest = args.config or args.output or "config.yaml"
        if os.path.isdir(dest):
            dest = os.path.join(dest, "config.yaml")
        config.to_yaml(dest)
        logger.info("Generated default %s", dest)
        print(f"Generated default {dest}")
        return

    # Ensure early validation warnings from from_yaml() are visible on stderr
    # before the full logging is configured.
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")

    if args.config:
        if not os.path.exists(args.config):
            logger.error("Config file not found: %s", args.config)
            print(f"Error: Config file not found: {args.config}")
            sys.exit(1)
        try:
            config = ForgeConfig.from_yaml(args.config)
        except ValueError as e:
            logger.error("Invalid config file '%s': %s", args.config, e)
            print(f"Error: Invalid config: {e}")
            sys.exit(1)
    else:
        config = ForgeConfig()

    _apply_overrides(config.texture, args)
    if args.log_level:
        config.log_level = args.log_level

    if not args.input or not args.output:
        parser.error("--input and --output are required unless --inspect or --generate-config is used")

    os.makedirs(args.output, exist_ok=True)
    setup_logging(config.log_level, os.path.join(args.output, "ktxforge.log"), force=True)

    try:
        config.validate()
        options = config.texture.to_options()
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    from .phases.policy import get_policy
    from .pipeline import TextureCompressor

    policy = get_policy(options.format)
    extensions = DECODABLE_EXTENSIONS | policy.input_extensions
    try:
        inputs = _collect_inputs(args.input, extensions)
    except FileNotFoundError as e:
        logger.error(str(e))
        print(f"Error: {e}")
        sys.exit(1)
    if not inputs:
        logger.warning("No input images found in %s", ", ".join(args.input))
        return
    collisions = _output_collisions(inputs)
    if collisions:
        ext = options.format.container_extension
        for stem, paths in sorted(collisions.items()):
            logger.error("Inputs %s would all be written to %s%s",
                         ", ".join(paths), stem, ext)
        print(f"Error: {len(collisions)} output name(s) are shared by several inputs")
        sys.exit(1)

    images = []
    stems = {}
    for path, stem in inputs:
        image = ImageAsset.from_file(path, image_id=stem)
        images.append(image)
        stems[id(image)] = stem

    def _write_output(image, result):
        image.replace_source(result.buffer, result.extension)
        dest = os.path.join(args.output, stems[id(image)] + result.extension)
        os.makedirs(os.path.dirname(dest) or ".", exist_ok=True)
        with open(dest, "wb") as f:
            f.write(result.buffer)
        logger.debug("Wrote %s", dest)

    with tqdm(total=len(images), desc=f"Compressing ({options.format.value})",
              unit="img") as pbar:
        compressor = TextureCompressor(
            options, config, progress_callback=lambda done, total: pbar.update(1),
        )
        try:
            asyncio.run(compressor.compress_all(images, replace=_write_output))
        except BatchCompressionError as exc:
            logger.error(str(exc))
            sys.exit(1)
        except KeyboardInterrupt:
            logger.warning("Interrupted by user.")
            sys.exit(130)

    logger.info("Wrote %d texture(s) to %s", len(images), args.output)


if __name__ == "__main__":
    main()
