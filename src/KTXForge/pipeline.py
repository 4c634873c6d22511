"""Orchestrate texture compression for a batch of images.

`TextureCompressor` validates options up front, creates one temporary
workspace per run, compresses every image in its own asyncio task and
removes the workspace only after every task has finished touching it.
"""

import asyncio
import logging
import os
from typing import Callable, Iterable, List, Mapping, Optional, Union

from .config import CompressionOptions, ForgeConfig
from .core import CompressedResult, ImageAsset, TempWorkspace
from .errors import BatchCompressionError, InvalidOptions
from .phases.encode import EncoderInvoker
from .phases.policy import get_policy
from .phases.preprocess import prepare_input

logger = logging.getLogger("ktxforge")

ReplaceCallback = Callable[[ImageAsset, CompressedResult], None]


def _default_replace(image: ImageAsset, result: CompressedResult) -> None:
    image.replace_source(result.buffer, result.extension)


def _format_bytes(num_bytes: int) -> str:
    value = float(max(0, int(num_bytes)))
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024.0 or unit == "GB":
            if unit == "B":
                return f"{int(value)} {unit}"
            return f"{value:.1f} {unit}"
        value /= 1024.0
    return f"{value:.1f} GB"


def _format_size_change(before_bytes: int, after_bytes: int) -> str:
    if before_bytes <= 0:
        return f"{_format_bytes(before_bytes)} -> {_format_bytes(after_bytes)}"
    pct = ((after_bytes - before_bytes) / before_bytes) * 100.0
    return (
        f"{_format_bytes(before_bytes)} -> {_format_bytes(after_bytes)} "
        f"({pct:+.1f}%)"
    )


class TextureCompressor:
    """Compress a batch of images with one encoder configuration.

    Options are validated in the constructor, so `InvalidOptions` is raised
    before any workspace, task or process exists.
    """

    def __init__(
        self,
        options: Union[CompressionOptions, Mapping],
        config: Optional[ForgeConfig] = None,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ):
        """Validate options and bind runtime configuration."""
        if options is None:
            raise InvalidOptions("options.format must be defined.")
        if not isinstance(options, CompressionOptions):
            options = CompressionOptions.from_mapping(options)
        self.options = options
        self.policy = get_policy(options.format)
        self.config = config or ForgeConfig()
        self.progress_callback = progress_callback
        self._bytes_in = 0

    def _report_progress(self, done: int, total: int) -> None:
        if self.progress_callback is None:
            return
        try:
            self.progress_callback(done, total)
        except Exception as exc:
            logger.warning("Progress callback failed: %s", exc)

    async def _compress_one(self, image: ImageAsset, invoker: EncoderInvoker,
                            replace: ReplaceCallback) -> CompressedResult:
        prepared = await asyncio.to_thread(prepare_input, image, self.options, self.policy)
        if prepared.file_path is not None:
            input_bytes = await asyncio.to_thread(os.path.getsize, prepared.file_path)
            result = await invoker.compress_file(prepared.file_path, image.transparent)
        else:
            input_bytes = len(prepared.data)
            result = await invoker.compress_bytes(
                prepared.data, prepared.extension, image.transparent
            )
        replace(image, result)
        self._bytes_in += input_bytes
        return result

    async def compress_all(
        self,
        images: Iterable[ImageAsset],
        replace: Optional[ReplaceCallback] = None,
    ) -> List[CompressedResult]:
        """Compress every image and install each result through *replace*.

        Every image is attempted even when siblings fail. Raises
        `BatchCompressionError` once all tasks have settled if any failed.
        The workspace is removed after the last task finishes, on success
        and on failure.
        """
        images = list(images)
        replace = replace or _default_replace
        total = len(images)
        fmt = self.options.format.value
        if not images:
            logger.info("No images to compress")
            return []

        logger.info(
            "Compressing %d image(s) to %s (quality=%d) with %s",
            total, fmt, self.options.quality, self.policy.tool,
        )
        workspace = TempWorkspace(parent=self.config.temp_dir or None)
        workspace.create()
        done = 0
        self._bytes_in = 0

        async def _tracked(image):
            nonlocal done
            try:
                return await self._compress_one(image, invoker, replace)
            finally:
                done += 1
                self._report_progress(done, total)

        try:
            invoker = EncoderInvoker(workspace, self.options, self.config.tools)
            tasks = [asyncio.create_task(_tracked(image)) for image in images]
            # Wait for every task, failed or not, so no sibling still reads
            # or writes the workspace when it is removed.
            outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            workspace.remove()

        failures = []
        results = []
        bytes_after = 0
        for image, outcome in zip(images, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error("Compression failed for %s: %s", image.image_id, outcome)
                failures.append((image, outcome))
                continue
            results.append(outcome)
            bytes_after += len(outcome.buffer)

        logger.info(
            "Texture compression: %d/%d succeeded (%s)",
            len(results), total, _format_size_change(self._bytes_in, bytes_after),
        )
        if failures:
            raise BatchCompressionError(failures, total)
        return results


def compress_textures(
    images: Iterable[ImageAsset],
    options: Union[CompressionOptions, Mapping],
    config: Optional[ForgeConfig] = None,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> List[CompressedResult]:
    """Synchronous wrapper around `TextureCompressor.compress_all`.

    Options are validated before the event loop starts.
    """
    compressor = TextureCompressor(options, config, progress_callback)
    return asyncio.run(compressor.compress_all(images))
