"""Run an external encoder on one image inside the shared workspace."""

import asyncio
import logging
import os
import sys
from typing import Optional, Union

from ..config import CompressionOptions, ToolConfig
from ..core import CompressedResult, TempWorkspace
from ..errors import ToolExecutionError
from .policy import EncoderInvocation, build_invocation, get_policy, resolve_tool

logger = logging.getLogger("ktxforge.encode")

# Known Windows NTSTATUS crash codes (as signed int32)
_CRASH_CODES_WIN = {
    -1073741819: "ACCESS_VIOLATION (0xC0000005)",
    -1073741795: "ILLEGAL_INSTRUCTION (0xC000001D)",
    -1073740791: "STACK_BUFFER_OVERRUN (0xC0000409)",
    -1073741571: "STACK_OVERFLOW (0xC00000FD)",
    -1073741515: "DLL_NOT_FOUND (0xC0000135)",
}


def _is_crash_code(returncode: int) -> Optional[str]:
    """Return a human-readable crash description, or None if not a crash."""
    if sys.platform == "win32":
        desc = _CRASH_CODES_WIN.get(returncode)
        if desc:
            return desc
        if returncode < 0:
            return f"NTSTATUS 0x{returncode & 0xFFFFFFFF:08X}"
        return None
    # Unix: negative returncode means killed by signal
    if returncode < 0:
        sig_num = -returncode
        try:
            import signal
            return f"{signal.Signals(sig_num).name} (signal {sig_num})"
        except (ValueError, AttributeError):
            return f"signal {sig_num}"
    return None


def _forward_output(data: bytes, tool_label: str, stream_name: str,
                    level: int, max_lines: int = 120) -> None:
    """Log subprocess output line-by-line at the given level."""
    text = (data or b"").decode("utf-8", errors="replace")
    if not text.strip():
        return
    lines = text.splitlines()
    if len(lines) > max_lines:
        omitted = len(lines) - max_lines
        logger.log(level, "[%s] ... %d earlier %s lines omitted",
                   tool_label, omitted, stream_name)
        lines = lines[-max_lines:]
    for line in lines:
        if len(line) > 500:
            line = line[:500] + "..."
        logger.log(level, "[%s] %s: %s", tool_label, stream_name, line)


def _write_file(path: str, data: bytes) -> None:
    with open(path, "wb") as f:
        f.write(data)


def _read_file(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


class EncoderInvoker:
    """Compress single images with the encoder chosen by the format policy."""

    def __init__(self, workspace: TempWorkspace, options: CompressionOptions,
                 tool_config: Optional[ToolConfig] = None):
        """Bind the run's workspace, options and encoder settings."""
        self.workspace = workspace
        self.options = options
        self.tool_config = tool_config or ToolConfig()
        self.policy = get_policy(options.format)
        # Resolved once per run, not once per image
        self.executable = resolve_tool(self.policy.tool, self.tool_config)

    async def compress(self, source: Union[bytes, str], transparent: bool,
                       extension: Optional[str] = None) -> CompressedResult:
        """Compress raw bytes (written to the workspace first) or an existing file."""
        if isinstance(source, (bytes, bytearray, memoryview)):
            if not extension:
                raise ValueError("extension is required when compressing raw bytes")
            return await self.compress_bytes(bytes(source), extension, transparent)
        return await self.compress_file(os.fspath(source), transparent)

    async def compress_bytes(self, data: bytes, extension: str,
                             transparent: bool) -> CompressedResult:
        """Write *data* into the workspace and compress it."""
        input_path = self.workspace.new_path(extension)
        await asyncio.to_thread(_write_file, input_path, data)
        return await self.compress_file(input_path, transparent)

    async def compress_file(self, input_path: str, transparent: bool) -> CompressedResult:
        """Compress an existing file in place, without copying it."""
        extension = self.options.format.container_extension
        output_path = self.workspace.new_path(extension)
        invocation = build_invocation(
            self.policy, input_path, output_path, self.options, transparent,
            self.tool_config, executable=self.executable,
        )
        await self.run(invocation, source_info=input_path)

        try:
            buffer = await asyncio.to_thread(_read_file, output_path)
        except OSError as exc:
            raise ToolExecutionError(
                f"{self.policy.tool} exited successfully but its output "
                f"{output_path} could not be read: {exc}",
                tool=self.policy.tool, returncode=0, os_error=exc,
            ) from exc
        return CompressedResult(buffer=buffer, extension=extension)

    async def run(self, invocation: EncoderInvocation, source_info: str) -> None:
        """Spawn the encoder and wait for it; no timeout, no retries."""
        tool_label = os.path.basename(invocation.executable) or self.policy.tool
        logger.debug("Running %s: %s", tool_label, " ".join(invocation.command))
        try:
            proc = await asyncio.create_subprocess_exec(
                invocation.executable, *invocation.arguments,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.error("%s could not be started (%s): %s",
                         tool_label, invocation.executable, exc)
            raise ToolExecutionError(
                f"Failed to start {tool_label} ({invocation.executable}): {exc}",
                tool=tool_label, os_error=exc,
            ) from exc

        try:
            stdout, stderr = await proc.communicate()
        except asyncio.CancelledError:
            # The workspace is removed once this task settles; the encoder
            # must not outlive it.
            if proc.returncode is None:
                logger.warning("Cancelled; killing %s (pid %d)", tool_label, proc.pid)
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                await proc.wait()
            raise
        returncode = proc.returncode
        if returncode == 0:
            _forward_output(stdout, tool_label, "stdout", logging.DEBUG)
            _forward_output(stderr, tool_label, "stderr", logging.DEBUG)
            return

        _forward_output(stdout, tool_label, "stdout", logging.ERROR)
        _forward_output(stderr, tool_label, "stderr", logging.ERROR)
        crash = _is_crash_code(returncode)
        if crash:
            message = (
                f"{tool_label} crashed processing {source_info}: "
                f"{crash} (exit code {returncode})"
            )
        else:
            message = (
                f"Converter tool {tool_label} exited with an error code of "
                f"{returncode} for {source_info}"
            )
        logger.error(message)
        raise ToolExecutionError(message, tool=tool_label, returncode=returncode)
