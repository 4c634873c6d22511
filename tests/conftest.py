"""Shared test fixtures."""

import os
import shutil
import stat
import struct
import sys
import tempfile

import numpy as np
import pytest

from KTXForge.core import encode_png


KTX_IDENTIFIER = bytes([
    0xAB, 0x4B, 0x54, 0x58, 0x20, 0x31, 0x31, 0xBB, 0x0D, 0x0A, 0x1A, 0x0A,
])


@pytest.fixture
def tmp_dir():
    d = tempfile.mkdtemp()
    yield d
    shutil.rmtree(d, ignore_errors=True)


def build_ktx(internal_format, width, height, data=b"", *, mip_levels=1,
              key_value=b"", gl_type=0, gl_type_size=1, gl_format=0,
              base_internal_format=None, depth=0, array_elements=0, faces=1,
              endianness=0x04030201, image_size=None, extra=b""):
    """Return a little-endian KTX 1.1 container with one level-0 image."""
    if base_internal_format is None:
        base_internal_format = gl_format
    header = KTX_IDENTIFIER + struct.pack(
        "<13I",
        endianness,
        gl_type, gl_type_size, gl_format,
        internal_format, base_internal_format,
        width, height, depth,
        array_elements, faces, mip_levels,
        len(key_value),
    )
    size = len(data) if image_size is None else image_size
    return header + key_value + struct.pack("<I", size) + data + extra


def make_pixels(width=8, height=8, channels=3, alpha=255):
    """Return deterministic uint8 pixels, optionally with a constant alpha."""
    rng = np.random.default_rng(1234)
    rgb = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
    if channels == 3:
        return rgb
    a = np.full((height, width, 1), alpha, dtype=np.uint8)
    return np.concatenate([rgb, a], axis=2)


def save_test_png(path, width=8, height=8, channels=3, alpha=255):
    """Write a test PNG image and return its pixels."""
    pixels = make_pixels(width, height, channels, alpha)
    with open(path, "wb") as f:
        f.write(encode_png(pixels))
    return pixels


_FAKE_ETCTOOL = '''#!{python}
import os
import struct
import sys

args = sys.argv[1:]
with open(os.path.join(os.path.dirname(os.path.abspath(__file__)), "calls.log"), "a") as log:
    log.write(" ".join(args) + "\\n")
if {exit_code}:
    sys.stderr.write("fake encoder failure\\n")
    sys.exit({exit_code})

src = args[0]
out = args[args.index("-output") + 1]
with open(src, "rb") as f:
    data = f.read()
width, height = struct.unpack(">II", data[16:24])
size = ((width + 3) // 4) * ((height + 3) // 4) * 8
ident = bytes([0xAB, 0x4B, 0x54, 0x58, 0x20, 0x31, 0x31, 0xBB, 0x0D, 0x0A, 0x1A, 0x0A])
header = ident + struct.pack(
    "<13I", 0x04030201, 0, 1, 0, 0x8D64, 0, width, height, 0, 0, 1, 1, 0)
with open(out, "wb") as f:
    f.write(header + struct.pack("<I", size) + bytes(size))
'''


def write_fake_etctool(directory, exit_code=0, name="EtcTool"):
    """Write an executable EtcTool stand-in that emits a real ETC1 KTX file.

    Every invocation appends its arguments to ``calls.log`` beside the
    script. A non-zero *exit_code* makes it fail without writing output.
    """
    path = os.path.join(directory, name)
    with open(path, "w", encoding="utf-8") as f:
        f.write(_FAKE_ETCTOOL.format(python=sys.executable, exit_code=int(exit_code)))
    os.chmod(path, os.stat(path).st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def read_calls(directory):
    """Return the argument lines logged by fake encoders in *directory*."""
    log_path = os.path.join(directory, "calls.log")
    if not os.path.exists(log_path):
        return []
    with open(log_path, "r", encoding="utf-8") as f:
        return [line.split() for line in f.read().splitlines() if line]
