"""
Shared fixtures: hand-packed bitmap files, independent of the codec under test.
"""
import struct

import numpy as np
import pytest


def pack_bitmap(plane, padding_byte=0, bit_count=None, signature=b"BM"):
    """Bytes of an uncompressed bitmap whose stored rows are ``plane``."""
    plane = np.asarray(plane, dtype=np.uint8)
    height, width = plane.shape[:2]
    if bit_count is None:
        bit_count = 8 if plane.ndim == 2 else 24

    stride = ((width * bit_count + 31) // 32) * 4
    palette_size = 1024 if bit_count <= 8 else 0
    offset = 54 + palette_size
    image_size = stride * height

    file_header = struct.pack("<2sIHHI", signature, offset + image_size, 0, 0, offset)
    info_header = struct.pack(
        "<IiiHHIIiiII",
        40, width, height, 1, bit_count, 0, image_size, 2835, 2835,
        256 if palette_size else 0, 0,
    )

    palette = b""
    if palette_size:
        palette = b"".join(bytes((level, level, level, 0)) for level in range(256))

    meaningful = plane.reshape(height, -1)
    padding = bytes([padding_byte]) * (stride - meaningful.shape[1])
    data = b"".join(row.tobytes() + padding for row in meaningful)

    return file_header + info_header + palette + data


@pytest.fixture
def bitmap_file(tmp_path):
    """Factory: write a packed bitmap to tmp_path and return its path."""
    counter = {"n": 0}

    def write(plane, name=None, **kwargs):
        counter["n"] += 1
        path = tmp_path / (name or f"image_{counter['n']}.bmp")
        path.write_bytes(pack_bitmap(plane, **kwargs))
        return path

    return write


@pytest.fixture
def gray_plane():
    # width 5 -> stride 8, three bytes of padding per row
    return np.arange(15, dtype=np.uint8).reshape(3, 5) * 10


@pytest.fixture
def color_plane():
    # width 5 -> 15 meaningful bytes, stride 16
    plane = np.zeros((2, 5, 3), dtype=np.uint8)
    plane[:, :, 0] = 10
    plane[:, :, 1] = 20
    plane[:, :, 2] = 30
    plane[1, 4] = (200, 150, 100)
    return plane
