"""Byte-exact reader and writer for uncompressed 8-bit and 24-bit bitmaps.

The on-disk layout is a 54 byte header (14 byte file header followed by a
40 byte info header), a 256 entry palette for indexed images, and the pixel
rows, each padded to a multiple of four bytes.  Rows are kept in the order
they are stored in; nothing in here flips a bottom-up bitmap.
"""
from __future__ import annotations

import dataclasses
import logging
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import numpy as np
from PIL import Image as PILImage

from errors import BitmapFormatError, UnsupportedFormatError

logger = logging.getLogger(__name__)

HEADER_SIZE = 54
PALETTE_ENTRIES = 256
PALETTE_SIZE = PALETTE_ENTRIES * 4
SUPPORTED_BIT_DEPTHS = (8, 24)
SIGNATURE = b"BM"

# name -> (offset, little-endian layout)
_HEADER_FIELDS = {
    "signature": (0, struct.Struct("<2s")),
    "file_size": (2, struct.Struct("<I")),
    "data_offset": (10, struct.Struct("<I")),
    "header_size": (14, struct.Struct("<I")),
    "width": (18, struct.Struct("<i")),
    "height": (22, struct.Struct("<i")),
    "bit_count": (28, struct.Struct("<H")),
    "image_size": (34, struct.Struct("<I")),
}

_PLANES = (26, struct.Struct("<H"))
_COLORS_USED = (46, struct.Struct("<I"))

PathLike = Union[str, Path]


def row_stride(width: int, bits_per_pixel: int) -> int:
    """Bytes per stored scanline, padding included."""
    return ((width * bits_per_pixel + 31) // 32) * 4


@dataclass(frozen=True)
class BitmapHeader:
    """
    Decoded view of the 54 header bytes.

    Only the named fields are ever rewritten; every other byte of ``raw``
    (planes, compression, resolution, colour counts) is written back as read.
    """
    raw: bytes
    signature: bytes
    file_size: int
    data_offset: int
    header_size: int
    width: int
    height: int
    bit_count: int
    image_size: int

    @classmethod
    def from_bytes(cls, raw: bytes) -> "BitmapHeader":
        raw = bytes(raw)
        if len(raw) < HEADER_SIZE:
            raise BitmapFormatError(
                f"Bitmap header needs {HEADER_SIZE} bytes, got {len(raw)}."
            )
        raw = raw[:HEADER_SIZE]
        values = {
            name: layout.unpack_from(raw, offset)[0]
            for name, (offset, layout) in _HEADER_FIELDS.items()
        }
        return cls(raw=raw, **values)

    @classmethod
    def build(cls, width: int, height: int, bit_count: int) -> "BitmapHeader":
        """Header for a freshly created, uncompressed bitmap."""
        if bit_count not in SUPPORTED_BIT_DEPTHS:
            raise UnsupportedFormatError(f"Unsupported bit depth: {bit_count}.")

        data_offset = HEADER_SIZE + (PALETTE_SIZE if bit_count <= 8 else 0)
        image_size = row_stride(width, bit_count) * height

        buffer = bytearray(HEADER_SIZE)
        offset, layout = _PLANES
        layout.pack_into(buffer, offset, 1)
        if bit_count <= 8:
            offset, layout = _COLORS_USED
            layout.pack_into(buffer, offset, PALETTE_ENTRIES)

        header = cls.from_bytes(bytes(buffer))
        return header.replace(
            signature=SIGNATURE,
            file_size=data_offset + image_size,
            data_offset=data_offset,
            header_size=HEADER_SIZE - 14,
            width=width,
            height=height,
            bit_count=bit_count,
            image_size=image_size,
        )

    def to_bytes(self) -> bytes:
        buffer = bytearray(self.raw)
        for name, (offset, layout) in _HEADER_FIELDS.items():
            layout.pack_into(buffer, offset, getattr(self, name))
        return bytes(buffer)

    def replace(self, **fields) -> "BitmapHeader":
        unknown = set(fields) - set(_HEADER_FIELDS)
        if unknown:
            raise TypeError(f"Not a header field: {', '.join(sorted(unknown))}")
        updated = dataclasses.replace(self, **fields)
        # keep raw in step so the header compares equal to its re-read self
        return dataclasses.replace(updated, raw=updated.to_bytes())

    def with_dimensions(self, width: int, height: int) -> "BitmapHeader":
        """Rewrite width/height, and the size fields when they were populated."""
        fields = {"width": width, "height": height}
        image_size = row_stride(width, self.bit_count) * height
        if self.image_size:
            fields["image_size"] = image_size
        if self.file_size:
            palette = PALETTE_SIZE if self.bit_count <= 8 else 0
            fields["file_size"] = HEADER_SIZE + palette + image_size
        return self.replace(**fields)


def grayscale_palette() -> np.ndarray:
    levels = np.arange(PALETTE_ENTRIES, dtype=np.uint8)
    palette = np.zeros((PALETTE_ENTRIES, 4), dtype=np.uint8)
    palette[:, 0] = palette[:, 1] = palette[:, 2] = levels
    return palette


@dataclass
class BitmapImage:
    """
    Pixel buffer plus the metadata needed to write it back out.

    ``pixels`` has shape (height, row_stride): every stored row including its
    padding.  ``palette`` is a (256, 4) BGRX table for 8-bit images and None
    for 24-bit ones.
    """
    header: BitmapHeader
    pixels: np.ndarray
    palette: Optional[np.ndarray] = None
    path: Optional[Path] = None

    def __post_init__(self):
        if self.header.bit_count not in SUPPORTED_BIT_DEPTHS:
            raise UnsupportedFormatError(
                f"Unsupported bit depth: {self.header.bit_count}."
            )
        if self.header.width <= 0 or self.header.height <= 0:
            raise UnsupportedFormatError(
                f"Unsupported dimensions {self.header.width}x{self.header.height}."
            )

        expected = (self.height, self.row_stride)
        if self.pixels.dtype != np.uint8 or self.pixels.shape != expected:
            raise BitmapFormatError(
                f"Pixel buffer must be uint8 {expected}, got "
                f"{self.pixels.dtype} {self.pixels.shape}."
            )

        if self.bits_per_pixel == 8:
            if self.palette is None or self.palette.shape != (PALETTE_ENTRIES, 4):
                raise BitmapFormatError("An 8-bit bitmap needs a 256 entry palette.")
            if self.palette.dtype != np.uint8:
                raise BitmapFormatError("Palette entries must be uint8.")
        elif self.palette is not None:
            raise BitmapFormatError("A 24-bit bitmap does not carry a palette.")

    @property
    def width(self) -> int:
        return self.header.width

    @property
    def height(self) -> int:
        return self.header.height

    @property
    def bits_per_pixel(self) -> int:
        return self.header.bit_count

    @property
    def bytes_per_pixel(self) -> int:
        return self.bits_per_pixel // 8

    @property
    def channels(self) -> int:
        return self.bytes_per_pixel

    @property
    def row_stride(self) -> int:
        return row_stride(self.width, self.bits_per_pixel)

    @classmethod
    def from_plane(
        cls,
        plane: np.ndarray,
        header: BitmapHeader,
        palette: Optional[np.ndarray] = None,
    ) -> "BitmapImage":
        """Lay ``plane`` out in a fresh, zero padded buffer described by ``header``."""
        stride = row_stride(header.width, header.bit_count)
        meaningful = header.width * (header.bit_count // 8)

        plane = np.asarray(plane)
        if plane.size != header.height * meaningful:
            raise BitmapFormatError(
                f"Plane of shape {plane.shape} does not fit a "
                f"{header.width}x{header.height} {header.bit_count}-bit bitmap."
            )

        pixels = np.zeros((header.height, stride), dtype=np.uint8)
        pixels[:, :meaningful] = plane.reshape(header.height, meaningful)
        return cls(header=header, pixels=pixels, palette=palette)

    @classmethod
    def from_array(cls, plane: np.ndarray, palette: Optional[np.ndarray] = None) -> "BitmapImage":
        """
        New bitmap from an array: (H, W) becomes 8-bit indexed (grayscale
        palette unless one is given), (H, W, 3) becomes 24-bit BGR.
        """
        plane = np.asarray(plane, dtype=np.uint8)
        if plane.ndim == 2:
            header = BitmapHeader.build(plane.shape[1], plane.shape[0], 8)
            palette = grayscale_palette() if palette is None else np.array(palette, dtype=np.uint8)
        elif plane.ndim == 3 and plane.shape[2] == 3:
            header = BitmapHeader.build(plane.shape[1], plane.shape[0], 24)
            palette = None
        else:
            raise UnsupportedFormatError(f"Cannot build a bitmap from shape {plane.shape}.")
        return cls.from_plane(plane, header, palette)

    def plane(self) -> np.ndarray:
        """Read-only view of the meaningful pixels, (H, W) or (H, W, 3) BGR."""
        view = self.pixels[:, : self.width * self.bytes_per_pixel]
        if self.channels > 1:
            view = view.reshape(self.height, self.width, self.channels)
        view = view.view()
        view.flags.writeable = False
        return view

    def derive(self, plane: np.ndarray, header: Optional[BitmapHeader] = None) -> "BitmapImage":
        """New image with this image's metadata and ``plane`` as its pixels."""
        palette = None if self.palette is None else self.palette.copy()
        return BitmapImage.from_plane(plane, header or self.header, palette)

    def copy(self) -> "BitmapImage":
        palette = None if self.palette is None else self.palette.copy()
        return BitmapImage(
            header=self.header,
            pixels=self.pixels.copy(),
            palette=palette,
            path=self.path,
        )

    def to_pil(self) -> PILImage.Image:
        """
        Pillow image for previews.  Positive heights are stored bottom-up,
        so rows are flipped here to give Pillow its top-down order.
        """
        plane = np.asarray(self.plane())
        plane = np.ascontiguousarray(plane[::-1])
        size = (self.width, self.height)

        if self.channels == 1:
            pil_image = PILImage.frombytes("P", size, plane.tobytes())
            rgb = np.ascontiguousarray(self.palette[:, 2::-1])
            pil_image.putpalette(rgb.tobytes(), rawmode="RGB")
            return pil_image

        rgb = np.ascontiguousarray(plane[:, :, ::-1])
        return PILImage.frombytes("RGB", size, rgb.tobytes())


class ImageLoader:
    def __init__(self, path: PathLike):
        self.path = Path(path)
        self.image = None

    def load(self) -> BitmapImage:
        """
        Read header, palette (8-bit only) and ``row_stride * height`` pixel
        bytes, in that order.

        Raises:
            OSError: if the file cannot be opened.
            BitmapFormatError: if the header is shorter than 54 bytes.
            UnsupportedFormatError: for bit depths other than 8 and 24, or
                non-positive dimensions.
        """
        with open(self.path, "rb") as stream:
            header = BitmapHeader.from_bytes(stream.read(HEADER_SIZE))

            if header.signature != SIGNATURE:
                logger.warning("%s: unexpected signature %r", self.path, header.signature)
            if header.bit_count not in SUPPORTED_BIT_DEPTHS:
                raise UnsupportedFormatError(
                    f"{self.path}: unsupported bit depth {header.bit_count}."
                )
            if header.width <= 0 or header.height <= 0:
                raise UnsupportedFormatError(
                    f"{self.path}: unsupported dimensions {header.width}x{header.height}."
                )

            palette = None
            if header.bit_count <= 8:
                raw_palette = self._read(stream, PALETTE_SIZE, "palette")
                palette = np.frombuffer(raw_palette, dtype=np.uint8).reshape(PALETTE_ENTRIES, 4).copy()

            stride = row_stride(header.width, header.bit_count)
            data = self._read(stream, stride * header.height, "pixel data")

        pixels = np.frombuffer(data, dtype=np.uint8).reshape(header.height, stride).copy()
        self.image = BitmapImage(header=header, pixels=pixels, palette=palette, path=self.path)

        logger.debug(
            "Loaded %s: %dx%d, %d bpp, stride %d",
            self.path, header.width, header.height, header.bit_count, stride,
        )
        return self.image

    def _read(self, stream, size: int, what: str) -> bytes:
        data = stream.read(size)
        if len(data) < size:
            # Truncated files are not rejected; the missing tail reads as zeros.
            logger.warning(
                "%s: %s truncated, expected %d bytes, got %d",
                self.path, what, size, len(data),
            )
            data = data.ljust(size, b"\x00")
        return data


class ImageWriter:
    def __init__(self, path: PathLike):
        self.path = Path(path)

    def save(self, image: BitmapImage) -> Path:
        """Write header, palette (8-bit only) and the full padded pixel buffer."""
        with open(self.path, "wb") as stream:
            stream.write(image.header.to_bytes())
            if image.palette is not None:
                stream.write(image.palette.tobytes())
            stream.write(image.pixels.tobytes())

        logger.debug("Saved %s (%d bytes of pixel data)", self.path, image.pixels.nbytes)
        return self.path


def load(path: PathLike) -> BitmapImage:
    return ImageLoader(path).load()


def save(path: PathLike, image: BitmapImage) -> Path:
    return ImageWriter(path).save(image)
