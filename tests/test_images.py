import logging

import numpy as np
import pytest
from PIL import Image as PILImage

from errors import BitmapFormatError, UnsupportedFormatError
from images import (
    HEADER_SIZE,
    BitmapHeader,
    BitmapImage,
    ImageLoader,
    ImageWriter,
    load,
    row_stride,
    save,
)


@pytest.mark.parametrize("width", range(1, 14))
@pytest.mark.parametrize("bits", [8, 24])
def test_row_stride_is_padded_to_four_bytes(width, bits):
    stride = row_stride(width, bits)
    assert stride % 4 == 0
    assert stride >= width * bits // 8
    assert stride - width * bits // 8 < 4


def test_header_fields_are_decoded(bitmap_file, gray_plane):
    image = load(bitmap_file(gray_plane))
    header = image.header

    assert header.signature == b"BM"
    assert header.width == 5
    assert header.height == 3
    assert header.bit_count == 8
    assert header.header_size == 40
    assert header.data_offset == 54 + 1024
    assert header.image_size == 8 * 3
    assert header.file_size == 54 + 1024 + 24


def test_8bit_layout(bitmap_file, gray_plane):
    image = load(bitmap_file(gray_plane))

    assert image.row_stride == 8
    assert image.pixels.shape == (3, 8)
    assert image.palette.shape == (256, 4)
    assert image.channels == 1
    np.testing.assert_array_equal(image.plane(), gray_plane)


def test_24bit_layout(bitmap_file, color_plane):
    image = load(bitmap_file(color_plane))

    assert image.bits_per_pixel == 24
    assert image.row_stride == 16
    assert image.palette is None
    np.testing.assert_array_equal(image.plane(), color_plane)


@pytest.mark.parametrize("padding_byte", [0, 0xAB])
def test_round_trip_8bit_is_byte_exact(tmp_path, bitmap_file, gray_plane, padding_byte):
    source = bitmap_file(gray_plane, padding_byte=padding_byte)
    target = tmp_path / "copy.bmp"

    save(target, load(source))

    assert target.read_bytes() == source.read_bytes()


def test_round_trip_24bit_is_byte_exact(tmp_path, bitmap_file, color_plane):
    source = bitmap_file(color_plane, padding_byte=0x7F)
    target = tmp_path / "copy.bmp"

    ImageWriter(target).save(ImageLoader(source).load())

    assert target.read_bytes() == source.read_bytes()


@pytest.mark.parametrize("mode, size", [("L", (7, 3)), ("RGB", (6, 4)), ("RGB", (3, 5))])
def test_round_trip_of_pillow_written_files(tmp_path, mode, size):
    rng = np.random.default_rng(7)
    shape = (size[1], size[0]) if mode == "L" else (size[1], size[0], 3)
    source = tmp_path / "pillow.bmp"
    PILImage.fromarray(rng.integers(0, 256, size=shape, dtype=np.uint8)).convert(mode).save(source)
    target = tmp_path / "copy.bmp"

    save(target, load(source))

    assert target.read_bytes() == source.read_bytes()


def test_decoded_pixels_agree_with_pillow(tmp_path):
    rng = np.random.default_rng(3)
    rgb = rng.integers(0, 256, size=(4, 7, 3), dtype=np.uint8)
    source = tmp_path / "rgb.bmp"
    PILImage.fromarray(rgb).save(source)

    image = load(source)

    # stored bottom-up, BGR
    np.testing.assert_array_equal(image.plane()[::-1, :, ::-1], rgb)
    np.testing.assert_array_equal(np.asarray(image.to_pil()), rgb)


def test_indexed_export_agrees_with_pillow(bitmap_file, gray_plane):
    path = bitmap_file(gray_plane)

    ours = load(path).to_pil()

    assert ours.mode == "P"
    with PILImage.open(path) as theirs:
        np.testing.assert_array_equal(
            np.asarray(ours.convert("RGB")), np.asarray(theirs.convert("RGB"))
        )


def test_missing_file_raises_os_error(tmp_path):
    with pytest.raises(FileNotFoundError):
        load(tmp_path / "missing.bmp")


def test_unwritable_target_raises_os_error(tmp_path, bitmap_file, gray_plane):
    image = load(bitmap_file(gray_plane))
    with pytest.raises(OSError):
        save(tmp_path / "no" / "such" / "dir.bmp", image)


@pytest.mark.parametrize("bits", [1, 4, 16, 32])
def test_unsupported_bit_depth(bitmap_file, bits):
    path = bitmap_file(np.zeros((2, 2), dtype=np.uint8), bit_count=bits)
    with pytest.raises(UnsupportedFormatError):
        load(path)


def test_short_header(tmp_path):
    path = tmp_path / "short.bmp"
    path.write_bytes(b"BM" + bytes(10))
    with pytest.raises(BitmapFormatError):
        load(path)


def test_truncated_pixel_data_is_zero_filled(tmp_path, bitmap_file, gray_plane, caplog):
    full = bitmap_file(gray_plane, padding_byte=0x11)
    truncated = tmp_path / "truncated.bmp"
    truncated.write_bytes(full.read_bytes()[:-5])

    with caplog.at_level(logging.WARNING, logger="images"):
        image = load(truncated)

    assert "truncated" in caplog.text
    assert image.pixels.shape == (3, 8)
    assert image.pixels[-1, -5:].tolist() == [0] * 5
    np.testing.assert_array_equal(image.plane()[:2], gray_plane[:2])


def test_bad_signature_is_only_a_warning(bitmap_file, gray_plane, caplog):
    path = bitmap_file(gray_plane, signature=b"XX")
    with caplog.at_level(logging.WARNING, logger="images"):
        image = load(path)
    assert "signature" in caplog.text
    assert image.header.signature == b"XX"


def test_plane_is_read_only(bitmap_file, gray_plane):
    image = load(bitmap_file(gray_plane))
    with pytest.raises(ValueError):
        image.plane()[0, 0] = 1


def test_derive_allocates_fresh_zero_padded_buffer(bitmap_file, gray_plane):
    source = load(bitmap_file(gray_plane, padding_byte=0xEE))
    before = source.pixels.copy()

    derived = source.derive(255 - source.plane())

    np.testing.assert_array_equal(source.pixels, before)
    assert not np.shares_memory(derived.pixels, source.pixels)
    assert not np.shares_memory(derived.palette, source.palette)
    assert derived.header == source.header
    assert (derived.pixels[:, 5:] == 0).all()
    np.testing.assert_array_equal(derived.plane(), 255 - gray_plane)


def test_copy_keeps_padding(bitmap_file, gray_plane):
    source = load(bitmap_file(gray_plane, padding_byte=0xEE))
    duplicate = source.copy()
    np.testing.assert_array_equal(duplicate.pixels, source.pixels)
    assert not np.shares_memory(duplicate.pixels, source.pixels)


def test_header_bytes_survive_unchanged(bitmap_file, gray_plane):
    path = bitmap_file(gray_plane)
    raw = path.read_bytes()[:HEADER_SIZE]

    header = BitmapHeader.from_bytes(raw)

    assert header.to_bytes() == raw


def test_header_replace_only_touches_named_fields(bitmap_file, gray_plane):
    raw = bitmap_file(gray_plane).read_bytes()[:HEADER_SIZE]
    header = BitmapHeader.from_bytes(raw)

    resized = header.replace(width=9, height=4)
    rewritten = resized.to_bytes()

    assert BitmapHeader.from_bytes(rewritten).width == 9
    assert BitmapHeader.from_bytes(rewritten).height == 4
    assert rewritten[:18] == raw[:18]
    assert rewritten[26:] == raw[26:]

    with pytest.raises(TypeError):
        header.replace(planes=2)


def test_with_dimensions_updates_size_fields():
    header = BitmapHeader.build(5, 3, 8)

    rotated = header.with_dimensions(3, 5)

    assert (rotated.width, rotated.height) == (3, 5)
    assert rotated.image_size == 4 * 5
    assert rotated.file_size == 54 + 1024 + 20


def test_from_array_builds_a_loadable_bitmap(tmp_path):
    plane = np.arange(12, dtype=np.uint8).reshape(3, 4, 1).repeat(3, axis=2)
    image = BitmapImage.from_array(plane)
    path = save(tmp_path / "built.bmp", image)

    reloaded = load(path)

    assert reloaded.header == image.header
    np.testing.assert_array_equal(reloaded.plane(), plane)
    with PILImage.open(path) as pil_image:
        assert pil_image.size == (4, 3)


def test_invariants_are_checked():
    header = BitmapHeader.build(5, 2, 8)
    with pytest.raises(BitmapFormatError):
        BitmapImage(header=header, pixels=np.zeros((2, 5), dtype=np.uint8))
    with pytest.raises(BitmapFormatError):
        BitmapImage(header=header, pixels=np.zeros((2, 8), dtype=np.uint8))

    rgb_header = BitmapHeader.build(5, 2, 24)
    with pytest.raises(BitmapFormatError):
        BitmapImage(
            header=rgb_header,
            pixels=np.zeros((2, 16), dtype=np.uint8),
            palette=np.zeros((256, 4), dtype=np.uint8),
        )
