import io
import struct
import zlib

import pytest
from PIL import Image

from replicate_images.convert import is_webp, save_webp, to_webp
from replicate_images.errors import ImageConversionFailed, PersistFailed


def _png_bytes(mode="RGB"):
    buf = io.BytesIO()
    Image.new(mode, (8, 8), color=0).save(buf, format="PNG")
    return buf.getvalue()


def test_png_is_converted(tmp_path):
    out = tmp_path / "x.webp"
    save_webp(_png_bytes(), out)
    data = out.read_bytes()
    assert is_webp(data)
    with Image.open(out) as img:
        assert img.format == "WEBP"
        assert img.size == (8, 8)


def test_palette_image_is_converted():
    data, converted = to_webp(_png_bytes(mode="P"))
    assert converted and is_webp(data)


def test_webp_passes_through_unchanged():
    src, _ = to_webp(_png_bytes())
    data, converted = to_webp(src)
    assert data == src
    assert not converted


def test_garbage_bytes_fail():
    with pytest.raises(ImageConversionFailed):
        to_webp(b"definitely not an image")


def test_write_failure(tmp_path):
    with pytest.raises(PersistFailed):
        save_webp(_png_bytes(), tmp_path / "missing-dir" / "x.webp")


def oversized_png():
    """A valid 8x8 PNG whose header claims 20000x20000 pixels."""
    data = bytearray(_png_bytes())
    data[16:24] = struct.pack(">II", 20000, 20000)
    # IHDR type+payload is bytes 12..29, CRC follows
    data[29:33] = struct.pack(">I", zlib.crc32(bytes(data[12:29])) & 0xFFFFFFFF)
    return bytes(data)


def test_decompression_bomb_is_a_conversion_failure(tmp_path):
    with pytest.raises(ImageConversionFailed, match="failed to decode image"):
        to_webp(oversized_png())
    with pytest.raises(ImageConversionFailed):
        save_webp(oversized_png(), tmp_path / "bomb.webp")
    assert not (tmp_path / "bomb.webp").exists()
