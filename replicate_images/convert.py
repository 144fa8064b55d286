"""WEBP conversion of downloaded image bytes."""
from __future__ import annotations

import io
from pathlib import Path
from typing import Tuple

from PIL import Image, UnidentifiedImageError

from .errors import ImageConversionFailed, PersistFailed


def is_webp(data: bytes) -> bool:
    # RIFF....WEBP
    return len(data) >= 12 and data[0:4] == b"RIFF" and data[8:12] == b"WEBP"


def to_webp(data: bytes) -> Tuple[bytes, bool]:
    """Return WEBP bytes and whether a conversion happened."""
    if is_webp(data):
        return data, False
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise ImageConversionFailed(f"failed to decode image: {e}") from e
    if img.mode not in ("RGB", "RGBA"):
        img = img.convert("RGBA" if "A" in img.getbands() else "RGB")
    buf = io.BytesIO()
    try:
        img.save(buf, format="WEBP")
    except (OSError, ValueError) as e:
        raise ImageConversionFailed(f"failed to encode webp: {e}") from e
    return buf.getvalue(), True


def save_webp(data: bytes, path: Path) -> None:
    converted, _ = to_webp(data)
    try:
        Path(path).write_bytes(converted)
    except OSError as e:
        raise PersistFailed(f"failed to write {path}: {e}") from e
