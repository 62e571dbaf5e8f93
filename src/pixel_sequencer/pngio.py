"""Bridge between PNG files, Pillow images and the package's buffers.

Pillow reads and writes every 8-bit image. It silently narrows 16-bit
RGB(A) PNGs on load, so those are read again with pypng, which keeps the full
sample depth.
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import png
from PIL import Image

from .buffers import (
    IndexedImage,
    NarrowBuffer,
    Palette,
    WideBuffer,
    check_dimensions,
    flatten_palette,
)
from .errors import ValidationError

DEFAULT_COMPRESS_LEVEL = 9
WIDE_BITDEPTH = 16


@dataclass
class LoadedImage:
    """A decoded input file: the Pillow image plus its 16-bit samples, if any."""

    path: Path
    image: Image.Image
    wide: Optional[WideBuffer] = None

    @property
    def is_wide(self) -> bool:
        return self.wide is not None

    @property
    def is_indexed(self) -> bool:
        return self.image.mode == "P"

    def describe(self) -> str:
        depth = "16-bit" if self.is_wide else self.image.mode
        width, height = self.image.size
        return f"{self.path.name} ({depth}): {width}x{height}"


def read_png_bitdepth(path: Path) -> int:
    with open(path, "rb") as f:
        reader = png.Reader(file=f)
        try:
            reader.preamble()
        except png.Error as exc:
            raise ValidationError(f"{path} is not a readable PNG: {exc}") from exc
        return reader.bitdepth


def read_wide(path: Path) -> WideBuffer:
    """Read a 16-bit PNG into a :class:`WideBuffer` without losing precision.

    Malformed data raises :class:`ValidationError`; rows are decoded lazily,
    so the whole read sits inside the check.
    """

    pix: List[int] = []
    with open(path, "rb") as f:
        try:
            width, height, rows, info = png.Reader(file=f).asRGBA()
            if info["bitdepth"] != WIDE_BITDEPTH:
                raise ValidationError(f"{path} is not a 16-bit PNG (bit depth {info['bitdepth']})")
            for row in rows:
                pix.extend(row)
        except png.Error as exc:
            raise ValidationError(f"{path} is not a readable PNG: {exc}") from exc
    return WideBuffer(width, height, pix)


def load_image(path: str | Path) -> LoadedImage:
    """Open ``path`` and, for 16-bit PNGs, also load the full-depth samples.

    I/O failures surface as :class:`OSError` (Pillow raises its
    ``UnidentifiedImageError`` subclass for unreadable data).
    """

    path = Path(path)
    with Image.open(path) as img:
        img.load()
        image = img.copy()
        image_format = img.format

    check_dimensions(*image.size)

    wide = None
    if image_format == "PNG" and read_png_bitdepth(path) == WIDE_BITDEPTH:
        wide = read_wide(path)
    return LoadedImage(path=path, image=image, wide=wide)


def narrow_from_image(image: Image.Image) -> NarrowBuffer:
    rgba = image if image.mode == "RGBA" else image.convert("RGBA")
    width, height = rgba.size
    return NarrowBuffer(width, height, rgba.tobytes())


def image_from_narrow(pixels: NarrowBuffer) -> Image.Image:
    return Image.frombytes("RGBA", (pixels.width, pixels.height), pixels.pix)


def palette_from_image(image: Image.Image) -> Palette:
    """Return the RGBA palette of a ``P`` image.

    In-memory palettes may already be RGBA. Palettes loaded from PNG are RGB,
    with per-entry alpha kept in ``info["transparency"]`` (``bytes`` for a
    tRNS table, ``int`` for a single transparent entry).
    """

    if image.palette is not None and image.palette.mode == "RGBA":
        flat = image.getpalette("RGBA") or []
        return [tuple(flat[i : i + 4]) for i in range(0, len(flat), 4)]  # type: ignore[misc]

    flat = image.getpalette() or []
    count = len(flat) // 3
    alpha = [255] * count
    transparency = image.info.get("transparency")
    if isinstance(transparency, (bytes, bytearray)):
        for index, value in enumerate(transparency[:count]):
            alpha[index] = value
    elif isinstance(transparency, int) and 0 <= transparency < count:
        alpha[transparency] = 0
    return [
        (flat[i * 3], flat[i * 3 + 1], flat[i * 3 + 2], alpha[i]) for i in range(count)
    ]


def indexed_from_image(image: Image.Image, max_colors: Optional[int] = None) -> IndexedImage:
    """Extract palette and indices from a ``P`` image.

    Pillow may pad a palette beyond the entries actually produced; with
    ``max_colors`` given the palette is cut back to that many entries once all
    indices are known to fit.
    """

    if image.mode != "P":
        raise ValidationError(f"Expected a palette-indexed image, got mode {image.mode}")
    width, height = image.size
    indices = image.tobytes()
    palette = palette_from_image(image)
    if max_colors is not None and len(palette) > max_colors:
        highest = max(indices)
        if highest >= max_colors:
            raise ValidationError(
                f"Image uses palette index {highest}; at most {max_colors} colors are allowed"
            )
        palette = palette[:max_colors]
    return IndexedImage(width, height, palette, indices)


def image_from_indexed(indexed: IndexedImage) -> Image.Image:
    """Build a ``P`` image with an RGB palette and a tRNS-style alpha table.

    Pillow sizes the PNG PLTE chunk from an RGB palette, so an RGBA palette
    would be written with extra entries.
    """

    image = Image.frombytes("P", indexed.size, bytes(indexed.indices))
    image.putpalette(flatten_palette([color[:3] for color in indexed.palette]))
    alpha = bytes(color[3] for color in indexed.palette)
    if any(value != 255 for value in alpha):
        image.info["transparency"] = alpha
    return image


def encode_png(image: Image.Image, compress_level: int = DEFAULT_COMPRESS_LEVEL) -> bytes:
    """Encode ``image`` as PNG into memory and return the bytes."""

    buffer = io.BytesIO()
    image.save(buffer, format="PNG", compress_level=compress_level)
    return buffer.getvalue()


def encode_indexed(indexed: IndexedImage, compress_level: int = DEFAULT_COMPRESS_LEVEL) -> bytes:
    return encode_png(image_from_indexed(indexed), compress_level)


def encode_narrow(pixels: NarrowBuffer, compress_level: int = DEFAULT_COMPRESS_LEVEL) -> bytes:
    return encode_png(image_from_narrow(pixels), compress_level)
