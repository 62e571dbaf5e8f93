from __future__ import annotations

from pathlib import Path
from typing import Dict, List

import png
import pytest
from PIL import Image

from pixel_sequencer.buffers import IndexedImage, NarrowBuffer
from pixel_sequencer.errors import RemapError
from pixel_sequencer.pngio import image_from_indexed


class ExactPaletteRemapper:
    """Assigns palette slots in order of first appearance; never approximates."""

    name = "exact"

    def quantize(self, pixels: NarrowBuffer, max_colors: int) -> IndexedImage:
        slots: Dict[bytes, int] = {}
        indices = bytearray()
        for offset in range(0, len(pixels.pix), 4):
            color = pixels.pix[offset : offset + 4]
            if color not in slots:
                if len(slots) == max_colors:
                    raise RemapError(f"more than {max_colors} colors")
                slots[color] = len(slots)
            indices.append(slots[color])
        palette = [tuple(color) for color in slots]
        return IndexedImage(pixels.width, pixels.height, palette, bytes(indices))


def make_palette(count: int) -> List[tuple]:
    return [((i * 37) % 256, (i * 91) % 256, (i * 53) % 256, 255 - (i % 3) * 40) for i in range(count)]


def make_strip(frame_count: int, frame_width: int, frame_height: int, colors: int = 16) -> IndexedImage:
    """A frame strip whose frames drift slowly, like real animation."""

    indices = bytearray()
    for frame in range(frame_count):
        for y in range(frame_height):
            for x in range(frame_width):
                indices.append((x + y + frame) % colors)
    return IndexedImage(
        frame_width, frame_count * frame_height, make_palette(colors), bytes(indices)
    )


@pytest.fixture
def exact_remapper() -> ExactPaletteRemapper:
    return ExactPaletteRemapper()


@pytest.fixture
def strip() -> IndexedImage:
    return make_strip(4, 10, 8)


def save_indexed(indexed: IndexedImage, path: Path) -> Path:
    image_from_indexed(indexed).save(path, format="PNG")
    return path


def save_rgba(width: int, height: int, pix: bytes, path: Path) -> Path:
    Image.frombytes("RGBA", (width, height), pix).save(path, format="PNG")
    return path


def save_wide(width: int, height: int, pix: List[int], path: Path) -> Path:
    writer = png.Writer(width, height, bitdepth=16, greyscale=False, alpha=True)
    rows = [pix[y * width * 4 : (y + 1) * width * 4] for y in range(height)]
    with open(path, "wb") as f:
        writer.write(f, rows)
    return path
