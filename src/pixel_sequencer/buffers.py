"""Pixel, palette and index buffers shared by every pipeline stage."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .errors import ValidationError

RGBA = Tuple[int, int, int, int]
Palette = List[RGBA]

CHANNELS = 4
MAX_PALETTE_SIZE = 256


@dataclass
class WideBuffer:
    """RGBA pixels with 16 bits per channel, stored as a flat row-major list."""

    width: int
    height: int
    pix: Sequence[int]

    def __post_init__(self) -> None:
        check_dimensions(self.width, self.height)
        if len(self.pix) != self.width * self.height * CHANNELS:
            raise ValidationError(
                f"Wide buffer holds {len(self.pix)} samples, expected "
                f"{self.width * self.height * CHANNELS} for {self.width}x{self.height}"
            )


@dataclass
class NarrowBuffer:
    """Non-premultiplied RGBA8 pixels, stored as flat row-major bytes."""

    width: int
    height: int
    pix: bytes

    def __post_init__(self) -> None:
        check_dimensions(self.width, self.height)
        if len(self.pix) != self.width * self.height * CHANNELS:
            raise ValidationError(
                f"Pixel buffer holds {len(self.pix)} bytes, expected "
                f"{self.width * self.height * CHANNELS} for {self.width}x{self.height}"
            )

    def pixel(self, x: int, y: int) -> RGBA:
        offset = (y * self.width + x) * CHANNELS
        r, g, b, a = self.pix[offset : offset + CHANNELS]
        return (r, g, b, a)


@dataclass
class IndexedImage:
    """A palette plus one palette index per cell."""

    width: int
    height: int
    palette: Palette
    indices: bytes

    def __post_init__(self) -> None:
        check_dimensions(self.width, self.height)
        if len(self.indices) != self.width * self.height:
            raise ValidationError(
                f"Index buffer holds {len(self.indices)} cells, expected "
                f"{self.width * self.height} for {self.width}x{self.height}"
            )
        if len(self.palette) > MAX_PALETTE_SIZE:
            raise ValidationError(
                f"Palette has {len(self.palette)} colors; at most {MAX_PALETTE_SIZE} are allowed"
            )

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)


@dataclass(frozen=True)
class FrameGeometry:
    """Frame count and per-frame size of an animation strip."""

    frame_count: int
    frame_width: int
    frame_height: int

    @property
    def frame_pixels(self) -> int:
        return self.frame_width * self.frame_height

    @property
    def total(self) -> int:
        return self.frame_count * self.frame_pixels

    @property
    def strip_size(self) -> Tuple[int, int]:
        return (self.frame_width, self.frame_count * self.frame_height)

    @property
    def sequence_size(self) -> Tuple[int, int]:
        return (self.frame_count * self.frame_width, self.frame_height)

    @property
    def stream_size(self) -> Tuple[int, int]:
        return (self.frame_count, self.frame_pixels)

    def describe(self) -> str:
        return f"{self.frame_count} ({self.frame_width}x{self.frame_height})"


def check_dimensions(width: int, height: int) -> None:
    if width <= 0 or height <= 0:
        raise ValidationError(f"Image must not be empty (got {width}x{height})")


def check_frame_count(frame_count: int) -> None:
    if frame_count <= 0:
        raise ValidationError(f"Frame count must be a positive integer (got {frame_count})")


def strip_geometry(width: int, height: int, frame_count: int) -> FrameGeometry:
    """Split a vertical frame strip of ``width`` x ``height`` into frames."""

    check_dimensions(width, height)
    check_frame_count(frame_count)
    if height % frame_count != 0:
        raise ValidationError(
            f"Image height {height} is not evenly divisible by frame count {frame_count}"
        )
    return FrameGeometry(frame_count, width, height // frame_count)


def sequence_geometry(width: int, height: int, frame_count: int) -> FrameGeometry:
    """Recover the frame geometry of a sequence-layout image."""

    check_dimensions(width, height)
    check_frame_count(frame_count)
    if width % frame_count != 0:
        raise ValidationError(
            f"Image width {width} is not evenly divisible by frame count {frame_count}"
        )
    return FrameGeometry(frame_count, width // frame_count, height)


def stream_geometry(
    width: int,
    height: int,
    frame_width: int,
    frame_height: int,
    frame_count: Optional[int] = None,
) -> FrameGeometry:
    """Recover the frame geometry of a stream-layout raster.

    Without ``frame_count`` the raster must hold a whole number of frames and
    the count is derived from it. A widened raster from the width search ends
    in zero padding that can itself add up to whole frames, so decoding one
    needs the frame count; the leftover cells must then fit in the last
    raster row. Checking that they are all zero is up to the caller.
    """

    check_dimensions(width, height)
    if frame_width <= 0 or frame_height <= 0:
        raise ValidationError(
            f"Frame size must be positive (got {frame_width}x{frame_height})"
        )
    frame_pixels = frame_width * frame_height
    cells = width * height

    if frame_count is None:
        frame_count, leftover = divmod(cells, frame_pixels)
        if frame_count == 0 or leftover:
            raise ValidationError(
                f"Image {width}x{height} does not hold a whole number of "
                f"{frame_width}x{frame_height} frames"
            )
        return FrameGeometry(frame_count, frame_width, frame_height)

    check_frame_count(frame_count)
    padding = cells - frame_count * frame_pixels
    if padding < 0:
        raise ValidationError(
            f"Image {width}x{height} is too small for {frame_count} "
            f"{frame_width}x{frame_height} frames"
        )
    if padding >= width:
        raise ValidationError(
            f"Image {width}x{height} holds {padding} cells beyond {frame_count} "
            f"{frame_width}x{frame_height} frames; padding must fit in one row"
        )
    return FrameGeometry(frame_count, frame_width, frame_height)


def resolve(image: IndexedImage) -> NarrowBuffer:
    """Replace every palette index with its RGBA color."""

    lookup = palette_bytes(image.palette)
    limit = len(image.palette)
    pix = bytearray(len(image.indices) * CHANNELS)
    for cell, index in enumerate(image.indices):
        if index >= limit:
            raise ValidationError(
                f"Palette index {index} at cell {cell} is outside the {limit}-color palette"
            )
        pix[cell * CHANNELS : cell * CHANNELS + CHANNELS] = lookup[index]
    return NarrowBuffer(image.width, image.height, bytes(pix))


def palette_bytes(palette: Sequence[RGBA]) -> List[bytes]:
    return [bytes(color) for color in palette]


def flatten_palette(palette: Sequence[RGBA]) -> List[int]:
    return [component for color in palette for component in color]
