"""Sequence and stream re-layouts of an animation frame strip.

A frame strip is ``frame_count`` frames stacked vertically. Both layouts are
permutations of its palette indices; the palette itself is passed through.

* sequence: ``(frame_count * frame_width) x frame_height``. Each scanline
  holds the same scanline of every frame, interleaved pixel by pixel.
* stream: ``frame_count x (frame_width * frame_height)``. Each run of
  ``frame_count`` cells is one pixel position sampled across all frames.

Decoding reads either layout back in ``y, x, frame`` order.
"""

from __future__ import annotations

from typing import Optional

from .buffers import (
    FrameGeometry,
    IndexedImage,
    NarrowBuffer,
    resolve,
    sequence_geometry,
    stream_geometry,
    strip_geometry,
)
from .errors import ValidationError


def sequence_encode(strip: IndexedImage, frame_count: int) -> IndexedImage:
    """Interleave the frames of ``strip`` scanline by scanline."""

    geometry = strip_geometry(strip.width, strip.height, frame_count)
    total = geometry.total
    width, height = geometry.sequence_size

    out = bytearray(total)
    x = 0
    frame = 0
    for index in strip.indices:
        out[frame + x] = index
        x += frame_count
        if x >= total:
            frame += 1
            x %= total
    return IndexedImage(width, height, list(strip.palette), bytes(out))


def _interleaved_to_strip(image: IndexedImage, geometry: FrameGeometry) -> IndexedImage:
    frame_count = geometry.frame_count
    frame_width = geometry.frame_width
    frame_height = geometry.frame_height
    frame_pixels = geometry.frame_pixels
    src = image.indices

    out = bytearray(geometry.total)
    i = 0
    for y in range(frame_height):
        for x in range(frame_width):
            cell = y * frame_width + x
            for frame in range(frame_count):
                out[frame * frame_pixels + cell] = src[i]
                i += 1
    width, height = geometry.strip_size
    return IndexedImage(width, height, list(image.palette), bytes(out))


def sequence_decode_indexed(image: IndexedImage, frame_count: int) -> IndexedImage:
    geometry = sequence_geometry(image.width, image.height, frame_count)
    return _interleaved_to_strip(image, geometry)


def sequence_decode(image: IndexedImage, frame_count: int) -> NarrowBuffer:
    """Rebuild the full-color frame strip from a sequence-layout image."""

    return resolve(sequence_decode_indexed(image, frame_count))


def stream_encode(strip: IndexedImage, frame_count: int) -> IndexedImage:
    """Interleave every pixel position of ``strip`` across all frames."""

    geometry = strip_geometry(strip.width, strip.height, frame_count)
    frame_width = geometry.frame_width
    frame_pixels = geometry.frame_pixels
    src = strip.indices

    out = bytearray(geometry.total)
    i = 0
    for y in range(geometry.frame_height):
        for x in range(frame_width):
            cell = y * frame_width + x
            for frame in range(frame_count):
                out[i] = src[frame * frame_pixels + cell]
                i += 1
    width, height = geometry.stream_size
    return IndexedImage(width, height, list(strip.palette), bytes(out))


def stream_decode_indexed(
    image: IndexedImage,
    frame_width: int,
    frame_height: int,
    frame_count: Optional[int] = None,
) -> IndexedImage:
    geometry = stream_geometry(image.width, image.height, frame_width, frame_height, frame_count)
    padding = image.indices[geometry.total :]
    if any(padding):
        raise ValidationError(
            f"{len(padding)} cells after the last frame are not zero padding"
        )
    return _interleaved_to_strip(image, geometry)


def stream_decode(
    image: IndexedImage,
    frame_width: int,
    frame_height: int,
    frame_count: Optional[int] = None,
) -> NarrowBuffer:
    """Rebuild the full-color frame strip from a stream-layout raster.

    Pass ``frame_count`` to decode a widened raster; its zero padding is
    dropped.
    """

    return resolve(stream_decode_indexed(image, frame_width, frame_height, frame_count))
