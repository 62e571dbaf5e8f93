"""Floyd-Steinberg reduction of 16-bit RGBA to 8-bit RGBA.

Every channel is diffused on its own with integer arithmetic only, so the
output is bit-identical for identical input. Two error rows of ``width + 2``
cells are kept per channel; the one-cell offset lets the kernel write to the
left and right neighbours without bounds checks:

    .        *   7/16
    3/16  5/16   1/16
"""

from __future__ import annotations

from typing import List

from .buffers import CHANNELS, NarrowBuffer, WideBuffer

MAX_WIDE_VALUE = 0xFFFF
KERNEL_DIVISOR = 16


def _truncated_division(value: int, divisor: int) -> int:
    # Python's // floors; the kernel truncates toward zero.
    if value < 0:
        return -(-value // divisor)
    return value // divisor


def _diffuse_channel(wide: WideBuffer, channel: int, out: bytearray) -> None:
    width = wide.width
    src = wide.pix
    current: List[int] = [0] * (width + 2)
    following: List[int] = [0] * (width + 2)

    for y in range(wide.height):
        offset = y * width * CHANNELS + channel
        for x in range(width):
            value = src[offset] + _truncated_division(current[x + 1], KERNEL_DIVISOR)
            if value < 0:
                value = 0
            elif value > MAX_WIDE_VALUE:
                value = MAX_WIDE_VALUE

            level = value >> 8
            out[offset] = level
            residual = value - (level << 8)

            following[x] += 3 * residual
            following[x + 1] += 5 * residual
            following[x + 2] += residual
            current[x + 2] += 7 * residual
            offset += CHANNELS

        current, following = following, current
        for i in range(width + 2):
            following[i] = 0


def diffuse(wide: WideBuffer) -> NarrowBuffer:
    """Reduce ``wide`` to 8 bits per channel with error diffusion."""

    out = bytearray(wide.width * wide.height * CHANNELS)
    for channel in range(CHANNELS):
        _diffuse_channel(wide, channel, out)
    return NarrowBuffer(wide.width, wide.height, bytes(out))


def truncate(wide: WideBuffer) -> NarrowBuffer:
    """Reduce ``wide`` to 8 bits per channel by dropping the low byte."""

    return NarrowBuffer(wide.width, wide.height, bytes(value >> 8 for value in wide.pix))
