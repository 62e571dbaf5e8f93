"""Search for the raster width that makes a stream-layout PNG smallest.

The compressed size of interleaved animation data changes non-monotonically
with the raster width, so every width that is a whole number of interleaved
scanlines is tried, up to a cap, and the smallest encodings are kept.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional

from .buffers import FrameGeometry, IndexedImage
from .errors import ValidationError

DEFAULT_MAX_WIDTH = 300_000

Encoder = Callable[[IndexedImage], bytes]
Progress = Callable[[int, int, int, int], None]


@dataclass
class RasterCandidate:
    width: int
    height: int
    wasted: int
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    def filename(self, name: str) -> str:
        return f"{self.width}-{name}"


def candidate_widths(geometry: FrameGeometry, max_width: int = DEFAULT_MAX_WIDTH) -> List[int]:
    """Widths to try: multiples of one interleaved scanline, capped at ``max_width``."""

    if max_width <= 0:
        raise ValidationError(f"Maximum raster width must be positive (got {max_width})")
    step = geometry.frame_count * geometry.frame_width
    widths: List[int] = []
    width = step
    while width <= geometry.total:
        if width >= max_width:
            widths.append(max_width)
            break
        widths.append(width)
        width += step
    return widths


def raster_height(total: int, width: int) -> int:
    return -(-total // width)


def candidate_raster(stream: IndexedImage, width: int) -> IndexedImage:
    """Reflow the stream indices at ``width``, zero-padding the last row."""

    total = len(stream.indices)
    height = raster_height(total, width)
    cells = bytearray(width * height)
    cells[:total] = stream.indices
    return IndexedImage(width, height, list(stream.palette), bytes(cells))


def search_raster_widths(
    stream: IndexedImage,
    geometry: FrameGeometry,
    encoder: Encoder,
    max_width: int = DEFAULT_MAX_WIDTH,
    zero_waste_only: bool = False,
    progress: Optional[Progress] = None,
) -> Iterator[RasterCandidate]:
    """Yield each candidate that is strictly smaller than every earlier one.

    The last candidate yielded is the smallest found; on a tie the earlier
    (narrower) width wins.
    """

    total = geometry.total
    if len(stream.indices) != total:
        raise ValidationError(
            f"Stream holds {len(stream.indices)} cells, expected {total} for {geometry.describe()} frames"
        )

    best_size: Optional[int] = None
    for width in candidate_widths(geometry, max_width):
        height = raster_height(total, width)
        wasted = width * height - total
        if zero_waste_only and wasted:
            continue

        data = encoder(candidate_raster(stream, width))
        if progress is not None:
            progress(width, height, wasted, len(data))
        if best_size is None or len(data) < best_size:
            best_size = len(data)
            yield RasterCandidate(width, height, wasted, data)


def collect_improvements(
    stream: IndexedImage,
    geometry: FrameGeometry,
    encoder: Encoder,
    max_width: int = DEFAULT_MAX_WIDTH,
    zero_waste_only: bool = False,
    progress: Optional[Progress] = None,
) -> List[RasterCandidate]:
    """Every improving candidate in search order; the smallest comes last."""

    found = list(search_raster_widths(stream, geometry, encoder, max_width, zero_waste_only, progress))
    if not found:
        raise ValidationError("No raster width satisfied the search constraints")
    return found
