"""Animation frame strip to palette-indexed pixel sequence/stream converter.

A vertical strip of N stacked frames is reduced to a palette image and
re-laid-out so that matching pixels of consecutive frames sit next to each
other, which lets PNG compression exploit frame-to-frame similarity. It can
be driven through the CLI (``python -m pixel_sequencer``) or imported.
"""

from .buffers import FrameGeometry, IndexedImage, NarrowBuffer, WideBuffer, resolve
from .diffuse import diffuse
from .errors import PixelSequencerError, RemapError, ValidationError
from .layout import sequence_decode, sequence_encode, stream_decode, stream_encode
from .optimizer import RasterCandidate, candidate_raster, search_raster_widths
from .pipeline import PipelineOptions

__all__ = [
    "FrameGeometry",
    "IndexedImage",
    "NarrowBuffer",
    "PipelineOptions",
    "PixelSequencerError",
    "RasterCandidate",
    "RemapError",
    "ValidationError",
    "WideBuffer",
    "candidate_raster",
    "diffuse",
    "resolve",
    "search_raster_widths",
    "sequence_decode",
    "sequence_encode",
    "stream_decode",
    "stream_encode",
]
