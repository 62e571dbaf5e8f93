"""Exception types raised by the pixel sequencer pipeline."""

from __future__ import annotations


class PixelSequencerError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(PixelSequencerError):
    """Input geometry or arguments do not satisfy a transform's precondition."""


class RemapError(PixelSequencerError):
    """The palette backend failed to produce a palette or an index buffer."""
