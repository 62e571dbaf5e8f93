"""One pipeline for every command: load, reduce, remap, re-lay-out, write.

Each ``run_*`` function returns the files it would write as
:class:`Artifact` objects. Nothing touches the disk until
:func:`write_artifacts`, so a failure in any stage leaves no partial output.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .buffers import IndexedImage, NarrowBuffer, strip_geometry
from .diffuse import diffuse, truncate
from .errors import ValidationError
from .layout import sequence_decode, sequence_encode, stream_decode, stream_encode
from .optimizer import DEFAULT_MAX_WIDTH, collect_improvements
from .pngio import (
    DEFAULT_COMPRESS_LEVEL,
    LoadedImage,
    encode_indexed,
    encode_narrow,
    indexed_from_image,
    load_image,
    narrow_from_image,
    palette_from_image,
)
from .remap import (
    DEFAULT_DITHERING_LEVEL,
    DEFAULT_SPEED,
    SEQUENCE_MAX_COLORS,
    STREAM_MAX_COLORS,
    Remapper,
    check_speed,
    make_remapper,
)

LAYOUT_SEQUENCE = "sequence"
LAYOUT_STREAM = "stream"
LAYOUTS = (LAYOUT_SEQUENCE, LAYOUT_STREAM)

Report = Callable[[str], None]


def _silent(message: str) -> None:
    pass


@dataclass
class PipelineOptions:
    """Settings shared by every command."""

    layout: str = LAYOUT_SEQUENCE  # sequence, stream
    diffuse_wide: bool = True
    remapper: str = "imagequant"  # imagequant, pillow
    dithering_level: float = DEFAULT_DITHERING_LEVEL
    speed: int = DEFAULT_SPEED
    max_width: int = DEFAULT_MAX_WIDTH
    zero_waste_only: bool = False
    keep_improving: bool = True
    compress_level: int = DEFAULT_COMPRESS_LEVEL
    force: bool = False

    def validate(self) -> None:
        if self.layout not in LAYOUTS:
            raise ValidationError(f"Unknown layout: {self.layout}")
        if not 0 <= self.compress_level <= 9:
            raise ValidationError(f"Compress level must be between 0 and 9 (got {self.compress_level})")
        if self.max_width <= 0:
            raise ValidationError(f"Maximum raster width must be positive (got {self.max_width})")
        check_speed(self.speed)

    @property
    def max_colors(self) -> int:
        return STREAM_MAX_COLORS if self.layout == LAYOUT_STREAM else SEQUENCE_MAX_COLORS

    def build_remapper(self) -> Remapper:
        return make_remapper(self.remapper, self.dithering_level, self.speed)


@dataclass
class Artifact:
    path: Path
    data: bytes


def reduce_to_narrow(loaded: LoadedImage, options: PipelineOptions) -> NarrowBuffer:
    """8-bit RGBA pixels of ``loaded``, error-diffused when the source is 16-bit."""

    if loaded.wide is None:
        return narrow_from_image(loaded.image)
    if options.diffuse_wide:
        return diffuse(loaded.wide)
    return truncate(loaded.wide)


def quantize_loaded(
    loaded: LoadedImage,
    options: PipelineOptions,
    remapper: Optional[Remapper] = None,
    report: Report = _silent,
) -> IndexedImage:
    """Palette and indices for ``loaded``.

    A palette image whose palette already fits is used as-is.
    """

    max_colors = options.max_colors
    if loaded.is_indexed and len(palette_from_image(loaded.image)) <= max_colors:
        indexed = indexed_from_image(loaded.image)
        report(f"Using existing palette ({len(indexed.palette)} colors)")
        return indexed

    pixels = reduce_to_narrow(loaded, options)
    remapper = remapper or options.build_remapper()
    indexed = remapper.quantize(pixels, max_colors)
    report(f"Quantized with {remapper.name}: {len(indexed.palette)} colors")
    return indexed


def _load(path: str | Path, report: Report) -> LoadedImage:
    loaded = load_image(path)
    report(f"Input image {loaded.describe()}")
    return loaded


def run_diffuse(
    input_path: str | Path,
    output_path: str | Path,
    options: PipelineOptions,
    report: Report = _silent,
) -> List[Artifact]:
    loaded = _load(input_path, report)
    if loaded.wide is None:
        report("Input is not 16-bit; copying unchanged")
        return [Artifact(Path(output_path), loaded.path.read_bytes())]
    data = encode_narrow(diffuse(loaded.wide), options.compress_level)
    return [Artifact(Path(output_path), data)]


def run_quantize(
    input_path: str | Path,
    output_path: str | Path,
    options: PipelineOptions,
    remapper: Optional[Remapper] = None,
    report: Report = _silent,
) -> List[Artifact]:
    loaded = _load(input_path, report)
    indexed = quantize_loaded(loaded, options, remapper, report)
    return [Artifact(Path(output_path), encode_indexed(indexed, options.compress_level))]


def run_unquantize(
    input_path: str | Path,
    output_path: str | Path,
    options: PipelineOptions,
    report: Report = _silent,
) -> List[Artifact]:
    loaded = _load(input_path, report)
    pixels = reduce_to_narrow(loaded, options)
    return [Artifact(Path(output_path), encode_narrow(pixels, options.compress_level))]


def run_encode(
    input_path: str | Path,
    frame_count: int,
    output_path: str | Path,
    options: PipelineOptions,
    remapper: Optional[Remapper] = None,
    report: Report = _silent,
) -> List[Artifact]:
    options.validate()
    output_path = Path(output_path)
    loaded = _load(input_path, report)
    geometry = strip_geometry(*loaded.image.size, frame_count)
    report(f"Number of frames: {geometry.describe()}")

    strip = quantize_loaded(loaded, options, remapper, report)

    if options.layout == LAYOUT_SEQUENCE:
        report("Encoding pixel sequence from vertical frame strip")
        sequence = sequence_encode(strip, frame_count)
        return [Artifact(output_path, encode_indexed(sequence, options.compress_level))]

    report("Encoding pixel stream from vertical frame strip")
    stream = stream_encode(strip, frame_count)

    def progress(width: int, height: int, wasted: int, size: int) -> None:
        report(f"Output {width} x {height}  ({wasted} wasted) ...  {size} bytes")

    candidates = collect_improvements(
        stream,
        geometry,
        lambda raster: encode_indexed(raster, options.compress_level),
        max_width=options.max_width,
        zero_waste_only=options.zero_waste_only,
        progress=progress,
    )
    best = candidates[-1]
    report(f"Best raster width: {best.width} ({best.size} bytes)")
    if not options.keep_improving:
        candidates = [best]
    return [
        Artifact(output_path.with_name(candidate.filename(output_path.name)), candidate.data)
        for candidate in candidates
    ]


def run_decode(
    input_path: str | Path,
    dimensions: Sequence[int],
    output_path: str | Path,
    options: PipelineOptions,
    frame_count: Optional[int] = None,
    report: Report = _silent,
) -> List[Artifact]:
    """Decode a sequence image (``dimensions`` = frame count) or a stream
    raster (``dimensions`` = frame width, frame height) into a frame strip.

    A stream raster written at a padded width needs ``frame_count``.
    """

    options.validate()
    expected = 2 if options.layout == LAYOUT_STREAM else 1
    if len(dimensions) != expected:
        raise ValidationError(
            f"{options.layout} decode takes {expected} dimension argument(s), got {len(dimensions)}"
        )

    if options.layout == LAYOUT_SEQUENCE and frame_count is not None:
        raise ValidationError("An explicit frame count only applies to stream decode")

    loaded = _load(input_path, report)
    if not loaded.is_indexed:
        raise ValidationError(
            f"{loaded.path} is not a palette image; decode expects encoder output"
        )
    image = indexed_from_image(loaded.image)

    if options.layout == LAYOUT_SEQUENCE:
        report("Decoding pixel sequence to vertical frame strip")
        strip = sequence_decode(image, dimensions[0])
    else:
        report("Decoding pixel stream to vertical frame strip")
        strip = stream_decode(image, dimensions[0], dimensions[1], frame_count)
    report(f"Output frame strip: {strip.width}x{strip.height}")
    return [Artifact(Path(output_path), encode_narrow(strip, options.compress_level))]


def check_conflicts(artifacts: Sequence[Artifact], force: bool) -> None:
    if force:
        return
    conflicts = [str(artifact.path) for artifact in artifacts if artifact.path.exists()]
    if conflicts:
        raise ValidationError(
            "Output files already exist (use --force to overwrite):\n" + "\n".join(conflicts)
        )


def _staging_path(path: Path) -> Path:
    return path.with_name(f".{path.name}.tmp")


def write_artifacts(artifacts: Sequence[Artifact], force: bool, report: Report = _silent) -> None:
    """Write every artifact or none of them.

    All files are staged as hidden siblings first and only then renamed into
    place. On failure the staged files and any output already renamed are
    removed before the error propagates.
    """

    check_conflicts(artifacts, force)
    staged: List[Path] = []
    placed: List[Path] = []
    try:
        for artifact in artifacts:
            artifact.path.parent.mkdir(parents=True, exist_ok=True)
            staging = _staging_path(artifact.path)
            staged.append(staging)
            staging.write_bytes(artifact.data)
        for artifact, staging in zip(artifacts, staged):
            os.replace(staging, artifact.path)
            placed.append(artifact.path)
    except OSError:
        for path in staged + placed:
            path.unlink(missing_ok=True)
        raise
    for artifact in artifacts:
        report(f"wrote {artifact.path}")
