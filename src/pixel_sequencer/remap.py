"""Palette generation backends.

The pipeline only needs ``quantize(pixels, max_colors) -> IndexedImage``;
anything providing that method can stand in for the default libimagequant
binding.
"""

from __future__ import annotations

from typing import Dict, Protocol, Type

from imagequant import ffi, lib
from PIL import Image

from .buffers import MAX_PALETTE_SIZE, IndexedImage, NarrowBuffer
from .errors import RemapError, ValidationError
from .pngio import image_from_narrow, indexed_from_image

SEQUENCE_MAX_COLORS = 256
# One palette slot stays free for frame-difference encoding.
STREAM_MAX_COLORS = 255
DEFAULT_DITHERING_LEVEL = 1.0
MIN_SPEED = 1
MAX_SPEED = 10
DEFAULT_SPEED = MIN_SPEED

_LIQ_ERRORS = (
    "LIQ_QUALITY_TOO_LOW",
    "LIQ_VALUE_OUT_OF_RANGE",
    "LIQ_OUT_OF_MEMORY",
    "LIQ_ABORTED",
    "LIQ_BITMAP_NOT_AVAILABLE",
    "LIQ_BUFFER_TOO_SMALL",
    "LIQ_INVALID_POINTER",
    "LIQ_UNSUPPORTED",
)


class Remapper(Protocol):
    name: str

    def quantize(self, pixels: NarrowBuffer, max_colors: int) -> IndexedImage:
        ...


def check_max_colors(max_colors: int) -> None:
    if not 2 <= max_colors <= MAX_PALETTE_SIZE:
        raise ValidationError(f"Color count must be between 2 and {MAX_PALETTE_SIZE} (got {max_colors})")


def check_speed(speed: int) -> None:
    if not MIN_SPEED <= speed <= MAX_SPEED:
        raise ValidationError(f"Speed must be between {MIN_SPEED} and {MAX_SPEED} (got {speed})")


def _checked_result(quantized: Image.Image, pixels: NarrowBuffer, max_colors: int, backend: str) -> IndexedImage:
    if quantized is None or quantized.mode != "P":
        raise RemapError(f"{backend} did not return a palette image")
    if quantized.size != (pixels.width, pixels.height):
        raise RemapError(
            f"{backend} returned a {quantized.size[0]}x{quantized.size[1]} image "
            f"for {pixels.width}x{pixels.height} input"
        )
    try:
        return indexed_from_image(quantized, max_colors)
    except ValidationError as exc:
        raise RemapError(f"{backend} returned an invalid palette: {exc}") from exc


def _error_name(code: int) -> str:
    for name in _LIQ_ERRORS:
        if getattr(lib, name) == code:
            return name
    return f"error {code}"


def _check_liq(code: int, step: str) -> None:
    if code != lib.LIQ_OK:
        raise RemapError(f"imagequant failed to {step}: {_error_name(code)}")


class ImagequantRemapper:
    """libimagequant driven through its C API.

    ``speed`` runs from 1 (slowest, best palette) to 10; the pipeline uses 1.
    """

    name = "imagequant"

    def __init__(
        self,
        dithering_level: float = DEFAULT_DITHERING_LEVEL,
        speed: int = DEFAULT_SPEED,
        min_quality: int = 0,
        max_quality: int = 100,
    ):
        if not 0.0 <= dithering_level <= 1.0:
            raise ValidationError(f"Dithering level must be between 0 and 1 (got {dithering_level})")
        check_speed(speed)
        self.dithering_level = dithering_level
        self.speed = speed
        self.min_quality = min_quality
        self.max_quality = max_quality

    def quantize(self, pixels: NarrowBuffer, max_colors: int) -> IndexedImage:
        check_max_colors(max_colors)
        count = pixels.width * pixels.height

        attr = lib.liq_attr_create()
        if attr == ffi.NULL:
            raise RemapError("imagequant could not allocate its settings")
        image = ffi.NULL
        result = ffi.NULL
        try:
            _check_liq(lib.liq_set_max_colors(attr, max_colors), "set the color limit")
            _check_liq(lib.liq_set_speed(attr, self.speed), "set the speed")
            _check_liq(lib.liq_set_quality(attr, self.min_quality, self.max_quality), "set the quality")

            # libimagequant keeps a pointer to the bitmap, not a copy.
            bitmap = ffi.from_buffer(pixels.pix)
            image = lib.liq_image_create_rgba(attr, bitmap, pixels.width, pixels.height, 0)
            if image == ffi.NULL:
                raise RemapError(f"imagequant rejected the {pixels.width}x{pixels.height} bitmap")

            result_p = ffi.new("liq_result**")
            _check_liq(lib.liq_image_quantize(image, attr, result_p), "build a palette")
            result = result_p[0]
            _check_liq(lib.liq_set_dithering_level(result, self.dithering_level), "set the dithering level")

            out = ffi.new("char[]", count)
            _check_liq(lib.liq_write_remapped_image(result, image, out, count), "remap the image")
            liq_palette = lib.liq_get_palette(result)
            palette = [
                (color.r, color.g, color.b, color.a)
                for color in (liq_palette.entries[i] for i in range(liq_palette.count))
            ]
            indices = ffi.unpack(out, count)
        finally:
            if result != ffi.NULL:
                lib.liq_result_destroy(result)
            if image != ffi.NULL:
                lib.liq_image_destroy(image)
            lib.liq_attr_destroy(attr)

        if not 0 < len(palette) <= max_colors:
            raise RemapError(f"imagequant returned {len(palette)} colors for a limit of {max_colors}")
        if max(indices) >= len(palette):
            raise RemapError("imagequant returned indices outside its palette")
        return IndexedImage(pixels.width, pixels.height, palette, indices)


class PillowRemapper:
    """Pillow's fast octree quantizer, the only built-in method that keeps alpha.

    Pillow does not dither when it builds the palette itself.
    """

    name = "pillow"

    def quantize(self, pixels: NarrowBuffer, max_colors: int) -> IndexedImage:
        check_max_colors(max_colors)
        try:
            quantized = image_from_narrow(pixels).quantize(
                colors=max_colors,
                method=Image.Quantize.FASTOCTREE,
            )
        except (ValueError, MemoryError) as exc:
            raise RemapError(f"Pillow quantize failed: {exc}") from exc
        return _checked_result(quantized, pixels, max_colors, self.name)


REMAPPERS: Dict[str, Type] = {
    ImagequantRemapper.name: ImagequantRemapper,
    PillowRemapper.name: PillowRemapper,
}


def make_remapper(
    name: str,
    dithering_level: float = DEFAULT_DITHERING_LEVEL,
    speed: int = DEFAULT_SPEED,
) -> Remapper:
    try:
        factory = REMAPPERS[name]
    except KeyError as exc:
        raise ValidationError(
            f"Unknown remapper: {name} (choose from {', '.join(sorted(REMAPPERS))})"
        ) from exc
    if factory is ImagequantRemapper:
        return factory(dithering_level=dithering_level, speed=speed)
    return factory()
