from pathlib import Path

import pytest
from PIL import Image

from conftest import make_strip, save_indexed, save_rgba, save_wide
from pixel_sequencer.buffers import resolve
from pixel_sequencer.cli import EXIT_IO, EXIT_VALIDATION, main
from pixel_sequencer.layout import sequence_encode, stream_encode
from pixel_sequencer.optimizer import candidate_raster
from pixel_sequencer.pngio import indexed_from_image, narrow_from_image


def _rgba_bytes(path):
    with Image.open(path) as image:
        return narrow_from_image(image).pix, image.size


def _stream_outputs(directory: Path, name: str):
    found = []
    for path in directory.iterdir():
        width, _, rest = path.name.partition("-")
        if rest == name and width.isdigit():
            found.append((int(width), path))
    return sorted(found)


def test_sequence_encode_then_decode(tmp_path, strip):
    source = save_indexed(strip, tmp_path / "strip.png")
    encoded = tmp_path / "sequence.png"
    decoded = tmp_path / "decoded.png"

    assert main(["encode", str(source), "4", str(encoded)]) == 0
    with Image.open(encoded) as image:
        assert image.size == (40, 8)
        assert image.mode == "P"

    assert main(["decode", str(encoded), "4", str(decoded)]) == 0
    pix, size = _rgba_bytes(decoded)
    assert size == (10, 32)
    assert pix == resolve(strip).pix


def test_stream_encode_writes_width_tagged_improvements(tmp_path, strip, capsys):
    source = save_indexed(strip, tmp_path / "strip.png")
    output = tmp_path / "stream.png"

    assert main(["encode", "--layout", "stream", str(source), "4", str(output)]) == 0

    assert not output.exists()
    outputs = _stream_outputs(tmp_path, "stream.png")
    assert outputs
    sizes = [path.stat().st_size for _, path in outputs]
    assert all(later < earlier for earlier, later in zip(sizes, sizes[1:]))
    assert all(width % 40 == 0 for width, _ in outputs)
    assert "Best raster width" in capsys.readouterr().out

    for width, path in outputs:
        decoded = tmp_path / f"decoded-{width}.png"
        assert main(
            ["decode", "--layout", "stream", "--frame-count", "4", str(path), "10", "8", str(decoded)]
        ) == 0
        pix, size = _rgba_bytes(decoded)
        assert size == (10, 32)
        assert pix == resolve(strip).pix


def test_stream_encode_best_only(tmp_path, strip):
    source = save_indexed(strip, tmp_path / "strip.png")
    output = tmp_path / "best.png"

    args = ["encode", "--layout", "stream", "--best-only", "--max-width", "100"]
    assert main(args + [str(source), "4", str(output)]) == 0

    assert len(_stream_outputs(tmp_path, "best.png")) == 1


def test_stream_output_palette_leaves_a_free_slot(tmp_path):
    strip = make_strip(2, 16, 8, colors=256)
    source = save_indexed(strip, tmp_path / "full.png")
    output = tmp_path / "stream.png"

    assert main(["encode", "--layout", "stream", "--remapper", "pillow", str(source), "2", str(output)]) == 0

    for _, path in _stream_outputs(tmp_path, "stream.png"):
        with Image.open(path) as image:
            assert len(image.getpalette()) // 3 <= 255


def test_encode_with_non_dividing_frame_count_writes_nothing(tmp_path, strip, capsys):
    source = save_indexed(strip, tmp_path / "strip.png")
    output = tmp_path / "out.png"

    assert main(["encode", str(source), "3", str(output)]) == EXIT_VALIDATION
    assert not output.exists()
    assert "not evenly divisible" in capsys.readouterr().err

    assert main(["encode", "--layout", "stream", str(source), "3", str(output)]) == EXIT_VALIDATION
    assert _stream_outputs(tmp_path, "out.png") == []


def test_decode_with_non_dividing_width_writes_nothing(tmp_path, strip):
    source = save_indexed(strip, tmp_path / "strip.png")
    encoded = tmp_path / "sequence.png"
    decoded = tmp_path / "decoded.png"
    assert main(["encode", str(source), "4", str(encoded)]) == 0

    assert main(["decode", str(encoded), "3", str(decoded)]) == EXIT_VALIDATION
    assert not decoded.exists()


def test_decode_rejects_full_color_input(tmp_path):
    source = save_rgba(2, 2, bytes(16), tmp_path / "rgba.png")

    assert main(["decode", str(source), "2", str(tmp_path / "out.png")]) == EXIT_VALIDATION


def test_stream_decode_needs_two_dimensions(tmp_path, strip):
    source = save_indexed(strip, tmp_path / "strip.png")

    with pytest.raises(SystemExit) as excinfo:
        main(["decode", "--layout", "stream", str(source), "4", str(tmp_path / "out.png")])
    assert excinfo.value.code != 0


def test_malformed_frame_count_prints_usage(tmp_path, strip, capsys):
    source = save_indexed(strip, tmp_path / "strip.png")

    with pytest.raises(SystemExit) as excinfo:
        main(["encode", str(source), "four", str(tmp_path / "out.png")])
    assert excinfo.value.code != 0
    assert "usage" in capsys.readouterr().err


def test_missing_input_is_an_io_error(tmp_path):
    assert main(["quantize", str(tmp_path / "missing.png"), str(tmp_path / "out.png")]) == EXIT_IO


def test_existing_output_needs_force(tmp_path, strip):
    source = save_indexed(strip, tmp_path / "strip.png")
    output = tmp_path / "out.png"
    output.write_bytes(b"keep")

    assert main(["encode", str(source), "4", str(output)]) == EXIT_VALIDATION
    assert output.read_bytes() == b"keep"

    assert main(["encode", "--force", str(source), "4", str(output)]) == 0
    assert output.read_bytes() != b"keep"


def test_quantize_and_unquantize(tmp_path):
    pix = bytes([255, 0, 0, 255, 0, 255, 0, 255, 0, 0, 255, 255, 255, 255, 255, 0])
    source = save_rgba(2, 2, pix, tmp_path / "rgba.png")
    quantized = tmp_path / "quantized.png"
    restored = tmp_path / "restored.png"

    assert main(["quantize", "--remapper", "pillow", str(source), str(quantized)]) == 0
    with Image.open(quantized) as image:
        assert image.mode == "P"
        assert len(indexed_from_image(image).palette) <= 256

    assert main(["unquantize", str(quantized), str(restored)]) == 0
    restored_pix, size = _rgba_bytes(restored)
    assert size == (2, 2)
    assert all(abs(a - b) <= 8 for a, b in zip(restored_pix, pix))


def test_diffuse_reduces_sixteen_bit_input(tmp_path):
    source = save_wide(2, 1, [0x0180, 0, 0xFFFF, 0x8000, 0x01D0, 0, 0xFFFF, 0x8000], tmp_path / "wide.png")
    output = tmp_path / "narrow.png"

    assert main(["diffuse", str(source), str(output)]) == 0
    pix, size = _rgba_bytes(output)
    assert size == (2, 1)
    assert list(pix) == [1, 0, 255, 128, 2, 0, 255, 128]


def test_diffuse_copies_eight_bit_input(tmp_path):
    source = save_rgba(1, 1, bytes([1, 2, 3, 4]), tmp_path / "narrow.png")
    output = tmp_path / "copy.png"

    assert main(["diffuse", str(source), str(output)]) == 0
    assert output.read_bytes() == source.read_bytes()


def test_padded_stream_decode_needs_frame_count(tmp_path, strip):
    raster = candidate_raster(stream_encode(strip, 4), 13)
    source = save_indexed(raster, tmp_path / "13-stream.png")
    decoded = tmp_path / "decoded.png"

    args = ["decode", "--layout", "stream"]
    assert main(args + [str(source), "10", "8", str(decoded)]) == EXIT_VALIDATION
    assert not decoded.exists()

    assert main(args + ["--frame-count", "4", str(source), "10", "8", str(decoded)]) == 0
    pix, size = _rgba_bytes(decoded)
    assert size == (10, 32)
    assert pix == resolve(strip).pix


def test_frame_count_option_is_stream_only(tmp_path, strip):
    source = save_indexed(sequence_encode(strip, 4), tmp_path / "seq.png")

    with pytest.raises(SystemExit) as excinfo:
        main(["decode", "--frame-count", "4", str(source), "4", str(tmp_path / "out.png")])
    assert excinfo.value.code != 0


def test_out_of_range_speed_is_rejected(tmp_path, strip):
    source = save_indexed(strip, tmp_path / "strip.png")
    output = tmp_path / "out.png"

    assert main(["quantize", "--speed", "11", str(source), str(output)]) == EXIT_VALIDATION
    assert not output.exists()
