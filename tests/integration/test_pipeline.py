"""Integration test: DICOM to NIfTI conversion and slice rendering pipelines."""

from __future__ import annotations

import nibabel as nib
import numpy as np
import pytest
from PIL import Image

from conftest import COLS, ROWS, slice_pixels
from egami._pipeline_convert import (
    analyze_series,
    convert_directory,
    make_output_path,
    resolve_output_path,
    run_convert_from_config,
    sanitize_name,
)
from egami._pipeline_render import run_dcm2png_from_config, run_nii2png_from_config
from egami.core.types import ConvertConfig, DicomRenderConfig, Series, SliceRenderConfig
from egami.errors import ConversionFailed, InputNotFound, OutOfRange
from egami.io.exporters import export_nifti
from egami.io.nifti_reader import read_volume


def test_directory_conversion_orders_by_instance(dicom_directory):
    report = convert_directory(dicom_directory)

    assert report.written == [dicom_directory / "Axial_T1.nii"]
    volume = read_volume(report.written[0])
    assert volume.dims == (COLS, ROWS, 5)
    assert volume.voxel_spacing == (0.75, 0.5, 2.0)
    grid = volume.as_array()[0]
    for z in range(5):
        assert np.array_equal(grid[z], slice_pixels(z + 1).astype(np.int16))


def test_multi_series_directory(multi_series_directory, tmp_path):
    out_dir = tmp_path / "out"
    out_dir.mkdir()
    report = run_convert_from_config(ConvertConfig(input_path=multi_series_directory, output=out_dir))

    assert sorted(p.name for p in report.written) == ["Axial_T1.nii", "series_7.nii"]
    assert report.failed == {}
    units = [d.unit for d in report.diagnostics]
    assert "d_broken.dcm" in units
    assert any(unit.endswith("c_orphan.dcm") for unit in units)


def test_numbered_outputs_for_file_target(multi_series_directory, tmp_path):
    target = tmp_path / "scan.nii.gz"
    report = convert_directory(multi_series_directory, target)

    assert [p.name for p in report.written] == ["scan_1.nii.gz", "scan_2.nii.gz"]
    assert nib.load(str(report.written[1])).shape == (COLS, ROWS, 2)


def test_failed_series_does_not_stop_batch(multi_series_directory, tmp_path, monkeypatch):
    from egami import _pipeline_convert
    from egami.errors import AssemblyConflict

    real_assemble = _pipeline_convert.assemble

    def _assemble(series, diagnostics=None):
        if series.description == "Axial T1":
            raise AssemblyConflict("mixed frame counts")
        return real_assemble(series, diagnostics)

    monkeypatch.setattr(_pipeline_convert, "assemble", _assemble)
    out_dir = tmp_path / "out"
    out_dir.mkdir()
    report = convert_directory(multi_series_directory, out_dir)

    assert [p.name for p in report.written] == ["series_7.nii"]
    assert len(report.failed) == 1
    assert not (out_dir / "Axial_T1.nii").exists()


def test_nothing_converted_raises(tmp_path, monkeypatch, dicom_directory):
    from egami import _pipeline_convert
    from egami.errors import AssemblyConflict

    def _assemble(series, diagnostics=None):
        raise AssemblyConflict("boom")

    monkeypatch.setattr(_pipeline_convert, "assemble", _assemble)
    with pytest.raises(ConversionFailed):
        convert_directory(dicom_directory, tmp_path / "x.nii")
    assert not (tmp_path / "x.nii").exists()


def test_multiframe_file_conversion(multiframe_file, tmp_path):
    report = run_convert_from_config(ConvertConfig(input_path=multiframe_file, output=tmp_path / "cine"))

    assert report.written == [tmp_path / "cine.nii"]
    volume = read_volume(report.written[0])
    assert volume.dims == (COLS, ROWS, 4)
    assert np.array_equal(volume.as_array()[0, 3], slice_pixels(3).astype(np.int16))


def test_single_file_defaults_next_to_input(multiframe_file):
    report = run_convert_from_config(ConvertConfig(input_path=multiframe_file))
    assert report.written == [multiframe_file.parent / "cine.nii"]


def test_missing_input(tmp_path):
    with pytest.raises(InputNotFound):
        run_convert_from_config(ConvertConfig(input_path=tmp_path / "nope"))


def test_analyze_series(multi_series_directory):
    infos = analyze_series(multi_series_directory)

    assert [i.record_count for i in infos] == [3, 2]
    assert infos[0].description == "Axial T1"
    assert infos[0].dimensions == f"{COLS}x{ROWS}x3"


def test_output_naming_helpers(tmp_path):
    series = Series("1.2.3", description="T2 / FLAIR (ax)", number=4)
    unnamed = Series("1.2.4")

    assert sanitize_name("T2 / FLAIR (ax)") == "T2___FLAIR__ax_"
    assert resolve_output_path(tmp_path, tmp_path, series) == tmp_path / "T2___FLAIR__ax_.nii"
    assert resolve_output_path(tmp_path, tmp_path, unnamed, 3) == tmp_path / "series_3.nii"
    assert resolve_output_path(tmp_path, tmp_path / "vol", series) == tmp_path / "vol.nii"
    assert make_output_path(tmp_path / "a.nii.gz", 0, 2) == tmp_path / "a_1.nii.gz"
    assert make_output_path(tmp_path / "a.nii", 0, 1) == tmp_path / "a.nii"


def test_nii2png_renders_flipped_plane(tmp_path, ramp_volume):
    source = tmp_path / "ramp.nii"
    export_nifti(ramp_volume, source)
    output = tmp_path / "plane.png"

    run_nii2png_from_config(SliceRenderConfig(input_path=source, output=output, axis="z", slice_index=0))

    with Image.open(output) as image:
        assert image.size == (4, 3)
        pixels = np.asarray(image)
    # top row holds y=2, the largest value in the plane
    assert pixels[0, 3].tolist() == [255, 255, 255, 255]
    assert pixels[2, 0].tolist() == [0, 0, 0, 255]


def test_nii2png_out_of_range_writes_nothing(tmp_path, ramp_volume):
    source = tmp_path / "ramp.nii"
    export_nifti(ramp_volume, source)
    output = tmp_path / "plane.png"

    with pytest.raises(OutOfRange):
        run_nii2png_from_config(SliceRenderConfig(input_path=source, output=output, axis="x", slice_index=4))
    assert not output.exists()


def test_dcm2png_directory_picks_nth_file(dicom_directory, tmp_path):
    output = tmp_path / "slice.png"
    run_dcm2png_from_config(DicomRenderConfig(input_path=dicom_directory, output=output, slice_index=4))

    with Image.open(output) as image:
        assert image.size == (COLS, ROWS)
        assert image.mode == "RGBA"

    with pytest.raises(OutOfRange):
        run_dcm2png_from_config(DicomRenderConfig(input_path=dicom_directory, output=output, slice_index=5))


def test_dcm2png_rgb_passthrough(rgb_file, tmp_path):
    output = tmp_path / "color.png"
    run_dcm2png_from_config(DicomRenderConfig(input_path=rgb_file, output=output))

    with Image.open(output) as image:
        assert image.getpixel((0, 0)) == (255, 0, 0, 255)
        assert image.getpixel((COLS - 1, 0)) == (0, 0, 255, 255)


def test_dcm2png_frame_selection(multiframe_file, tmp_path):
    output = tmp_path / "frame.png"
    run_dcm2png_from_config(DicomRenderConfig(input_path=multiframe_file, output=output, slice_index=3))
    assert output.exists()

    with pytest.raises(OutOfRange):
        run_dcm2png_from_config(DicomRenderConfig(input_path=multiframe_file, output=tmp_path / "x.png", slice_index=4))
    assert not (tmp_path / "x.png").exists()
