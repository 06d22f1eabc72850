"""Unit tests for reading NIfTI files and writing exports."""

from __future__ import annotations

import gzip
import os
import struct

import nibabel as nib
import numpy as np
import pytest
from PIL import Image

from egami.core.types import SampleType
from egami.errors import DecodeError, InputNotFound
from egami.io.exporters import atomic_write, export_nifti, export_png
from egami.io.nifti_header import encode
from egami.io.nifti_reader import load_volume, maybe_decompress, read_volume
from egami.methods.base import VolumeDecoder
from egami.methods.registry import volume_decoders


def test_read_plain_file(tmp_path, ramp_volume):
    path = tmp_path / "ramp.nii"
    path.write_bytes(encode(ramp_volume))
    assert read_volume(path) == ramp_volume


def test_read_gzip_file(tmp_path, ramp_volume):
    path = tmp_path / "ramp.nii.gz"
    path.write_bytes(gzip.compress(encode(ramp_volume)))
    assert read_volume(path) == ramp_volume


def test_missing_file(tmp_path):
    with pytest.raises(InputNotFound):
        read_volume(tmp_path / "missing.nii")


def test_big_endian_falls_back_to_nibabel():
    data = np.arange(24, dtype=">i2").reshape(4, 3, 2, order="F")
    header = nib.Nifti1Header(endianness=">")
    image = nib.Nifti1Image(data, np.diag([0.5, 0.75, 2.0, 1.0]), header=header)
    image.header.set_data_dtype(">i2")

    volume = load_volume(image.to_bytes())

    assert volume.dims == (4, 3, 2)
    assert volume.data_type is SampleType.INT16
    assert volume.as_array()[0, 1, 2, 3] == data[3, 2, 1]


def test_garbage_reports_every_decoder():
    with pytest.raises(DecodeError) as excinfo:
        load_volume(b"\x00" * 400, source="junk.nii")
    message = str(excinfo.value)
    assert "junk.nii" in message
    assert "native" in message
    assert "nibabel" in message


def test_bad_vox_offset_moves_on_to_next_decoder(ramp_volume):
    class _Fallback(VolumeDecoder):
        name = "fallback"

        def decode(self, data):
            return ramp_volume

    data = bytearray(encode(ramp_volume))
    data[108:112] = struct.pack("<f", float("nan"))

    volume = load_volume(bytes(data), decoders=volume_decoders(["native"]) + [_Fallback()])
    assert volume is ramp_volume

    with pytest.raises(DecodeError):
        load_volume(bytes(data), decoders=volume_decoders(["native"]))


def test_corrupt_gzip():
    with pytest.raises(DecodeError, match="gzip"):
        maybe_decompress(b"\x1f\x8b" + b"\x00" * 10)


def test_plain_data_is_untouched():
    assert maybe_decompress(b"abc") == b"abc"


def test_export_nifti_gzip(tmp_path, ramp_volume):
    path = tmp_path / "out" / "ramp.nii.gz"
    export_nifti(ramp_volume, path)

    assert gzip.decompress(path.read_bytes()) == encode(ramp_volume)
    assert nib.load(str(path)).shape == (4, 3, 2)


def test_export_nifti_plain(tmp_path, ramp_volume):
    path = tmp_path / "ramp.nii"
    export_nifti(ramp_volume, path)
    assert path.read_bytes() == encode(ramp_volume)


def test_export_png(tmp_path):
    rgba = np.zeros((3, 5, 4), dtype=np.uint8)
    rgba[0, 0] = [255, 0, 0, 255]
    rgba[..., 3] = 255
    path = tmp_path / "plane.png"
    export_png(rgba, path)

    with Image.open(path) as image:
        assert image.mode == "RGBA"
        assert image.size == (5, 3)
        assert image.getpixel((0, 0)) == (255, 0, 0, 255)


def test_export_png_rejects_wrong_shape(tmp_path):
    with pytest.raises(ValueError):
        export_png(np.zeros((3, 5), dtype=np.uint8), tmp_path / "bad.png")
    assert not (tmp_path / "bad.png").exists()


def test_atomic_write_leaves_no_partial_file(tmp_path, monkeypatch):
    target = tmp_path / "out.nii"

    def _fail(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr("egami.io.exporters.os.replace", _fail)
    with pytest.raises(OSError):
        atomic_write(target, b"payload")

    assert list(tmp_path.iterdir()) == []


def test_atomic_write_replaces_existing(tmp_path):
    target = tmp_path / "out.bin"
    target.write_bytes(b"old")
    atomic_write(target, b"new")
    assert target.read_bytes() == b"new"


@pytest.mark.skipif(os.name != "posix", reason="POSIX file modes")
def test_written_files_follow_umask(tmp_path, ramp_volume):
    old = os.umask(0o022)
    try:
        export_nifti(ramp_volume, tmp_path / "vol.nii")
        export_png(np.zeros((2, 3, 4), dtype=np.uint8), tmp_path / "img.png")
    finally:
        os.umask(old)

    assert (tmp_path / "vol.nii").stat().st_mode & 0o777 == 0o644
    assert (tmp_path / "img.png").stat().st_mode & 0o777 == 0o644
