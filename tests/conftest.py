"""Shared test fixtures: synthetic DICOM files and small voxel volumes."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
from pydicom.dataset import FileDataset, FileMetaDataset
from pydicom.uid import ExplicitVRLittleEndian, generate_uid

from egami.core.types import PixelPayload, SampleType, SliceRecord
from egami.core.volume import VoxelVolume

ROWS = 6
COLS = 8


def slice_pixels(instance: int, rows: int = ROWS, cols: int = COLS) -> np.ndarray:
    """Deterministic uint16 ramp, distinct per instance."""
    yy, xx = np.mgrid[0:rows, 0:cols]
    return (instance * 100 + yy * cols + xx).astype(np.uint16)


@pytest.fixture
def dicom_directory(tmp_path) -> Path:
    """Directory with one 5-slice series, files named out of instance order."""
    directory = tmp_path / "series"
    directory.mkdir()
    series_uid = generate_uid()

    for i, instance in enumerate([3, 1, 5, 2, 4]):
        _write_synthetic_dicom(
            directory / f"img_{i:03d}.dcm",
            series_uid=series_uid,
            instance_number=instance,
            pixels=slice_pixels(instance),
            description="Axial T1",
            series_number=2,
        )

    return directory


@pytest.fixture
def multi_series_directory(tmp_path) -> Path:
    """Two series, a record without series UID, a broken file and a text file."""
    directory = tmp_path / "study"
    directory.mkdir()
    first_uid = generate_uid()
    second_uid = generate_uid()

    for i in range(3):
        _write_synthetic_dicom(
            directory / f"a_{i}.dcm",
            series_uid=first_uid,
            instance_number=i + 1,
            pixels=slice_pixels(i + 1),
            description="Axial T1",
            series_number=2,
        )
    for i in range(2):
        _write_synthetic_dicom(
            directory / f"b_{i}.dcm",
            series_uid=second_uid,
            instance_number=i + 1,
            pixels=slice_pixels(i + 10),
            series_number=7,
        )
    _write_synthetic_dicom(
        directory / "c_orphan.dcm",
        series_uid=None,
        instance_number=1,
        pixels=slice_pixels(99),
    )
    (directory / "d_broken.dcm").write_bytes(b"not a dicom file")
    (directory / "notes.txt").write_text("ignored")

    return directory


@pytest.fixture
def multiframe_file(tmp_path) -> Path:
    """Single file holding four 6x8 frames."""
    path = tmp_path / "cine.dcm"
    frames = np.stack([slice_pixels(f) for f in range(4)])
    _write_synthetic_dicom(
        path,
        series_uid=generate_uid(),
        instance_number=1,
        pixels=frames,
        frames=4,
        description="Cine",
    )
    return path


@pytest.fixture
def rgb_file(tmp_path) -> Path:
    """Single 8-bit RGB file: red left half, blue right half."""
    path = tmp_path / "color.dcm"
    pixels = np.zeros((ROWS, COLS, 3), dtype=np.uint8)
    pixels[:, : COLS // 2, 0] = 255
    pixels[:, COLS // 2:, 2] = 255
    _write_synthetic_dicom(
        path,
        series_uid=generate_uid(),
        instance_number=1,
        pixels=pixels,
        samples_per_pixel=3,
    )
    return path


@pytest.fixture
def ramp_volume() -> VoxelVolume:
    """int16 volume with dims (4, 3, 2) whose voxel value is its linear index."""
    data = np.arange(4 * 3 * 2, dtype="<i2").tobytes()
    return VoxelVolume(
        dims=(4, 3, 2),
        data_type=SampleType.INT16,
        voxel_spacing=(0.5, 0.75, 2.0),
        data=data,
    )


@pytest.fixture
def record_factory():
    """Build in-memory slice records with 2x2 zero-filled int16 payloads by default."""
    return make_record


def make_record(
    series_id: str | None = "1.2.3",
    instance_index: int | None = None,
    filename: str = "",
    rows: int = 2,
    columns: int = 2,
    payload: PixelPayload | None = None,
    frame_count: int = 1,
    **kwargs,
) -> SliceRecord:
    if payload is None:
        payload = PixelPayload.raw(bytes(rows * columns * 2 * frame_count))
    return SliceRecord(
        series_id=series_id,
        rows=rows,
        columns=columns,
        payload=payload,
        instance_index=instance_index,
        frame_count=frame_count,
        filename=filename,
        **kwargs,
    )


def _write_synthetic_dicom(
    path: Path,
    series_uid: str | None,
    instance_number: int | None,
    pixels: np.ndarray,
    frames: int = 1,
    samples_per_pixel: int = 1,
    description: str | None = None,
    series_number: int | None = None,
    window: tuple[float, float] | None = None,
) -> None:
    """Write a single synthetic DICOM file."""
    file_meta = FileMetaDataset()
    file_meta.MediaStorageSOPClassUID = "1.2.840.10008.5.1.4.1.1.2"
    file_meta.MediaStorageSOPInstanceUID = generate_uid()
    file_meta.TransferSyntaxUID = ExplicitVRLittleEndian

    ds = FileDataset(str(path), {}, file_meta=file_meta, preamble=b"\x00" * 128)

    ds.SOPClassUID = "1.2.840.10008.5.1.4.1.1.2"
    ds.SOPInstanceUID = file_meta.MediaStorageSOPInstanceUID
    if series_uid is not None:
        ds.SeriesInstanceUID = series_uid
    ds.StudyInstanceUID = generate_uid()
    ds.Modality = "CT"
    if instance_number is not None:
        ds.InstanceNumber = instance_number
    if description is not None:
        ds.SeriesDescription = description
    if series_number is not None:
        ds.SeriesNumber = series_number
    ds.PixelSpacing = [0.5, 0.75]
    ds.SliceThickness = 2.0

    rows, cols = pixels.shape[-3:-1] if samples_per_pixel == 3 else pixels.shape[-2:]
    ds.Rows = int(rows)
    ds.Columns = int(cols)
    ds.SamplesPerPixel = samples_per_pixel
    if frames > 1:
        ds.NumberOfFrames = frames

    if samples_per_pixel == 3:
        ds.PhotometricInterpretation = "RGB"
        ds.PlanarConfiguration = 0
        ds.BitsAllocated = 8
        ds.BitsStored = 8
        ds.HighBit = 7
    else:
        ds.PhotometricInterpretation = "MONOCHROME2"
        bits = pixels.dtype.itemsize * 8
        ds.BitsAllocated = bits
        ds.BitsStored = bits
        ds.HighBit = bits - 1
    ds.PixelRepresentation = 0

    if window is not None:
        ds.WindowCenter = window[0]
        ds.WindowWidth = window[1]

    ds.PixelData = np.ascontiguousarray(pixels).tobytes()
    ds.save_as(str(path))
