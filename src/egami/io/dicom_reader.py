"""DICOM reader: scan directories, decode datasets into slice records and frames."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pydicom
from pydicom.errors import InvalidDicomError
from pydicom.multival import MultiValue

from egami.core.types import (
    Diagnostics,
    PixelPayload,
    SeriesInfo,
    SliceRecord,
    WindowLevel,
)
from egami.errors import InputNotFound, MalformedRecord, OutOfRange, UnsupportedDataType
from egami.methods.base import PixelStrategy, run_in_order
from egami.methods.registry import pixel_strategies

logger = logging.getLogger(__name__)

DICOM_EXTENSIONS = {".dcm", ".dicom", ""}


def is_dicom_file(path: Path) -> bool:
    """True for regular, non-hidden files with a DICOM-like extension."""
    path = Path(path)
    if not path.is_file() or path.name.startswith("."):
        return False
    return path.suffix.lower() in DICOM_EXTENSIONS


def list_dicom_files(directory: Path) -> list[Path]:
    """DICOM candidates directly inside ``directory``, sorted by name."""
    directory = Path(directory)
    if not directory.is_dir():
        raise InputNotFound(f"Directory not found: {directory}")
    return sorted(p for p in directory.iterdir() if is_dicom_file(p))


def collect_inputs(input_path: Path) -> list[Path]:
    """Resolve a file or directory argument into the DICOM files to read."""
    input_path = Path(input_path)
    if input_path.is_file():
        return [input_path]
    if not input_path.exists():
        raise InputNotFound(f"Path not found: {input_path}")

    files = list_dicom_files(input_path)
    if not files:
        raise InputNotFound(f"No DICOM files found in {input_path}")
    return files


def read_dataset(path: Path, stop_before_pixels: bool = False) -> pydicom.Dataset:
    try:
        return pydicom.dcmread(str(path), stop_before_pixels=stop_before_pixels)
    except (InvalidDicomError, OSError, EOFError, ValueError) as exc:
        raise MalformedRecord(f"Cannot read DICOM file {path}: {exc}") from exc


def record_from_dataset(
    ds: pydicom.Dataset,
    payload: PixelPayload,
    filename: str = "",
) -> SliceRecord:
    """Build a ``SliceRecord`` from dataset metadata and an extracted payload."""
    series_id = ds.get("SeriesInstanceUID")
    description = ds.get("SeriesDescription")
    series_number = ds.get("SeriesNumber")

    return SliceRecord(
        series_id=str(series_id) if series_id else None,
        rows=int(ds.get("Rows", 0)),
        columns=int(ds.get("Columns", 0)),
        payload=payload,
        instance_index=_optional_int(ds.get("InstanceNumber")),
        samples_per_pixel=int(ds.get("SamplesPerPixel", 1)),
        bits_allocated=int(ds.get("BitsAllocated", 16)),
        frame_count=int(ds.get("NumberOfFrames", 1) or 1),
        pixel_spacing=_get_pixel_spacing(ds),
        slice_thickness=_get_slice_thickness(ds),
        filename=filename or str(getattr(ds, "filename", "") or ""),
        series_description=str(description) if description else None,
        series_number=_optional_int(series_number),
    )


def read_record(
    path: Path,
    strategies: list[PixelStrategy] | None = None,
) -> SliceRecord:
    """Read one file, extracting pixels with the first strategy that works.

    Raises:
        MalformedRecord: the file is unreadable or every strategy failed.
    """
    ds = read_dataset(path)
    strategies = strategies if strategies is not None else pixel_strategies()

    outcome = run_in_order(strategies, lambda strategy: strategy.extract(ds))
    if not outcome.succeeded:
        raise MalformedRecord(
            f"No pixel strategy could read {Path(path).name}: {outcome.failure_summary()}"
        )
    if outcome.failures:
        logger.debug(f"{Path(path).name}: used {outcome.used} after {outcome.failure_summary()}")
    return record_from_dataset(ds, outcome.value, filename=str(path))


def read_records(
    paths: list[Path],
    diagnostics: Diagnostics | None = None,
    strategies: list[PixelStrategy] | None = None,
) -> list[SliceRecord]:
    """Read every file; unreadable files are reported and skipped."""
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    strategies = strategies if strategies is not None else pixel_strategies()

    records = []
    for path in paths:
        try:
            records.append(read_record(path, strategies))
        except (MalformedRecord, UnsupportedDataType) as exc:
            diagnostics.report(Path(path).name, str(exc), exc)
    logger.info(f"Read {len(records)} of {len(paths)} DICOM files")
    return records


def read_headers(paths: list[Path], diagnostics: Diagnostics | None = None) -> list[SliceRecord]:
    """Read metadata only; records carry an empty payload."""
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    records = []
    for path in paths:
        try:
            ds = read_dataset(path, stop_before_pixels=True)
        except MalformedRecord as exc:
            diagnostics.report(Path(path).name, str(exc), exc)
            continue
        records.append(record_from_dataset(ds, PixelPayload.raw(b""), filename=str(path)))
    return records


def load_frame(ds: pydicom.Dataset, frame: int = 0) -> np.ndarray:
    """Decoded samples of one frame: (rows, cols) or (rows, cols, 3) for RGB.

    Stored values are returned as-is; rescale slope/intercept is not applied.
    """
    frame_count = int(ds.get("NumberOfFrames", 1) or 1)
    if not 0 <= frame < frame_count:
        raise OutOfRange(f"Frame {frame} out of range (0-{frame_count - 1})")

    try:
        pixels = ds.pixel_array
    except Exception as exc:
        raise UnsupportedDataType(f"Cannot decode pixel data: {exc}") from exc

    spp = int(ds.get("SamplesPerPixel", 1))
    spatial_ndim = 3 if spp > 1 else 2
    if pixels.ndim > spatial_ndim:
        pixels = pixels[frame]
    if spp > 1:
        return np.asarray(pixels[..., :3], dtype=np.uint8)
    return pixels


def embedded_window(ds: pydicom.Dataset) -> WindowLevel | None:
    """First WindowCenter/WindowWidth pair stored in the dataset, if usable."""
    center = ds.get("WindowCenter")
    width = ds.get("WindowWidth")
    if center is None or width is None:
        return None
    try:
        center = float(_first(center))
        width = float(_first(width))
    except (TypeError, ValueError):
        return None
    if width <= 0:
        return None
    return WindowLevel(center=center, width=width)


def describe_series(series_list) -> list[SeriesInfo]:
    """Summarise grouped series for listing."""
    infos = []
    for series in series_list:
        first = series.records[0]
        frames = first.frame_count
        if frames > 1:
            dims = f"{first.columns}x{first.rows}x{frames}x{series.record_count}"
        else:
            dims = f"{first.columns}x{first.rows}x{series.record_count}"
        infos.append(
            SeriesInfo(
                series_id=series.series_id,
                description=series.description or "",
                record_count=series.record_count,
                frame_count=frames,
                dimensions=dims,
            )
        )
    return infos


def _first(value):
    if isinstance(value, (list, tuple, MultiValue)):
        return value[0] if len(value) else None
    return value


def _optional_int(value) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _get_pixel_spacing(ds: pydicom.Dataset) -> tuple[float, float]:
    """Extract (row, column) pixel spacing from dataset."""
    spacing = ds.get("PixelSpacing")
    if spacing:
        return (float(spacing[0]), float(spacing[1]))

    # Projection radiography and ultrasound
    spacing = ds.get("ImagerPixelSpacing")
    if spacing:
        return (float(spacing[0]), float(spacing[1]))

    # Enhanced multi-frame objects keep it in the shared functional groups
    shared = ds.get("SharedFunctionalGroupsSequence")
    if shared:
        measures = shared[0].get("PixelMeasuresSequence")
        if measures and measures[0].get("PixelSpacing"):
            spacing = measures[0].PixelSpacing
            return (float(spacing[0]), float(spacing[1]))

    logger.debug("No pixel spacing found, using default 1.0mm")
    return (1.0, 1.0)


def _get_slice_thickness(ds: pydicom.Dataset) -> float:
    thickness = ds.get("SliceThickness")
    if thickness:
        return float(thickness)
    shared = ds.get("SharedFunctionalGroupsSequence")
    if shared:
        measures = shared[0].get("PixelMeasuresSequence")
        if measures and measures[0].get("SliceThickness"):
            return float(measures[0].SliceThickness)
    return 1.0
