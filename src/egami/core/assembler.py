"""Assemble an ordered series of slice records into a single voxel volume."""

from __future__ import annotations

import logging

from egami.core.types import DEFAULT_SAMPLE_TYPE, Diagnostics, SampleType, Series, SliceRecord
from egami.core.volume import VoxelVolume
from egami.errors import AssemblyConflict, MalformedRecord

logger = logging.getLogger(__name__)


def assemble(series: Series, diagnostics: Diagnostics | None = None) -> VoxelVolume:
    """Merge the records of ``series`` into one 3D or 4D volume.

    Single-frame records become z-slices. Multi-frame records with a uniform
    frame count become timepoints, each holding ``frame_count`` z-slices; a
    lone multi-frame record yields a 3D volume. Geometry is taken from the
    first record.

    Raises:
        MalformedRecord: the series has no records.
        AssemblyConflict: frame counts or sample types differ across records.
    """
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    records = series.records
    if not records:
        raise MalformedRecord(f"Series {series.series_id} has no records")

    first = records[0]
    sample_type = _resolve_sample_type(series)
    frame_counts = {r.frame_count for r in records}

    if frame_counts == {1}:
        frames_per_record = 1
    elif len(frame_counts) == 1 and first.frame_count > 1:
        frames_per_record = first.frame_count
    else:
        raise AssemblyConflict(
            f"Series {series.series_id} mixes frame counts {sorted(frame_counts)}"
        )

    block_size = frames_per_record * bytes_per_frame(first, sample_type)

    buffer = bytearray(block_size * len(records))
    for slot, record in enumerate(records):
        _check_geometry(record, first, diagnostics)
        block = _fit_block(record, block_size, diagnostics)
        buffer[slot * block_size:(slot + 1) * block_size] = block

    col_spacing = float(first.pixel_spacing[1])
    row_spacing = float(first.pixel_spacing[0])
    thickness = float(first.slice_thickness)

    if frames_per_record == 1:
        dims = (first.columns, first.rows, len(records))
        spacing = (col_spacing, row_spacing, thickness)
    elif len(records) == 1:
        dims = (first.columns, first.rows, frames_per_record)
        spacing = (col_spacing, row_spacing, thickness)
    else:
        dims = (first.columns, first.rows, frames_per_record, len(records))
        spacing = (col_spacing, row_spacing, thickness, 1.0)

    logger.info(
        f"Assembled series {series.label}: dims {'x'.join(str(d) for d in dims)} "
        f"({sample_type.label})"
    )
    return VoxelVolume(
        dims=dims,
        data_type=sample_type,
        voxel_spacing=spacing,
        data=bytes(buffer),
    )


def bytes_per_frame(record: SliceRecord, sample_type: SampleType) -> int:
    """Size of one frame of ``record`` when stored as ``sample_type``."""
    return record.columns * record.rows * sample_type.samples_per_pixel * sample_type.bytes_per_sample


def _resolve_sample_type(series: Series) -> SampleType:
    """First typed payload wins; untyped payloads use the int16 default."""
    typed = {r.payload.sample_type for r in series.records if r.payload.is_typed}
    if len(typed) > 1:
        labels = sorted(t.label for t in typed)
        raise AssemblyConflict(
            f"Series {series.series_id} mixes sample types {labels}"
        )
    if typed:
        sample_type = typed.pop()
        if any(not r.payload.is_typed for r in series.records) and sample_type is not DEFAULT_SAMPLE_TYPE:
            raise AssemblyConflict(
                f"Series {series.series_id} mixes {sample_type.label} and untyped pixel data"
            )
        return sample_type
    return DEFAULT_SAMPLE_TYPE


def _check_geometry(record: SliceRecord, first: SliceRecord, diagnostics: Diagnostics) -> None:
    if (record.rows, record.columns) != (first.rows, first.columns):
        diagnostics.report(
            record.filename or "<unnamed record>",
            f"Frame size {record.columns}x{record.rows} differs from "
            f"{first.columns}x{first.rows}; pixel data will be padded or truncated",
        )


def _fit_block(record: SliceRecord, size: int, diagnostics: Diagnostics) -> bytes:
    """Zero-pad or truncate the record's pixel bytes to exactly ``size`` bytes."""
    data = record.pixel_bytes
    if len(data) == size:
        return data
    unit = record.filename or "<unnamed record>"
    if len(data) > size:
        diagnostics.report(unit, f"Pixel data truncated from {len(data)} to {size} bytes")
        return data[:size]
    diagnostics.report(unit, f"Pixel data padded from {len(data)} to {size} bytes")
    return data + bytes(size - len(data))
