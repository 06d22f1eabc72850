"""Slice rendering pipelines: NIfTI plane to PNG and DICOM frame to PNG."""

from __future__ import annotations

import logging
import time
from pathlib import Path

import numpy as np
import pydicom

from egami._console import console, print_saved
from egami.core.types import Axis, DicomRenderConfig, SliceRenderConfig
from egami.errors import InputNotFound, OutOfRange
from egami.io.dicom_reader import embedded_window, list_dicom_files, load_frame, read_dataset
from egami.io.exporters import export_png
from egami.io.nifti_reader import read_volume
from egami.render.contrast import apply_window, compute_window
from egami.render.plane import extract_slice, normalize_plane

logger = logging.getLogger("egami")


def run_nii2png_from_config(config: SliceRenderConfig) -> Path:
    """Render one plane of a NIfTI volume to PNG."""
    start = time.time()
    axis = Axis.parse(config.axis)
    volume = read_volume(Path(config.input_path))
    logger.info(
        f"Loaded {config.input_path}: dims {'x'.join(str(d) for d in volume.dims)} "
        f"({volume.data_type.label})"
    )

    plane = extract_slice(volume, axis, config.slice_index, config.timepoint)
    output = Path(config.output)
    export_png(plane.to_rgba(), output)

    console.print(
        f"\n[green]Rendered {axis.name.lower()}-slice {config.slice_index}[/green] "
        f"({plane.width}x{plane.height})"
    )
    print_saved(output, time.time() - start)
    return output


def run_dcm2png_from_config(config: DicomRenderConfig) -> Path:
    """Render a DICOM file frame, or the Nth file of a directory, to PNG."""
    start = time.time()
    source, frame = select_dicom_source(Path(config.input_path), config.slice_index)
    ds = read_dataset(source)

    rgba = render_frame(ds, frame)
    output = Path(config.output)
    export_png(rgba, output)

    console.print(
        f"\n[green]Rendered {source.name}[/green] frame {frame} "
        f"({rgba.shape[1]}x{rgba.shape[0]})"
    )
    print_saved(output, time.time() - start)
    return output


def select_dicom_source(input_path: Path, index: int) -> tuple[Path, int]:
    """Resolve ``(file, frame)``: a directory index picks a file, a file index picks a frame."""
    if input_path.is_file():
        return input_path, index
    if not input_path.exists():
        raise InputNotFound(f"Path not found: {input_path}")

    files = list_dicom_files(input_path)
    if not files:
        raise InputNotFound(f"No DICOM files found in {input_path}")
    if not 0 <= index < len(files):
        raise OutOfRange(f"Slice {index} out of range (0-{len(files) - 1})")
    logger.info(f"Selected {files[index].name} ({index + 1} of {len(files)})")
    return files[index], 0


def render_frame(ds: pydicom.Dataset, frame: int = 0) -> np.ndarray:
    """RGBA uint8 raster of one frame in image orientation.

    Scalar frames use the computed window, then the embedded
    WindowCenter/WindowWidth, then plain min/max stretching.
    """
    pixels = load_frame(ds, frame)
    if pixels.ndim == 3:
        rgb = pixels
    else:
        window = compute_window(pixels)
        if window is None:
            window = embedded_window(ds)
            if window is not None:
                logger.info(f"Using embedded window: center={window.center}, width={window.width}")
        gray = apply_window(pixels, window) if window is not None else normalize_plane(pixels)
        rgb = np.repeat(gray[..., np.newaxis], 3, axis=2)

    alpha = np.full(rgb.shape[:2] + (1,), 255, dtype=np.uint8)
    return np.concatenate([rgb.astype(np.uint8), alpha], axis=2)
