"""File exporters: NIfTI volumes and PNG rasters, written atomically."""

from __future__ import annotations

import gzip
import io
import logging
import os
import tempfile
from pathlib import Path

import numpy as np
from PIL import Image

from egami.core.volume import VoxelVolume
from egami.io import nifti_header

logger = logging.getLogger(__name__)


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


def atomic_write(output_path: Path, data: bytes) -> None:
    """Write ``data`` to a temporary sibling file and move it into place.

    A failure at any point leaves no file at ``output_path``.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{output_path.name}.", suffix=".tmp", dir=output_path.parent
    )
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        # mkstemp creates the file 0600
        os.chmod(tmp_name, 0o666 & ~_current_umask())
        os.replace(tmp_name, output_path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def export_nifti(volume: VoxelVolume, output_path: Path) -> None:
    """Export ``volume`` as single-file NIfTI-1; ``.gz`` paths are gzip-compressed."""
    output_path = Path(output_path)
    data = nifti_header.encode(volume)
    if output_path.suffix.lower() == ".gz":
        # mtime=0 keeps the compressed bytes deterministic
        data = gzip.compress(data, mtime=0)
    atomic_write(output_path, data)
    logger.debug(f"Wrote {len(data)} bytes to {output_path}")


def export_png(rgba: np.ndarray, output_path: Path) -> None:
    """Encode an RGBA uint8 array of shape (height, width, 4) as PNG."""
    rgba = np.ascontiguousarray(rgba, dtype=np.uint8)
    if rgba.ndim != 3 or rgba.shape[2] != 4:
        raise ValueError(f"Expected (height, width, 4) RGBA array, got {rgba.shape}")

    buffer = io.BytesIO()
    Image.fromarray(rgba).save(buffer, format="PNG")
    atomic_write(Path(output_path), buffer.getvalue())
