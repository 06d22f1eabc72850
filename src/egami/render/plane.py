"""Extract 2D planes from voxel volumes along a principal axis."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from egami.core.types import Axis, WindowLevel
from egami.core.volume import VoxelVolume
from egami.errors import OutOfRange
from egami.render.contrast import apply_window

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlaneSamples:
    """Samples of one plane in volume orientation.

    ``samples`` is shaped (height, width) for scalar data or
    (height, width, 3) for RGB. Row 0 is the lowest coordinate along the
    plane's vertical axis; ``raster`` flips rows into image orientation.
    """

    width: int
    height: int
    channels: int
    samples: np.ndarray

    @property
    def is_rgb(self) -> bool:
        return self.channels == 3

    @property
    def raster(self) -> np.ndarray:
        return np.flipud(self.samples)

    def to_rgba(self, window: WindowLevel | None = None) -> np.ndarray:
        """Image-oriented RGBA uint8 array of shape (height, width, 4).

        RGB samples pass through unchanged. Scalar samples go through
        ``window`` when given, else min/max normalization.
        """
        raster = self.raster
        if self.is_rgb:
            rgb = raster.astype(np.uint8)
        else:
            gray = apply_window(raster, window) if window is not None else normalize_plane(raster)
            rgb = np.repeat(gray[..., np.newaxis], 3, axis=2)
        alpha = np.full((self.height, self.width, 1), 255, dtype=np.uint8)
        return np.concatenate([rgb, alpha], axis=2)


def extract_slice(
    volume: VoxelVolume,
    axis: Axis | str,
    index: int,
    timepoint: int = 0,
) -> PlaneSamples:
    """Take the plane at ``index`` along ``axis`` from one timepoint.

    Z yields an (x, y) sheet, Y an (x, z) sheet and X a (y, z) sheet; the
    first listed coordinate is the horizontal one.

    Raises:
        OutOfRange: ``index`` or ``timepoint`` lies outside the volume.
    """
    if not isinstance(axis, Axis):
        axis = Axis.parse(axis)

    size = volume.dims[axis]
    if not 0 <= index < size:
        raise OutOfRange(
            f"Slice {index} out of range for axis {axis.name.lower()} (0-{size - 1})"
        )
    if not 0 <= timepoint < volume.timepoints:
        raise OutOfRange(f"Timepoint {timepoint} out of range (0-{volume.timepoints - 1})")

    # (z, y, x[, c]) for the selected timepoint
    grid = volume.as_array()[timepoint]
    if axis is Axis.Z:
        plane = grid[index]
    elif axis is Axis.Y:
        plane = grid[:, index]
    else:
        plane = grid[:, :, index]

    height, width = plane.shape[:2]
    logger.debug(f"Extracted {axis.name.lower()}={index} plane: {width}x{height}")
    return PlaneSamples(
        width=width,
        height=height,
        channels=volume.samples_per_pixel,
        samples=np.array(plane),
    )


def normalize_plane(samples) -> np.ndarray:
    """Stretch scalar samples to 0-255; a constant plane maps to zeros."""
    values = np.asarray(samples, dtype=np.float64)
    if values.size == 0:
        return np.zeros(values.shape, dtype=np.uint8)
    lo = float(values.min())
    span = float(values.max()) - lo or 1.0
    scaled = (values - lo) / span * 255.0
    return np.clip(np.floor(scaled + 0.5), 0, 255).astype(np.uint8)
