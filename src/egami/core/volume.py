"""Volume data structure shared by the NIfTI codec and the slice renderer."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from egami.core.types import SampleType
from egami.errors import MalformedRecord


@dataclass(frozen=True)
class VoxelVolume:
    """3D (x, y, z) or 4D (x, y, z, t) voxel grid stored as a flat byte buffer.

    ``data`` is laid out with x varying fastest, then y, z and t. RGB volumes
    store three consecutive uint8 samples per voxel.
    """

    dims: tuple[int, ...]
    data_type: SampleType
    voxel_spacing: tuple[float, ...]
    data: bytes

    def __post_init__(self):
        dims = tuple(int(d) for d in self.dims)
        if len(dims) not in (3, 4) or any(d <= 0 for d in dims):
            raise MalformedRecord(f"Volume needs 3 or 4 positive dims, got {dims}")
        spacing = tuple(float(s) for s in self.voxel_spacing)
        if len(spacing) != len(dims):
            raise MalformedRecord(
                f"Spacing {spacing} does not match {len(dims)} volume axes"
            )
        object.__setattr__(self, "dims", dims)
        object.__setattr__(self, "voxel_spacing", spacing)
        object.__setattr__(self, "data", bytes(self.data))
        if len(self.data) != self.expected_nbytes:
            raise MalformedRecord(
                f"Volume buffer holds {len(self.data)} bytes, "
                f"expected {self.expected_nbytes} for dims {dims} ({self.data_type.label})"
            )

    @property
    def rank(self) -> int:
        return len(self.dims)

    @property
    def samples_per_pixel(self) -> int:
        return self.data_type.samples_per_pixel

    @property
    def bytes_per_sample(self) -> int:
        return self.data_type.bytes_per_sample

    @property
    def voxel_count(self) -> int:
        return math.prod(self.dims)

    @property
    def expected_nbytes(self) -> int:
        return self.voxel_count * self.samples_per_pixel * self.bytes_per_sample

    @property
    def timepoints(self) -> int:
        return self.dims[3] if self.rank == 4 else 1

    def as_array(self) -> np.ndarray:
        """Read-only view shaped ``(t, z, y, x)`` plus a trailing channel axis for RGB.

        3D volumes get a leading time axis of length 1 so callers can index
        both ranks uniformly.
        """
        nx, ny, nz = self.dims[:3]
        shape: tuple[int, ...] = (self.timepoints, nz, ny, nx)
        if self.samples_per_pixel > 1:
            shape = shape + (self.samples_per_pixel,)
        return np.frombuffer(self.data, dtype=self.data_type.dtype).reshape(shape)
