"""NIfTI decoders: the built-in header codec first, nibabel for everything else."""

from __future__ import annotations

import logging

import numpy as np

from egami.core.types import SampleType
from egami.core.volume import VoxelVolume
from egami.errors import DecodeError, UnsupportedDataType
from egami.io import nifti_header
from egami.methods.base import VolumeDecoder
from egami.methods.registry import register_decoder

logger = logging.getLogger(__name__)

_NATIVE_DTYPES = {
    np.dtype(np.uint8): SampleType.UINT8,
    np.dtype(np.int16): SampleType.INT16,
    np.dtype(np.float32): SampleType.FLOAT32,
    np.dtype(np.float64): SampleType.FLOAT64,
}


@register_decoder("native")
class NativeNiftiDecoder(VolumeDecoder):
    """Little-endian single-file NIfTI-1 via the built-in header codec."""

    description = "Built-in NIfTI-1 (n+1, little-endian) decoder"

    def decode(self, data: bytes) -> VoxelVolume:
        header, payload = nifti_header.decode(data)
        return nifti_header.volume_from_nifti(header, payload)


@register_decoder("nibabel")
class NibabelDecoder(VolumeDecoder):
    """Any single-file image nibabel can parse (big-endian, NIfTI-2, scaled data)."""

    description = "nibabel single-file NIfTI-1/NIfTI-2 decoder"

    def decode(self, data: bytes) -> VoxelVolume:
        import nibabel as nib

        image = None
        errors = []
        for image_class in (nib.Nifti1Image, nib.Nifti2Image):
            try:
                image = image_class.from_bytes(data)
                break
            except Exception as exc:
                errors.append(f"{image_class.__name__}: {exc}")
        if image is None:
            raise DecodeError(f"nibabel could not parse image ({'; '.join(errors)})")

        try:
            array = np.asanyarray(image.dataobj)
        except Exception as exc:
            raise DecodeError(f"nibabel could not read voxel data: {exc}") from exc
        zooms = [abs(float(z)) or 1.0 for z in image.header.get_zooms()]
        return _volume_from_array(array, zooms)

    @classmethod
    def check_dependencies(cls) -> tuple[bool, str]:
        try:
            import nibabel  # noqa: F401
        except ImportError:
            return False, "Install nibabel to read big-endian or NIfTI-2 files."
        return True, "nibabel is installed."


def _volume_from_array(array: np.ndarray, zooms: list[float]) -> VoxelVolume:
    """Convert an (x, y, z[, t]) array into a flat x-fastest ``VoxelVolume``."""
    if array.dtype.names:
        # RGB24 arrives as a structured (R, G, B) dtype
        if len(array.dtype.names) != 3:
            raise UnsupportedDataType(f"Unsupported structured dtype {array.dtype}")
        array = np.stack([array[name] for name in array.dtype.names], axis=-1)
        sample_type = SampleType.RGB24
        spatial = array.shape[:-1]
    else:
        array, sample_type = _coerce_scalar(array)
        spatial = array.shape

    dims = list(spatial)
    spacing = list(zooms[:len(dims)]) + [1.0] * (len(dims) - len(zooms))
    while len(dims) > 4 and dims[-1] == 1:
        dims.pop()
        spacing.pop()
    if len(dims) > 4:
        raise DecodeError(f"Volumes with more than 4 axes are not supported: {spatial}")
    while len(dims) < 3:
        dims.append(1)
        spacing.append(1.0)

    if sample_type is SampleType.RGB24:
        data = np.moveaxis(array.astype(np.uint8, copy=False), -1, 0).tobytes(order="F")
    else:
        data = array.astype(sample_type.dtype, copy=False).tobytes(order="F")

    return VoxelVolume(
        dims=tuple(dims),
        data_type=sample_type,
        voxel_spacing=tuple(spacing),
        data=data,
    )


def _coerce_scalar(array: np.ndarray) -> tuple[np.ndarray, SampleType]:
    """Keep directly representable dtypes; widen the rest to float."""
    native = array.dtype.newbyteorder("=")
    for dtype, sample_type in _NATIVE_DTYPES.items():
        if native == dtype:
            return array, sample_type
    if array.dtype.kind not in "biuf":
        raise UnsupportedDataType(f"Unsupported voxel dtype {array.dtype}")
    wide = array.dtype.itemsize >= 4 and array.dtype.kind in "iu"
    target = SampleType.FLOAT64 if wide else SampleType.FLOAT32
    logger.debug(f"Converting {array.dtype} voxels to {target.label}")
    return array.astype(target.dtype), target
