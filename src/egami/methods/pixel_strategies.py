"""Pixel extraction strategies: raw native PixelData first, pydicom decoding second."""

from __future__ import annotations

import logging

import numpy as np
import pydicom

from egami.core.types import PixelPayload, SampleType
from egami.errors import MalformedRecord, UnsupportedDataType
from egami.methods.base import PixelStrategy
from egami.methods.registry import register_pixel_strategy

logger = logging.getLogger(__name__)

INT16_MAX = 32767


def _expected_size(ds: pydicom.Dataset, bytes_per_sample: int) -> int:
    rows = int(getattr(ds, "Rows", 0))
    cols = int(getattr(ds, "Columns", 0))
    spp = int(getattr(ds, "SamplesPerPixel", 1))
    frames = int(getattr(ds, "NumberOfFrames", 1) or 1)
    return rows * cols * spp * frames * bytes_per_sample


def _source_name(ds: pydicom.Dataset) -> str:
    filename = getattr(ds, "filename", None)
    return str(filename) if filename else "<dataset>"


def _warn_if_int16_wraps(values: np.ndarray, filename: str) -> None:
    """Warn when unsigned 16-bit samples will not fit the int16 storage type."""
    if values.size and int(values.max()) > INT16_MAX:
        logger.warning(
            f"{filename}: unsigned 16-bit values up to {int(values.max())} "
            f"wrap to negative when stored as int16"
        )


@register_pixel_strategy("native")
class NativePixelStrategy(PixelStrategy):
    """Copy uncompressed little-endian pixel bytes without decoding."""

    description = "Raw PixelData bytes from uncompressed little-endian files"

    def extract(self, ds: pydicom.Dataset) -> PixelPayload:
        if "FloatPixelData" in ds:
            return self._typed(ds, SampleType.FLOAT32, ds.FloatPixelData)
        if "DoubleFloatPixelData" in ds:
            return self._typed(ds, SampleType.FLOAT64, ds.DoubleFloatPixelData)
        if "PixelData" not in ds:
            raise MalformedRecord("Dataset has no pixel data")

        file_meta = getattr(ds, "file_meta", None)
        syntax = getattr(file_meta, "TransferSyntaxUID", None)
        if syntax is not None and syntax.is_compressed:
            raise UnsupportedDataType(f"Compressed transfer syntax {syntax.name}")

        bits = int(getattr(ds, "BitsAllocated", 16))
        spp = int(getattr(ds, "SamplesPerPixel", 1))
        if bits > 8 and syntax is not None and not syntax.is_little_endian:
            raise UnsupportedDataType("Big-endian pixel data needs decoding")

        if spp == 3:
            if bits != 8:
                raise UnsupportedDataType(f"RGB data with {bits} bits allocated")
            if int(getattr(ds, "PlanarConfiguration", 0)) != 0:
                raise UnsupportedDataType("Planar RGB data needs decoding")
            if getattr(ds, "PhotometricInterpretation", "RGB") != "RGB":
                raise UnsupportedDataType(
                    f"Photometric interpretation {ds.PhotometricInterpretation} needs decoding"
                )
            return self._typed(ds, SampleType.RGB24, ds.PixelData)
        if spp != 1:
            raise UnsupportedDataType(f"Unsupported samples per pixel: {spp}")
        if bits == 8:
            return self._typed(ds, SampleType.UINT8, ds.PixelData)
        if bits == 16:
            # untyped: the assembler stores 16-bit data as int16
            data = bytes(ds.PixelData)[:_expected_size(ds, 2)]
            if int(getattr(ds, "PixelRepresentation", 0)) == 0:
                _warn_if_int16_wraps(np.frombuffer(data, dtype="<u2"), _source_name(ds))
            return PixelPayload.raw(data)
        raise UnsupportedDataType(f"Unsupported bits allocated: {bits}")

    @staticmethod
    def _typed(ds: pydicom.Dataset, sample_type: SampleType, data: bytes) -> PixelPayload:
        # odd-length PixelData carries one trailing pad byte
        size = _expected_size(ds, sample_type.bytes_per_sample)
        return PixelPayload.typed(sample_type, bytes(data)[:size])


@register_pixel_strategy("decoded")
class DecodedPixelStrategy(PixelStrategy):
    """Decode pixel data through ``Dataset.pixel_array`` (compressed syntaxes, planar RGB)."""

    description = "pydicom pixel_array decoding with installed image handlers"

    def extract(self, ds: pydicom.Dataset) -> PixelPayload:
        try:
            pixel_array = ds.pixel_array
        except Exception as exc:
            raise UnsupportedDataType(f"pydicom could not decode pixel data: {exc}") from exc

        spp = int(getattr(ds, "SamplesPerPixel", 1))
        dtype = pixel_array.dtype
        if spp == 1 and dtype.kind in "iu" and dtype.itemsize >= 4:
            # int16 cannot hold 32-bit samples
            logger.debug(f"Widening {dtype} pixel data to float64")
            pixel_array = pixel_array.astype(np.float64)
        elif dtype == np.uint16:
            _warn_if_int16_wraps(pixel_array, _source_name(ds))
        sample_type = SampleType.from_dtype(pixel_array.dtype, spp)
        data = np.ascontiguousarray(pixel_array).astype(sample_type.dtype, copy=False)
        return PixelPayload.typed(sample_type, data.tobytes())
