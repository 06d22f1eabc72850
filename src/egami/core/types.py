"""Core data types for the egami pipeline."""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

from egami.errors import UnsupportedDataType

logger = logging.getLogger("egami")


class SampleType(enum.Enum):
    """Voxel sample types with their NIfTI-1 datatype code and bit width."""

    UINT8 = ("uint8", 2, 8)
    INT16 = ("int16", 4, 16)
    FLOAT32 = ("float32", 16, 32)
    FLOAT64 = ("float64", 64, 64)
    RGB24 = ("rgb24", 128, 24)

    def __init__(self, label: str, nifti_code: int, bitpix: int):
        self.label = label
        self.nifti_code = nifti_code
        self.bitpix = bitpix

    @property
    def samples_per_pixel(self) -> int:
        return 3 if self is SampleType.RGB24 else 1

    @property
    def bytes_per_sample(self) -> int:
        return self.bitpix // 8 // self.samples_per_pixel

    @property
    def dtype(self) -> np.dtype:
        """Little-endian numpy dtype of a single sample."""
        return np.dtype(_DTYPES[self])

    @classmethod
    def from_nifti_code(cls, code: int) -> SampleType:
        for member in cls:
            if member.nifti_code == code:
                return member
        raise UnsupportedDataType(f"Unsupported NIfTI datatype code: {code}")

    @classmethod
    def from_dtype(cls, dtype: np.dtype, samples_per_pixel: int = 1) -> SampleType:
        """Map a decoded numpy dtype onto a sample type.

        Unsigned 16-bit data is stored as int16, mirroring the default used
        for untyped 16-bit payloads.
        """
        dtype = np.dtype(dtype)
        if samples_per_pixel == 3:
            if dtype == np.uint8:
                return cls.RGB24
            raise UnsupportedDataType(f"Unsupported RGB sample type: {dtype}")
        if dtype == np.uint8:
            return cls.UINT8
        if dtype in (np.int16, np.uint16):
            return cls.INT16
        if dtype == np.float32:
            return cls.FLOAT32
        if dtype == np.float64:
            return cls.FLOAT64
        raise UnsupportedDataType(f"Unsupported sample type: {dtype}")


_DTYPES = {
    SampleType.UINT8: "u1",
    SampleType.INT16: "<i2",
    SampleType.FLOAT32: "<f4",
    SampleType.FLOAT64: "<f8",
    SampleType.RGB24: "u1",
}

DEFAULT_SAMPLE_TYPE = SampleType.INT16


class Axis(enum.IntEnum):
    """Principal volume axes; the value is the index into ``dims``."""

    X = 0
    Y = 1
    Z = 2

    @classmethod
    def parse(cls, value: str | int) -> Axis:
        """Accept ``x``/``y``/``z`` (any case) or ``1``/``2``/``3``."""
        text = str(value).strip().lower()
        if text in ("1", "2", "3"):
            return cls(int(text) - 1)
        if text in ("x", "y", "z"):
            return cls[text.upper()]
        raise ValueError(f"Invalid dimension '{value}'. Use 1 (x), 2 (y), or 3 (z)")


@dataclass(frozen=True)
class PixelPayload:
    """Pixel bytes of one record, tagged with a sample type when known.

    ``sample_type`` is None for raw buffers whose interpretation is left to
    the assembler default.
    """

    data: bytes
    sample_type: SampleType | None = None

    @classmethod
    def raw(cls, data: bytes) -> PixelPayload:
        return cls(bytes(data), None)

    @classmethod
    def typed(cls, sample_type: SampleType, data: bytes) -> PixelPayload:
        return cls(bytes(data), sample_type)

    @property
    def is_typed(self) -> bool:
        return self.sample_type is not None


@dataclass
class SliceRecord:
    """One decoded 2D acquisition unit (possibly multi-frame)."""

    series_id: str | None
    rows: int
    columns: int
    payload: PixelPayload
    instance_index: int | None = None
    samples_per_pixel: int = 1
    bits_allocated: int = 16
    frame_count: int = 1
    pixel_spacing: tuple[float, float] = (1.0, 1.0)  # (row, column) mm
    slice_thickness: float = 1.0
    filename: str = ""
    series_description: str | None = None
    series_number: int | None = None

    @property
    def pixel_bytes(self) -> bytes:
        return self.payload.data


@dataclass
class Series:
    """Records sharing one series identity, in volume order."""

    series_id: str
    records: list[SliceRecord] = field(default_factory=list)
    description: str | None = None
    number: int | None = None

    @property
    def record_count(self) -> int:
        return len(self.records)

    @property
    def label(self) -> str:
        return self.description or self.series_id


@dataclass(frozen=True)
class WindowLevel:
    """Linear display window: ``center`` +/- ``width`` / 2."""

    center: float
    width: float

    def __post_init__(self):
        if not self.width > 0:
            raise ValueError(f"Window width must be positive, got {self.width}")

    @property
    def lower(self) -> float:
        return self.center - self.width / 2

    @property
    def upper(self) -> float:
        return self.center + self.width / 2


@dataclass
class Diagnostic:
    """Non-fatal outcome for a single record or series."""

    unit: str
    message: str
    error: Exception | None = None


DiagnosticCallback = Callable[[Diagnostic], None]


class Diagnostics:
    """Collects per-unit diagnostics and forwards them to an optional callback."""

    def __init__(self, callback: DiagnosticCallback | None = None):
        self.entries: list[Diagnostic] = []
        self._callback = callback

    def report(self, unit: str, message: str, error: Exception | None = None) -> Diagnostic:
        diagnostic = Diagnostic(unit=unit, message=message, error=error)
        self.entries.append(diagnostic)
        logger.warning(f"{unit}: {message}")
        if self._callback is not None:
            self._callback(diagnostic)
        return diagnostic

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)


@dataclass
class ConversionReport:
    """Outcome of a DICOM to NIfTI batch conversion."""

    written: list[Path] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)  # series id -> reason
    diagnostics: Diagnostics = field(default_factory=Diagnostics)

    @property
    def succeeded(self) -> bool:
        return bool(self.written)


@dataclass
class SeriesInfo:
    """Summary of a grouped series for listing."""

    series_id: str
    description: str
    record_count: int
    frame_count: int
    dimensions: str  # "512x512x120"


@dataclass
class ConvertConfig:
    """Configuration for the DICOM to NIfTI pipeline (from CLI flags)."""

    input_path: Path
    output: Path | None = None
    verbose: bool = False


@dataclass
class SliceRenderConfig:
    """Configuration for NIfTI slice to PNG rendering."""

    input_path: Path
    output: Path
    axis: str = "z"
    slice_index: int = 0
    timepoint: int = 0
    verbose: bool = False


@dataclass
class DicomRenderConfig:
    """Configuration for DICOM file/directory to PNG rendering."""

    input_path: Path
    output: Path
    slice_index: int = 0
    verbose: bool = False
