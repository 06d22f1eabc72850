"""NIfTI-1 single-file codec: fixed 348-byte header plus voxel payload.

The header layout is described by ``HEADER_FIELDS`` in on-disk order. Every
field is little-endian; fields the exporter does not use are zero so that
identical volumes always serialize to identical bytes.
"""

from __future__ import annotations

import logging
import math
import re
import struct
from dataclasses import astuple, dataclass, field

import numpy as np

from egami.core.types import SampleType
from egami.core.volume import VoxelVolume
from egami.errors import DecodeError, MalformedRecord

logger = logging.getLogger(__name__)

HEADER_SIZE = 348
VOX_OFFSET = 352
NIFTI_MAGIC = b"n+1\x00"
DESCRIPTION = b"egami NIfTI-1 export"

XFORM_SCANNER_ANAT = 1
UNITS_MM = 2
UNITS_SEC = 8

# (field name, struct format) in on-disk order.
HEADER_FIELDS: list[tuple[str, str]] = [
    ("sizeof_hdr", "i"),
    ("data_type", "10s"),
    ("db_name", "18s"),
    ("extents", "i"),
    ("session_error", "h"),
    ("regular", "B"),
    ("dim_info", "B"),
    ("dim", "8h"),
    ("intent_p1", "f"),
    ("intent_p2", "f"),
    ("intent_p3", "f"),
    ("intent_code", "h"),
    ("datatype", "h"),
    ("bitpix", "h"),
    ("slice_start", "h"),
    ("pixdim", "8f"),
    ("vox_offset", "f"),
    ("scl_slope", "f"),
    ("scl_inter", "f"),
    ("slice_end", "h"),
    ("slice_code", "B"),
    ("xyzt_units", "B"),
    ("cal_max", "f"),
    ("cal_min", "f"),
    ("slice_duration", "f"),
    ("toffset", "f"),
    ("glmax", "i"),
    ("glmin", "i"),
    ("descrip", "80s"),
    ("aux_file", "24s"),
    ("qform_code", "h"),
    ("sform_code", "h"),
    ("quatern_b", "f"),
    ("quatern_c", "f"),
    ("quatern_d", "f"),
    ("qoffset_x", "f"),
    ("qoffset_y", "f"),
    ("qoffset_z", "f"),
    ("srow_x", "4f"),
    ("srow_y", "4f"),
    ("srow_z", "4f"),
    ("intent_name", "16s"),
    ("magic", "4s"),
]

_HEADER_STRUCT = struct.Struct("<" + "".join(fmt for _, fmt in HEADER_FIELDS))
# Text fields lose their NUL padding on decode; magic keeps its terminator.
_TEXT_FIELDS = {"data_type", "db_name", "descrip", "aux_file", "intent_name"}


def _field_count(fmt: str) -> int:
    """Number of Python values a struct format contributes ("10s" -> 1, "8h" -> 8)."""
    match = re.fullmatch(r"(\d*)([a-zA-Z])", fmt)
    count, code = match.groups()
    if code == "s" or not count:
        return 1
    return int(count)


def _zeros(n: int, value=0):
    return field(default_factory=lambda: (value,) * n)


@dataclass
class NiftiHeader:
    """In-memory mirror of the NIfTI-1 header, one attribute per on-disk field."""

    sizeof_hdr: int = HEADER_SIZE
    data_type: bytes = b""
    db_name: bytes = b""
    extents: int = 0
    session_error: int = 0
    regular: int = 0
    dim_info: int = 0
    dim: tuple[int, ...] = _zeros(8)
    intent_p1: float = 0.0
    intent_p2: float = 0.0
    intent_p3: float = 0.0
    intent_code: int = 0
    datatype: int = 0
    bitpix: int = 0
    slice_start: int = 0
    pixdim: tuple[float, ...] = _zeros(8, 0.0)
    vox_offset: float = 0.0
    scl_slope: float = 0.0
    scl_inter: float = 0.0
    slice_end: int = 0
    slice_code: int = 0
    xyzt_units: int = 0
    cal_max: float = 0.0
    cal_min: float = 0.0
    slice_duration: float = 0.0
    toffset: float = 0.0
    glmax: int = 0
    glmin: int = 0
    descrip: bytes = b""
    aux_file: bytes = b""
    qform_code: int = 0
    sform_code: int = 0
    quatern_b: float = 0.0
    quatern_c: float = 0.0
    quatern_d: float = 0.0
    qoffset_x: float = 0.0
    qoffset_y: float = 0.0
    qoffset_z: float = 0.0
    srow_x: tuple[float, ...] = _zeros(4, 0.0)
    srow_y: tuple[float, ...] = _zeros(4, 0.0)
    srow_z: tuple[float, ...] = _zeros(4, 0.0)
    intent_name: bytes = b""
    magic: bytes = NIFTI_MAGIC

    @property
    def rank(self) -> int:
        return int(self.dim[0])

    @property
    def shape(self) -> tuple[int, ...]:
        """Axis sizes ``dim[1..rank]``."""
        return tuple(int(d) for d in self.dim[1:1 + self.rank])

    @property
    def sample_type(self) -> SampleType:
        return SampleType.from_nifti_code(self.datatype)

    @property
    def payload_size(self) -> int:
        count = 1
        for size in self.shape:
            count *= size
        return count * self.bitpix // 8


def _f32(value: float) -> float:
    """Round to the nearest float32 so the value survives a write/read cycle."""
    return float(np.float32(value))


def build_header(volume: VoxelVolume) -> NiftiHeader:
    """Describe ``volume`` with a diagonal scanner-anatomical affine and identity scaling."""
    rank = volume.rank
    sizes = list(volume.dims) + [1] * (4 - rank)
    spacing = [_f32(s) for s in volume.voxel_spacing] + [1.0] * (4 - rank)
    sx, sy, sz = spacing[:3]
    sample_type = volume.data_type

    units = UNITS_MM | UNITS_SEC if rank == 4 else UNITS_MM

    return NiftiHeader(
        dim=(rank, *sizes, 1, 1, 1),
        datatype=sample_type.nifti_code,
        bitpix=sample_type.bitpix,
        # pixdim[0] is qfac
        pixdim=(1.0, *spacing, 1.0, 1.0, 1.0),
        vox_offset=float(VOX_OFFSET),
        scl_slope=1.0,
        scl_inter=0.0,
        xyzt_units=units,
        descrip=DESCRIPTION,
        qform_code=XFORM_SCANNER_ANAT,
        sform_code=XFORM_SCANNER_ANAT,
        srow_x=(sx, 0.0, 0.0, 0.0),
        srow_y=(0.0, sy, 0.0, 0.0),
        srow_z=(0.0, 0.0, sz, 0.0),
    )


def pack_header(header: NiftiHeader) -> bytes:
    """Serialize ``header`` to exactly 348 little-endian bytes."""
    values: list = []
    for (name, fmt), value in zip(HEADER_FIELDS, astuple(header)):
        if _field_count(fmt) > 1:
            values.extend(value)
        else:
            values.append(value)
    try:
        return _HEADER_STRUCT.pack(*values)
    except struct.error as exc:
        raise MalformedRecord(f"Header field out of range: {exc}") from exc


def unpack_header(data: bytes) -> NiftiHeader:
    """Parse the first 348 bytes of ``data`` into a header.

    Raises:
        DecodeError: input is short, byte-swapped, or lacks the ``n+1`` magic.
    """
    if len(data) < HEADER_SIZE:
        raise DecodeError(
            f"NIfTI header needs {HEADER_SIZE} bytes, got {len(data)}"
        )
    raw = _HEADER_STRUCT.unpack_from(data, 0)

    values: dict = {}
    pos = 0
    for name, fmt in HEADER_FIELDS:
        n = _field_count(fmt)
        if n > 1:
            values[name] = tuple(raw[pos:pos + n])
        else:
            value = raw[pos]
            if name in _TEXT_FIELDS:
                value = value.rstrip(b"\x00")
            values[name] = value
        pos += n

    if values["sizeof_hdr"] != HEADER_SIZE:
        if struct.unpack(">i", data[:4])[0] == HEADER_SIZE:
            raise DecodeError("Big-endian NIfTI files are not supported by the native decoder")
        raise DecodeError(f"Invalid sizeof_hdr {values['sizeof_hdr']}, expected {HEADER_SIZE}")
    if values["magic"] != NIFTI_MAGIC:
        raise DecodeError(f"Unrecognized NIfTI magic {values['magic']!r}")

    return NiftiHeader(**values)


def encode(volume: VoxelVolume) -> bytes:
    """Serialize ``volume`` as a single-file NIfTI-1 image (header, 4 zero bytes, payload)."""
    header = pack_header(build_header(volume))
    gap = bytes(VOX_OFFSET - HEADER_SIZE)
    return header + gap + volume.data


def decode(data: bytes) -> tuple[NiftiHeader, bytes]:
    """Split a single-file NIfTI-1 image into its header and voxel payload.

    Raises:
        DecodeError: malformed header, bad offset, or truncated payload.
    """
    header = unpack_header(data)
    rank = header.rank
    if not 1 <= rank <= 7 or any(size <= 0 for size in header.shape):
        raise DecodeError(f"Invalid NIfTI dims {header.dim}")
    if header.bitpix <= 0 or header.bitpix % 8:
        raise DecodeError(f"Invalid bitpix {header.bitpix}")

    if not math.isfinite(header.vox_offset):
        raise DecodeError(f"Invalid voxel offset {header.vox_offset}")
    offset = int(header.vox_offset)
    if offset < HEADER_SIZE or offset > len(data):
        raise DecodeError(f"Voxel offset {offset} outside file of {len(data)} bytes")

    end = offset + header.payload_size
    if end > len(data):
        raise DecodeError(
            f"Voxel payload truncated: need {header.payload_size} bytes at offset {offset}, "
            f"file has {len(data) - offset}"
        )
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"Decoded NIfTI header: dims {header.shape}, datatype {header.datatype}")
    return header, bytes(data[offset:end])


def volume_from_nifti(header: NiftiHeader, payload: bytes) -> VoxelVolume:
    """Build a ``VoxelVolume`` from a decoded header and payload.

    Ranks below 3 gain singleton axes; trailing singleton axes beyond the
    fourth are dropped.

    Raises:
        UnsupportedDataType: the datatype code has no ``SampleType``.
        DecodeError: more than four non-singleton axes.
    """
    sample_type = header.sample_type
    dims = list(header.shape)
    spacing = [abs(float(s)) or 1.0 for s in header.pixdim[1:1 + len(dims)]]

    while len(dims) > 4 and dims[-1] == 1:
        dims.pop()
        spacing.pop()
    if len(dims) > 4:
        raise DecodeError(f"Volumes with more than 4 axes are not supported: {header.shape}")
    while len(dims) < 3:
        dims.append(1)
        spacing.append(1.0)

    return VoxelVolume(
        dims=tuple(dims),
        data_type=sample_type,
        voxel_spacing=tuple(spacing),
        data=payload,
    )


def header_field_offsets() -> dict[str, int]:
    """Byte offset of every header field."""
    offsets: dict[str, int] = {}
    pos = 0
    for name, fmt in HEADER_FIELDS:
        offsets[name] = pos
        pos += struct.calcsize("<" + fmt)
    return offsets
