"""Exception hierarchy for conversion and rendering failures."""

from __future__ import annotations


class EgamiError(Exception):
    """Base class for every error raised by egami."""


class InputNotFound(EgamiError, FileNotFoundError):
    """Input path is missing or holds no usable files."""


class UnsupportedDataType(EgamiError):
    """Sample type cannot be represented or decoded."""


class MalformedRecord(EgamiError):
    """A record is missing required identity or has inconsistent pixel data."""


class AssemblyConflict(EgamiError):
    """Records of one series cannot be merged into a single volume."""


class OutOfRange(EgamiError, IndexError):
    """Slice, frame or timepoint index lies outside the volume bounds."""


class DecodeError(EgamiError, ValueError):
    """Binary volume data is truncated or carries an unknown magic cookie."""


class ConversionFailed(EgamiError):
    """A batch conversion finished without producing any output."""
