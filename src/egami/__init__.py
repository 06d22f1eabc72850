"""egami: convert DICOM series to NIfTI volumes and render slices as PNG."""

__version__ = "0.1.0"
