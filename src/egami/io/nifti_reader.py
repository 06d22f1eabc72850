"""Read NIfTI files (plain or gzip-compressed) into voxel volumes."""

from __future__ import annotations

import gzip
import logging
import zlib
from pathlib import Path

from egami.core.volume import VoxelVolume
from egami.errors import DecodeError, InputNotFound
from egami.methods.base import VolumeDecoder, run_in_order
from egami.methods.registry import volume_decoders

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"


def read_volume(
    input_path: Path,
    decoders: list[VolumeDecoder] | None = None,
) -> VoxelVolume:
    """Load a ``.nii`` or ``.nii.gz`` file.

    Raises:
        InputNotFound: the path is not a file.
        DecodeError: no decoder could parse the file.
    """
    input_path = Path(input_path)
    if not input_path.is_file():
        raise InputNotFound(f"NIfTI file not found: {input_path}")

    data = input_path.read_bytes()
    return load_volume(data, decoders=decoders, source=str(input_path))


def load_volume(
    data: bytes,
    decoders: list[VolumeDecoder] | None = None,
    source: str = "<bytes>",
) -> VoxelVolume:
    """Decode in-memory NIfTI bytes, inflating gzip content first."""
    data = maybe_decompress(data, source)
    decoders = decoders if decoders is not None else volume_decoders()

    outcome = run_in_order(decoders, lambda decoder: decoder.decode(data))
    if not outcome.succeeded:
        if not outcome.failures:
            raise DecodeError(f"No NIfTI decoder available for {source}")
        first_error = outcome.failures[0][1]
        if len(outcome.failures) == 1:
            raise first_error
        raise type(first_error)(
            f"Not a valid NIfTI file: {source} ({outcome.failure_summary()})"
        ) from first_error

    for name, error in outcome.failures:
        logger.info(f"Decoder {name} rejected {source}: {error}")
    volume = outcome.value
    logger.debug(
        f"Read {source} with {outcome.used} decoder: dims {volume.dims} ({volume.data_type.label})"
    )
    return volume


def maybe_decompress(data: bytes, source: str = "<bytes>") -> bytes:
    """Inflate gzip data; other input is returned unchanged."""
    if not data.startswith(GZIP_MAGIC):
        return data
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as exc:
        raise DecodeError(f"Corrupt gzip stream in {source}: {exc}") from exc
