"""Abstract base classes for pixel extraction and volume decoding strategies."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

import pydicom

from egami.core.types import PixelPayload
from egami.core.volume import VoxelVolume
from egami.errors import EgamiError

logger = logging.getLogger(__name__)

S = TypeVar("S")
T = TypeVar("T")


class PixelStrategy(ABC):
    """Turns the pixel data of a DICOM dataset into a tagged payload."""

    name: str = ""
    description: str = ""

    @abstractmethod
    def extract(self, ds: pydicom.Dataset) -> PixelPayload:
        """Return the dataset's pixel bytes, all frames concatenated."""
        ...

    @classmethod
    def check_dependencies(cls) -> tuple[bool, str]:
        """Check if required dependencies are installed.

        Returns (available, message).
        """
        return True, "No additional dependencies required."


class VolumeDecoder(ABC):
    """Parses the bytes of a volumetric file into a ``VoxelVolume``."""

    name: str = ""
    description: str = ""

    @abstractmethod
    def decode(self, data: bytes) -> VoxelVolume:
        """Decode an uncompressed single-file NIfTI image."""
        ...

    @classmethod
    def check_dependencies(cls) -> tuple[bool, str]:
        return True, "No additional dependencies required."


@dataclass
class StrategyOutcome(Generic[T]):
    """Result of trying strategies in order: the first value plus every failure."""

    value: T | None = None
    used: str | None = None
    failures: list[tuple[str, EgamiError]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.used is not None

    def failure_summary(self) -> str:
        return "; ".join(f"{name}: {error}" for name, error in self.failures)


def run_in_order(
    strategies: Sequence[S],
    attempt: Callable[[S], T],
) -> StrategyOutcome[T]:
    """Call ``attempt`` on each strategy until one returns without raising.

    Only ``EgamiError`` counts as a strategy failure; anything else is a bug
    and propagates.
    """
    outcome: StrategyOutcome[T] = StrategyOutcome()
    for strategy in strategies:
        name = getattr(strategy, "name", type(strategy).__name__)
        try:
            outcome.value = attempt(strategy)
        except EgamiError as exc:
            logger.debug(f"Strategy {name} failed: {exc}")
            outcome.failures.append((name, exc))
            continue
        outcome.used = name
        break
    return outcome
