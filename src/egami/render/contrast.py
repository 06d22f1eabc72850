"""Display window (center/width) from raw sample statistics.

The percentile rule is a contrast heuristic for previews; it is not a
calibrated clinical window.
"""

from __future__ import annotations

import logging

import numpy as np

from egami.core.types import WindowLevel

logger = logging.getLogger(__name__)

PERCENTILE_MIN_SAMPLES = 1000
LOW_PERCENTILE = 0.02
HIGH_PERCENTILE = 0.98
PERCENTILE_MARGIN = 1.2
RANGE_MARGIN = 1.5
MIN_WINDOW_WIDTH = 1.0


def compute_window(samples) -> WindowLevel | None:
    """Derive a window from ``samples``, ignoring zero-valued background.

    With at least 1000 non-zero samples the 2nd and 98th percentile values
    (by sorted index) span the window, widened by 20%. Smaller populations use
    the full range widened by 50%. Returns None when nothing remains.
    """
    values = np.asarray(samples, dtype=np.float64).ravel()
    values = values[(values != 0) & np.isfinite(values)]
    n = values.size
    if n == 0:
        return None

    if n >= PERCENTILE_MIN_SAMPLES:
        values = np.sort(values)
        p2 = float(values[int(n * LOW_PERCENTILE)])
        p98 = float(values[int(n * HIGH_PERCENTILE)])
        width = (p98 - p2) * PERCENTILE_MARGIN
        center = (p98 + p2) / 2
    else:
        lo, hi = float(values.min()), float(values.max())
        width = (hi - lo) * RANGE_MARGIN
        center = (hi + lo) / 2

    width = max(width, MIN_WINDOW_WIDTH)
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"Computed window: center={center:.1f}, width={width:.1f} from {n} samples")
    return WindowLevel(center=center, width=width)


def apply_window(samples, window: WindowLevel) -> np.ndarray:
    """Map ``[lower, upper]`` linearly onto 0-255, clipping outside values."""
    values = np.asarray(samples, dtype=np.float64)
    scaled = (values - window.lower) / window.width * 255.0
    return np.clip(np.floor(scaled + 0.5), 0, 255).astype(np.uint8)
