from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

Bounds = Tuple[int, int, int, int]  # (min_x, min_y, max_x, max_y), inclusive


@dataclass(frozen=True)
class FrameAnalysis:
    """Foreground statistics of one frame, measured on its alpha mask."""
    centroid: Tuple[float, float]
    area: int
    bounds: Optional[Bounds]
    degenerate: bool = False

    @property
    def extent(self) -> int:
        """Longest side of the bounding box in pixels (0 when empty)."""
        if self.bounds is None:
            return 0
        min_x, min_y, max_x, max_y = self.bounds
        return max(max_x - min_x + 1, max_y - min_y + 1)


def foreground_mask(frame: np.ndarray, alpha_threshold: float = 0.1) -> np.ndarray:
    """
    Boolean mask of pixels whose alpha exceeds ``alpha_threshold`` (0..1).
    Frames without an alpha channel are fully foreground.
    """
    if frame.ndim < 3 or frame.shape[2] < 4:
        return np.ones(frame.shape[:2], dtype=bool)

    alpha = frame[..., 3]
    if alpha.dtype == np.uint8:
        return alpha > int(np.floor(alpha_threshold * 255))
    return alpha > alpha_threshold


def analyze_frame(
    frame: np.ndarray,
    alpha_threshold: float = 0.1,
    min_area: int = 1,
) -> FrameAnalysis:
    """
    Measure centroid, area and bounds of the object in ``frame``.

    An empty mask (or one smaller than ``min_area``) is flagged degenerate; an
    empty one falls back to the frame centre with zero area.
    """
    h, w = frame.shape[:2]
    mask = foreground_mask(frame, alpha_threshold)
    ys, xs = np.nonzero(mask)
    area = int(xs.size)

    if area == 0:
        return FrameAnalysis(centroid=((w - 1) / 2.0, (h - 1) / 2.0), area=0, bounds=None, degenerate=True)

    centroid = (float(xs.mean()), float(ys.mean()))
    bounds = (int(xs.min()), int(ys.min()), int(xs.max()), int(ys.max()))
    return FrameAnalysis(centroid=centroid, area=area, bounds=bounds, degenerate=area < min_area)


def robust_median(values) -> float:
    """Median that tolerates an empty input (returns 0)."""
    values = np.asarray(list(values), dtype=np.float64)
    if values.size == 0:
        return 0.0
    return float(np.median(values))
