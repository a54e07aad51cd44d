import logging
import math
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .analysis import FrameAnalysis, analyze_frame, robust_median
from .sheet import GEN_CELL, GEN_GRID, Grid, SheetSlicer


@dataclass
class StabilizerOptions:
    """Stabilization settings; every field has a safe default."""
    target_fit: Optional[float] = 0.80  # share of the canvas the object should span
    scale_clamp: float = 0.03           # max per-frame scale correction (+/-)
    feather_px: float = 2.0             # alpha ramp width at the canvas border
    smooth_window: int = 5              # odd, >= 3
    alpha_threshold: float = 0.1
    output_size: Optional[int] = None   # defaults to the raw frame size
    closed_loop: bool = False           # frames form a full 360 degree ring
    min_area: int = 1                   # smaller foregrounds are flagged degenerate
    max_centroid_stddev: float = 0.5    # KPI thresholds, reported not enforced
    max_area_drift: float = 2.5

    def validated(self) -> "StabilizerOptions":
        """Return a copy with out-of-range values coerced to usable ones."""
        log = logging.getLogger("StabilizerOptions")
        window = int(self.smooth_window)
        if window < 3:
            log.warning(f"smooth_window={window} too small, using 3")
            window = 3
        elif window % 2 == 0:
            log.warning(f"smooth_window={window} is even, using {window + 1}")
            window += 1

        feather = float(self.feather_px)
        if feather < 0:
            log.warning(f"feather_px={feather} is negative, disabling feather")
            feather = 0.0

        clamp = min(max(float(self.scale_clamp), 0.0), 0.99)
        fit = self.target_fit
        if fit is not None and not 0.0 < fit <= 1.0:
            log.warning(f"target_fit={fit} outside (0, 1], using 0.8")
            fit = 0.80

        return replace(self, smooth_window=window, feather_px=feather, scale_clamp=clamp, target_fit=fit)


@dataclass(frozen=True)
class Transform:
    """Per-frame correction: p' = scale * p + (dx, dy)."""
    dx: float = 0.0
    dy: float = 0.0
    scale: float = 1.0

    def apply(self, point: Tuple[float, float]) -> Tuple[float, float]:
        return (point[0] * self.scale + self.dx, point[1] * self.scale + self.dy)


@dataclass(frozen=True)
class StabilizedFrame:
    index: int
    image: np.ndarray = field(repr=False, compare=False)
    centroid: Tuple[float, float]
    area: float
    transform: Transform
    degenerate: bool = False


@dataclass(frozen=True)
class StabilizationMetrics:
    centroid_stddev: float
    area_drift: float
    avg_post_proc_ms: float
    frame_count: int
    degenerate_count: int
    passed: bool


@dataclass(frozen=True)
class StabilizationResult:
    frames: List[StabilizedFrame]
    metrics: StabilizationMetrics
    target_centroid: Tuple[float, float]   # raw-frame coordinates
    target_area: float
    output_anchor: Tuple[float, float]     # where target_centroid lands on the canvas
    fit_scale: float
    analyses: List[FrameAnalysis] = field(repr=False, default_factory=list)


def triangular_weights(window: int) -> np.ndarray:
    half = window // 2
    weights = np.array([1.0 - abs(k) / (half + 1) for k in range(-half, half + 1)])
    return weights / weights.sum()


def smooth_series(values: Sequence[float], window: int, closed_loop: bool = False) -> np.ndarray:
    """
    Triangular-weighted moving average of an ordered series.

    Near the ends of an open series the window is truncated to the values
    that exist and its weights renormalised; a closed loop wraps around.
    Series shorter than the window use the largest odd window that fits,
    and fewer than 3 values come back unchanged.
    """
    arr = np.asarray(values, dtype=np.float64)
    n = len(arr)
    window = min(window, n if n % 2 else n - 1)
    if window < 3:
        return arr.copy()

    half = window // 2
    kernel = triangular_weights(window)
    if closed_loop:
        return np.convolve(np.pad(arr, half, mode="wrap"), kernel, mode="valid")

    padded = np.pad(arr, half, mode="constant")
    support = np.pad(np.ones(n), half, mode="constant")
    return np.convolve(padded, kernel, mode="valid") / np.convolve(support, kernel, mode="valid")


def compute_metrics(
    frames: Sequence[StabilizedFrame],
    elapsed_ms: float = 0.0,
    max_centroid_stddev: float = 0.5,
    max_area_drift: float = 2.5,
) -> StabilizationMetrics:
    """QC metrics over the final centroids / areas of a stabilized set."""
    if not frames:
        return StabilizationMetrics(0.0, 0.0, 0.0, 0, 0, True)

    centroids = np.array([f.centroid for f in frames], dtype=np.float64)
    centroid_stddev = float(math.sqrt(centroids[:, 0].var() + centroids[:, 1].var()))

    areas = np.array([f.area for f in frames], dtype=np.float64)
    median_area = robust_median(areas)
    if median_area > 0:
        area_drift = float(np.max(np.abs(areas - median_area)) / median_area * 100.0)
    else:
        area_drift = 0.0

    return StabilizationMetrics(
        centroid_stddev=centroid_stddev,
        area_drift=area_drift,
        avg_post_proc_ms=elapsed_ms / len(frames),
        frame_count=len(frames),
        degenerate_count=sum(1 for f in frames if f.degenerate),
        passed=centroid_stddev < max_centroid_stddev and area_drift < max_area_drift,
    )


class FrameStabilizer:
    """
    Removes centroid and scale jitter from a set of per-angle frames.

    The batch runs strictly in order:
    - analysis of each frame's alpha mask
    - robust (median) target centroid / area
    - per-frame scale + translation toward the target
    - triangular moving average over the angular sequence
    - bilinear resampling onto a feathered square canvas
    """

    def __init__(self, options: StabilizerOptions = None, kpi_recorder=None):
        """
        :param options: StabilizerOptions; invalid values are coerced with a warning.
        :param kpi_recorder: Optional object with a record(metrics) method.
        """
        self.log = logging.getLogger("FrameStabilizer")
        self.options = (options or StabilizerOptions()).validated()
        self.kpi_recorder = kpi_recorder

    # ----------------------------------------------------------------------
    # PIPELINE STAGES
    # ----------------------------------------------------------------------

    def analyze(self, frames: Sequence[np.ndarray]) -> List[FrameAnalysis]:
        analyses = []
        for index, frame in enumerate(frames):
            analysis = analyze_frame(frame, self.options.alpha_threshold, self.options.min_area)
            if analysis.degenerate:
                self.log.warning(f"Frame {index} is degenerate (foreground area {analysis.area}px)")
            analyses.append(analysis)
        return analyses

    def robust_target(self, analyses: Sequence[FrameAnalysis]) -> Tuple[Tuple[float, float], float]:
        """Median centroid and median area of the set."""
        target_area = robust_median(a.area for a in analyses)
        target_centroid = (
            robust_median(a.centroid[0] for a in analyses),
            robust_median(a.centroid[1] for a in analyses),
        )
        return target_centroid, target_area

    def compute_transforms(
        self,
        analyses: Sequence[FrameAnalysis],
        target_centroid: Tuple[float, float],
        target_area: float,
    ) -> List[Transform]:
        return [self._transform_for(a, target_centroid, target_area) for a in analyses]

    def _transform_for(self, analysis: FrameAnalysis, target_centroid, target_area) -> Transform:
        clamp = self.options.scale_clamp
        scale = math.sqrt(max(target_area, 0.0) / max(analysis.area, 1))
        scale = min(1.0 + clamp, max(1.0 - clamp, scale))

        dx = target_centroid[0] - analysis.centroid[0] * scale
        dy = target_centroid[1] - analysis.centroid[1] * scale
        return Transform(dx=dx, dy=dy, scale=scale)

    def smooth_transforms(
        self,
        analyses: Sequence[FrameAnalysis],
        transforms: Sequence[Transform],
        target_centroid: Tuple[float, float],
    ) -> List[Transform]:
        """
        Smooth the scale corrections across neighbouring frames.

        Only the scale is averaged; each frame's translation is then solved
        again from its own centroid so the corrected centroid still lands on
        the target.
        """
        scales = smooth_series([t.scale for t in transforms], self.options.smooth_window, self.options.closed_loop)
        smoothed = []
        for analysis, scale in zip(analyses, scales):
            scale = float(scale)
            dx = target_centroid[0] - analysis.centroid[0] * scale
            dy = target_centroid[1] - analysis.centroid[1] * scale
            smoothed.append(Transform(dx=dx, dy=dy, scale=scale))
        return smoothed

    def fit_scale(self, analyses: Sequence[FrameAnalysis], output_size: int) -> float:
        """Group-wide scale putting the median object extent at target_fit of the canvas."""
        if self.options.target_fit is None:
            return 1.0
        extents = [a.extent for a in analyses if not a.degenerate and a.extent > 0]
        if not extents:
            return 1.0
        return self.options.target_fit * output_size / robust_median(extents)

    def compose(
        self,
        frame: np.ndarray,
        transform: Transform,
        target_centroid: Tuple[float, float],
        fit: float,
        output_size: int,
    ) -> np.ndarray:
        """
        Resample ``frame`` onto the square canvas.

        The corrected frame is scaled by ``fit`` about the target centroid,
        which lands on the canvas centre.
        """
        matrix = self._canvas_matrix(transform, target_centroid, fit, output_size)
        out = cv2.warpAffine(
            np.ascontiguousarray(frame),
            matrix,
            (output_size, output_size),
            flags=cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=(0, 0, 0, 0),
        )
        if self.options.feather_px > 0:
            out = self._feather(out, self.options.feather_px)
        return out

    @staticmethod
    def _canvas_matrix(transform: Transform, target_centroid, fit: float, output_size: int) -> np.ndarray:
        anchor = (output_size - 1) / 2.0
        a = fit * transform.scale
        bx = anchor + fit * (transform.dx - target_centroid[0])
        by = anchor + fit * (transform.dy - target_centroid[1])
        return np.array([[a, 0.0, bx], [0.0, a, by]], dtype=np.float64)

    @staticmethod
    def _feather(image: np.ndarray, feather_px: float) -> np.ndarray:
        h, w = image.shape[:2]
        yy, xx = np.indices((h, w), dtype=np.float32)
        edge = np.minimum(np.minimum(xx, yy), np.minimum(w - 1 - xx, h - 1 - yy))
        ramp = np.clip(edge / feather_px, 0.0, 1.0)
        out = image.copy()
        out[..., 3] = np.round(out[..., 3].astype(np.float32) * ramp).astype(np.uint8)
        return out

    # ----------------------------------------------------------------------
    # PUBLIC API
    # ----------------------------------------------------------------------

    def stabilize(self, frames: Sequence[np.ndarray]) -> StabilizationResult:
        """
        Stabilize an angularly ordered frame set.

        :param frames: (H, W, 4) uint8 RGBA frames, in yaw order.
        :return: StabilizationResult with read-only output frames and QC metrics.
        """
        if not frames:
            raise ValueError("No frames provided for stabilization.")

        start = time.perf_counter()
        opts = self.options
        output_size = opts.output_size or max(frames[0].shape[:2])
        self.log.info(f"Stabilizing {len(frames)} frames onto a {output_size}px canvas")

        analyses = self.analyze(frames)
        target_centroid, target_area = self.robust_target(analyses)
        self.log.debug(
            f"Target centroid ({target_centroid[0]:.2f}, {target_centroid[1]:.2f}), area {target_area:.0f}px"
        )

        transforms = self.compute_transforms(analyses, target_centroid, target_area)
        transforms = self.smooth_transforms(analyses, transforms, target_centroid)
        fit = self.fit_scale(analyses, output_size)
        anchor = (output_size - 1) / 2.0

        stabilized = []
        for index, (frame, analysis, transform) in enumerate(zip(frames, analyses, transforms)):
            image = self.compose(frame, transform, target_centroid, fit, output_size)
            image.setflags(write=False)

            cx, cy = transform.apply(analysis.centroid)
            centroid = (anchor + fit * (cx - target_centroid[0]), anchor + fit * (cy - target_centroid[1]))
            stabilized.append(
                StabilizedFrame(
                    index=index,
                    image=image,
                    centroid=centroid,
                    area=analysis.area * (fit * transform.scale) ** 2,
                    transform=transform,
                    degenerate=analysis.degenerate,
                )
            )

        elapsed_ms = (time.perf_counter() - start) * 1000.0
        metrics = compute_metrics(stabilized, elapsed_ms, opts.max_centroid_stddev, opts.max_area_drift)

        if metrics.passed:
            self.log.info(
                f"Stabilized: centroid stddev {metrics.centroid_stddev:.3f}px, area drift {metrics.area_drift:.2f}%"
            )
        else:
            self.log.warning(
                f"Stabilization KPIs missed: centroid stddev {metrics.centroid_stddev:.3f}px "
                f"(max {opts.max_centroid_stddev}), area drift {metrics.area_drift:.2f}% (max {opts.max_area_drift})"
            )

        if self.kpi_recorder is not None:
            self.kpi_recorder.record(metrics)

        return StabilizationResult(
            frames=stabilized,
            metrics=metrics,
            target_centroid=target_centroid,
            target_area=target_area,
            output_anchor=(anchor, anchor),
            fit_scale=fit,
            analyses=analyses,
        )

    def stabilize_sheet(self, sheet: np.ndarray, grid: Grid = GEN_GRID, cell: int = GEN_CELL) -> StabilizationResult:
        """Slice a grid-packed sheet and stabilize its frames."""
        return self.stabilize(SheetSlicer(grid, cell).slice(sheet))

    def stabilize_async(self, frames: Sequence[np.ndarray], executor: Executor = None) -> Future:
        """
        Run stabilize() off the calling thread.
        Uses a one-shot worker when no executor is given.
        """
        if executor is not None:
            return executor.submit(self.stabilize, list(frames))

        worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="stabilizer")
        future = worker.submit(self.stabilize, list(frames))
        worker.shutdown(wait=False)
        return future

    def stabilize_tile(
        self,
        tile: np.ndarray,
        target_centroid: Tuple[float, float],
        target_area: float,
    ) -> StabilizedFrame:
        """
        Normalize a single tile against a target measured elsewhere
        (no smoothing, no fit scale); used when frames arrive one by one.
        """
        analysis = analyze_frame(tile, self.options.alpha_threshold, self.options.min_area)
        transform = self._transform_for(analysis, target_centroid, target_area)
        output_size = self.options.output_size or max(tile.shape[:2])

        anchor = (output_size - 1) / 2.0
        image = self.compose(tile, transform, target_centroid, 1.0, output_size)
        image.setflags(write=False)
        cx, cy = transform.apply(analysis.centroid)
        return StabilizedFrame(
            index=0,
            image=image,
            centroid=(anchor + cx - target_centroid[0], anchor + cy - target_centroid[1]),
            area=analysis.area * transform.scale ** 2,
            transform=transform,
            degenerate=analysis.degenerate,
        )
