"""
Frame preparation pipeline for the orbital viewer.

This package contains the components responsible for:
- Cutting grid-packed sprite sheets into frames (sheet)
- Building alpha mattes for frames on a neutral background (matte)
- Measuring each frame's foreground (analysis)
- Removing centroid / scale jitter across a frame set (stabilizer)
"""

from .sheet import SheetSlicer, TileRect, tile_rect, crop_rect, load_image, save_image
from .matte import generate_matte
from .analysis import FrameAnalysis, analyze_frame
from .stabilizer import (
    FrameStabilizer,
    StabilizedFrame,
    StabilizationMetrics,
    StabilizationResult,
    StabilizerOptions,
    Transform,
)


__all__ = [
    "SheetSlicer",
    "TileRect",
    "tile_rect",
    "crop_rect",
    "load_image",
    "save_image",
    "generate_matte",
    "FrameAnalysis",
    "analyze_frame",
    "FrameStabilizer",
    "StabilizedFrame",
    "StabilizationMetrics",
    "StabilizationResult",
    "StabilizerOptions",
    "Transform",
]
