"""
Per-tick image passes of the orbital viewer.

- stitch: direction-aware seam blend between two neighbouring frames
- parallax: false depth from alpha-distance bands
- shadow: projected contact shadow
- zoom: centred magnification with unsharp mask
- engine: runs the passes in order for a view
"""

from .stitch import StitchParams, stitch
from .parallax import ParallaxParams, parallax
from .shadow import ShadowParams, shadow
from .zoom import ZoomParams, zoom
from .engine import CompositeFrame, CompositingEngine, RingLayer


__all__ = [
    "StitchParams",
    "stitch",
    "ParallaxParams",
    "parallax",
    "ShadowParams",
    "shadow",
    "ZoomParams",
    "zoom",
    "CompositeFrame",
    "CompositingEngine",
    "RingLayer",
]
