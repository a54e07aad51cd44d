import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

import numpy as np

from .parallax import ParallaxParams, parallax
from .sampling import EPS, GAMMA, linear_to_srgb, srgb_to_linear, to_float, to_uint8
from .shadow import ShadowParams, shadow
from .stitch import StitchParams, stitch
from .zoom import ZoomParams, zoom


@dataclass(frozen=True)
class RingLayer:
    """Two neighbouring frames of one ring and how much that ring contributes."""
    frame_a: np.ndarray = field(repr=False, compare=False)
    frame_b: np.ndarray = field(repr=False, compare=False)
    t: float
    step_deg: float
    weight: float = 1.0
    pitch: float = 0.0


@dataclass(frozen=True)
class CompositeFrame:
    """Output of one render tick. Rebuilt every tick, never stored."""
    image: np.ndarray = field(repr=False, compare=False)
    frame_index: int
    next_index: int
    t: float
    seam_angle: float
    pitch: float = 0.0


def blend_layers(images: Sequence[np.ndarray], weights: Sequence[float], gamma: float = GAMMA) -> np.ndarray:
    """Alpha-weighted linear-light mix of float RGBA images."""
    if len(images) == 1:
        return images[0]

    h, w = images[0].shape[:2]
    lin = np.zeros((h, w, 3), dtype=np.float32)
    coverage = np.zeros((h, w), dtype=np.float32)
    for image, weight in zip(images, weights):
        premult = weight * image[..., 3]
        lin += srgb_to_linear(image[..., :3], gamma) * premult[..., None]
        coverage += premult

    out = np.empty((h, w, 4), dtype=np.float32)
    out[..., :3] = linear_to_srgb(lin / np.maximum(coverage, EPS)[..., None], gamma)
    out[..., 3] = np.clip(coverage, 0.0, 1.0)
    return out


class CompositingEngine:
    """
    Runs the compositing passes for one view:
    - stitch each ring's frame pair along the motion seam
    - mix the rings by pitch weight
    - false-depth parallax
    - contact shadow
    - zoom

    Holds parameters only; every call is a pure function of its inputs.
    """

    def __init__(
        self,
        stitch_params: StitchParams = None,
        parallax_params: ParallaxParams = None,
        shadow_params: ShadowParams = None,
        zoom_params: ZoomParams = None,
        enable_parallax: bool = True,
        enable_shadow: bool = True,
        enable_zoom: bool = True,
    ):
        self.log = logging.getLogger("CompositingEngine")
        self.stitch_params = stitch_params or StitchParams()
        self.parallax_params = parallax_params or ParallaxParams()
        self.shadow_params = shadow_params or ShadowParams()
        self.zoom_params = zoom_params or ZoomParams()
        self.enable_parallax = enable_parallax
        self.enable_shadow = enable_shadow
        self.enable_zoom = enable_zoom

    def stitch_layer(self, layer: RingLayer, seam_angle: float) -> np.ndarray:
        params = StitchParams(
            feather_px=self.stitch_params.feather_px,
            seam_angle=seam_angle,
            max_warp_deg=self.stitch_params.max_warp_deg,
            step_deg=layer.step_deg,
            shear=self.stitch_params.shear,
            gamma=self.stitch_params.gamma,
        )
        return stitch(layer.frame_a, layer.frame_b, layer.t, params)

    def composite(
        self,
        layers: Sequence[RingLayer],
        seam_angle: float = 0.0,
        parallax_px: Tuple[float, float] = (0.0, 0.0),
        zoom_factor: float = 1.0,
    ) -> np.ndarray:
        """
        Build the composite image for one view.

        :param layers: One RingLayer per contributing ring (1 or 2).
        :param seam_angle: Motion direction in radians.
        :param parallax_px: Parallax vector in pixels; (0, 0) skips the pass.
        :param zoom_factor: >1 magnifies; 1 skips the pass.
        :return: RGBA uint8 image.
        """
        if not layers:
            raise ValueError("No ring layers to composite")

        stitched = [self.stitch_layer(layer, seam_angle) for layer in layers]
        image = blend_layers(stitched, [layer.weight for layer in layers], self.stitch_params.gamma)

        if self.enable_parallax and (parallax_px[0] or parallax_px[1]):
            image = parallax(image, parallax_px, self.parallax_params)

        if self.enable_shadow:
            image = shadow(image, self.shadow_params)

        if self.enable_zoom and zoom_factor > 1.0:
            image = zoom(image, zoom_factor, self.zoom_params)

        return to_uint8(image)

    def composite_single(self, frame: np.ndarray, zoom_factor: float = 1.0) -> np.ndarray:
        """Shadow + zoom on a single frame, no blending."""
        image = to_float(frame)
        if self.enable_shadow:
            image = shadow(image, self.shadow_params)
        if self.enable_zoom and zoom_factor > 1.0:
            image = zoom(image, zoom_factor, self.zoom_params)
        return to_uint8(image)
