from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .sampling import EPS, GAMMA, linear_to_srgb, sample_offset, smoothstep, srgb_to_linear, to_float, uv_grid


@dataclass
class ParallaxParams:
    """
    Depth bands of the false-parallax pass.

    Radii are in pseudo-distance units: alpha 0.5 (the silhouette) is 0,
    opaque interior is +sdf_scale/2. Pixels near the contour belong to all
    three bands and move the most; the interior stays in the core band.
    """
    core_r: float = 2.0
    mid_r: float = 1.0
    rim_r: float = 0.5
    feather: float = 0.25
    mid_factor: float = 0.5
    rim_factor: float = 1.0
    sdf_scale: float = 4.0
    gamma: float = GAMMA


def alpha_to_sdf(alpha: np.ndarray, scale: float = 4.0) -> np.ndarray:
    return (alpha - 0.5) * scale


def band(distance: np.ndarray, radius: float, feather: float) -> np.ndarray:
    """1 inside |d| < radius, smoothly 0 beyond radius + feather."""
    return smoothstep(radius + feather, radius - feather, np.abs(distance))


def parallax(tile: np.ndarray, offset_px: Tuple[float, float], params: ParallaxParams = None) -> np.ndarray:
    """
    Fake depth by sampling one tile at three offsets weighted by distance band.

    :param tile: RGBA frame.
    :param offset_px: Parallax vector in pixels; mid / rim layers shift against it.
    :return: float32 RGBA in [0, 1].
    """
    params = params or ParallaxParams()
    tex = to_float(tile)
    h, w = tex.shape[:2]
    u, v = uv_grid(h, w)

    d = alpha_to_sdf(tex[..., 3], params.sdf_scale)
    w_core = band(d, params.core_r, params.feather)
    w_mid = band(d, params.mid_r, params.feather)
    w_rim = band(d, params.rim_r, params.feather)
    w_sum = w_core + w_mid + w_rim + EPS
    w_core, w_mid, w_rim = w_core / w_sum, w_mid / w_sum, w_rim / w_sum

    ox, oy = offset_px
    core = tex
    mid = sample_offset(tex, u, v, (-ox * params.mid_factor, -oy * params.mid_factor))
    rim = sample_offset(tex, u, v, (-ox * params.rim_factor, -oy * params.rim_factor))

    lin = np.zeros((h, w, 3), dtype=np.float32)
    coverage = np.zeros((h, w), dtype=np.float32)
    for layer, weight in ((core, w_core), (mid, w_mid), (rim, w_rim)):
        premult = weight * layer[..., 3]
        lin += srgb_to_linear(layer[..., :3], params.gamma) * premult[..., None]
        coverage += premult

    out = np.empty_like(tex)
    out[..., :3] = linear_to_srgb(lin / np.maximum(coverage, EPS)[..., None], params.gamma)
    out[..., 3] = np.maximum(core[..., 3], np.maximum(mid[..., 3], rim[..., 3]))
    return out
