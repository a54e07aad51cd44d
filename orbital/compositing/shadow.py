import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .sampling import sample, to_float, uv_grid

BLUR_TAPS = (-2, -1, 0, 1, 2)


@dataclass
class ShadowParams:
    """
    Contact shadow cast onto a ground line.

    ground_y is in UV units with v growing downwards; light_dir points from
    the light towards the ground (UV axes).
    """
    light_dir: Tuple[float, float] = (0.35, 1.0)
    ground_y: float = 0.85
    skew: float = 1.0
    blur_px: float = 2.0
    intensity: float = 0.6
    falloff: float = 2.0
    shadow_color: Tuple[float, float, float] = (0.0, 0.0, 0.0)


def _blur_direction(light_dir) -> Tuple[float, float]:
    dx, dy = light_dir[0] + 0.001, light_dir[1] + 0.001
    length = math.hypot(dx, dy)
    return dx / length, dy / length


def shadow_mask(tex: np.ndarray, params: ShadowParams) -> np.ndarray:
    """
    Shadow strength per pixel in [0, 1]; zero above the ground line.

    :param tex: float32 RGBA texture.
    """
    h, w = tex.shape[:2]
    u, v = uv_grid(h, w)

    dist = np.maximum(v - params.ground_y, 0.0)
    src_u = u - params.light_dir[0] * dist * params.skew
    src_v = v - params.light_dir[1] * dist * params.skew
    inside = (src_u >= 0.0) & (src_u <= 1.0) & (src_v >= 0.0) & (src_v <= 1.0)

    bx, by = _blur_direction(params.light_dir)
    alpha = np.ascontiguousarray(tex[..., 3])
    blurred = np.zeros((h, w), dtype=np.float32)
    total = 0.0
    for i in BLUR_TAPS:
        weight = 1.0 - abs(i) * 0.2
        tap_u = src_u + bx * params.blur_px * i / w
        tap_v = src_v + by * params.blur_px * i / h
        blurred += sample(alpha, tap_u, tap_v) * weight
        total += weight
    blurred /= total

    falloff = np.clip(1.0 - dist * params.falloff, 0.0, 1.0)
    mask = blurred * falloff * params.intensity
    mask[~inside] = 0.0
    mask[v < params.ground_y] = 0.0
    return np.clip(mask, 0.0, 1.0)


def shadow(tile: np.ndarray, params: ShadowParams = None) -> np.ndarray:
    """
    Composite a projected contact shadow under the object in ``tile``.

    Pixels above the ground line are returned unchanged. Below it the colour
    is tinted towards shadow_color where the base is not already opaque.

    :return: float32 RGBA in [0, 1].
    """
    params = params or ShadowParams()
    base = to_float(tile)
    mask = shadow_mask(base, params)

    tint = (mask * (1.0 - base[..., 3]))[..., None]
    color = np.asarray(params.shadow_color, dtype=np.float32)

    out = base.copy()
    out[..., :3] = base[..., :3] * (1.0 - tint) + color * tint
    out[..., 3] = np.maximum(base[..., 3], mask * 0.5)
    return out
