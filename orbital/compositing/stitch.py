import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .sampling import EPS, GAMMA, linear_to_srgb, sample, smoothstep, srgb_to_linear, to_float, uv_grid

DEFAULT_FEATHER_PX = 10.0
DEFAULT_SHEAR = 0.10
MAX_WARP_DEG = 6.0
WARP_STEP_FRACTION = 0.2
SEAM_DRIFT = 0.2


@dataclass
class StitchParams:
    """
    Parameters of the seam blend between two neighbouring frames.

    max_warp_deg=None derives the warp from the angular step between the
    frames (a fifth of the step, capped at MAX_WARP_DEG).
    """
    feather_px: float = DEFAULT_FEATHER_PX
    seam_angle: float = 0.0     # radians, direction of camera motion
    max_warp_deg: Optional[float] = None
    step_deg: float = 30.0
    shear: float = DEFAULT_SHEAR
    gamma: float = GAMMA

    def warp_deg(self) -> float:
        if self.max_warp_deg is not None:
            return self.max_warp_deg
        return min(MAX_WARP_DEG, WARP_STEP_FRACTION * self.step_deg)


def warp_cylindrical(u: np.ndarray, v: np.ndarray, warp_deg: float):
    """
    Rotate sampling coordinates around a virtual cylinder by ``warp_deg``;
    result clamped to [0, 1].
    """
    s = math.radians(warp_deg)
    x = u * 2.0 - 1.0
    y = v * 2.0 - 1.0
    x2 = np.tan(np.arctan(x) + s)
    y2 = y * math.cos(s)
    return np.clip((x2 + 1.0) * 0.5, 0.0, 1.0), np.clip((y2 + 1.0) * 0.5, 0.0, 1.0)


def apply_shear(u: np.ndarray, v: np.ndarray, velocity: float, shear_factor: float):
    return u + velocity * shear_factor * (v - 0.5), v


def seam_masks(u: np.ndarray, v: np.ndarray, t: float, seam_angle: float, feather_px: float, tile_width: int):
    """
    Blend masks (mask_a, mask_b) for a seam perpendicular to ``seam_angle``.
    The seam sits slightly off centre and drifts with ``t``.
    """
    px = u * 2.0 - 1.0
    py = v * 2.0 - 1.0
    c, s = math.cos(-seam_angle), math.sin(-seam_angle)
    ur = (c * px - s * py + 1.0) * 0.5

    seam_center = 0.5 + SEAM_DRIFT * (t - 0.5)
    feather = feather_px / tile_width
    edge = (ur - seam_center) / max(feather, EPS)
    mask_b = smoothstep(-1.0, 1.0, edge)
    return 1.0 - mask_b, mask_b


def stitch(frame_a: np.ndarray, frame_b: np.ndarray, t: float, params: StitchParams = None) -> np.ndarray:
    """
    Blend frame A into frame B at phase ``t`` (0 = A, 1 = B).

    Each source gets an opposing cylindrical warp and shear to hide the
    parallax between the two capture angles; colours are combined in linear
    light, weighted by seam mask times each source's own alpha.

    :return: float32 RGBA in [0, 1], same size as frame_a.
    """
    params = params or StitchParams()
    a_tex = to_float(frame_a)
    b_tex = to_float(frame_b)
    if a_tex.shape != b_tex.shape:
        raise ValueError(f"Frame shapes differ: {a_tex.shape} vs {b_tex.shape}")

    t = float(min(max(t, 0.0), 1.0))
    h, w = a_tex.shape[:2]
    u, v = uv_grid(h, w)

    mask_a, mask_b = seam_masks(u, v, t, params.seam_angle, params.feather_px, w)

    max_warp = params.warp_deg()
    ua, va = warp_cylindrical(u, v, -max_warp * t)
    ub, vb = warp_cylindrical(u, v, max_warp * (1.0 - t))

    velocity = t * 2.0 - 1.0
    ua, va = apply_shear(ua, va, velocity, params.shear)
    ub, vb = apply_shear(ub, vb, -velocity, params.shear)

    a = sample(a_tex, ua, va)
    b = sample(b_tex, ub, vb)

    alpha_a = a[..., 3]
    alpha_b = b[..., 3]
    wa = mask_a * alpha_a
    wb = mask_b * alpha_b
    total = np.maximum(wa + wb, EPS)

    lin = (
        srgb_to_linear(a[..., :3], params.gamma) * wa[..., None]
        + srgb_to_linear(b[..., :3], params.gamma) * wb[..., None]
    ) / total[..., None]

    out = np.empty_like(a)
    out[..., :3] = linear_to_srgb(lin, params.gamma)
    out[..., 3] = np.clip(wa + wb, 0.0, 1.0)
    return out
