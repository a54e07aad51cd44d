"""
Texture-style helpers shared by the compositing passes.

Coordinates are normalised UV in [0, 1] with pixel centres at (x + 0.5) / W,
sampled bilinearly with clamp-to-edge, the same way a GPU sampler would.
"""

from typing import Tuple

import cv2
import numpy as np

GAMMA = 2.2
EPS = 1e-6


def to_float(image: np.ndarray) -> np.ndarray:
    """RGBA uint8 (or float) -> float32 RGBA in [0, 1]."""
    if image.dtype == np.uint8:
        return image.astype(np.float32) / 255.0
    return np.clip(image.astype(np.float32, copy=False), 0.0, 1.0)


def to_uint8(image: np.ndarray) -> np.ndarray:
    return np.round(np.clip(image, 0.0, 1.0) * 255.0).astype(np.uint8)


def srgb_to_linear(rgb: np.ndarray, gamma: float = GAMMA) -> np.ndarray:
    return np.power(np.clip(rgb, 0.0, 1.0), gamma)


def linear_to_srgb(rgb: np.ndarray, gamma: float = GAMMA) -> np.ndarray:
    return np.power(np.clip(rgb, 0.0, 1.0), 1.0 / gamma)


def smoothstep(edge0, edge1, x):
    """GLSL smoothstep; edge0 > edge1 gives the mirrored ramp."""
    span = edge1 - edge0
    span = np.where(np.abs(span) < EPS, EPS, span)
    t = np.clip((x - edge0) / span, 0.0, 1.0)
    return t * t * (3.0 - 2.0 * t)


def uv_grid(height: int, width: int) -> Tuple[np.ndarray, np.ndarray]:
    """UV coordinates of every pixel centre, as (u, v) float32 arrays."""
    v, u = np.indices((height, width), dtype=np.float32)
    return (u + 0.5) / width, (v + 0.5) / height


def sample(texture: np.ndarray, u: np.ndarray, v: np.ndarray, interpolation: int = cv2.INTER_LINEAR) -> np.ndarray:
    """
    Sample a float32 RGBA texture at UV coordinates.

    :param interpolation: cv2.INTER_LINEAR (default) or cv2.INTER_CUBIC.
    """
    h, w = texture.shape[:2]
    map_x = (u * w - 0.5).astype(np.float32)
    map_y = (v * h - 0.5).astype(np.float32)
    return cv2.remap(
        np.ascontiguousarray(texture, dtype=np.float32),
        map_x,
        map_y,
        interpolation=interpolation,
        borderMode=cv2.BORDER_REPLICATE,
    )


def sample_offset(texture: np.ndarray, u: np.ndarray, v: np.ndarray, offset_px) -> np.ndarray:
    """Sample shifted by ``offset_px`` pixels, UV clamped to the texture."""
    h, w = texture.shape[:2]
    su = np.clip(u + offset_px[0] / w, 0.0, 1.0)
    sv = np.clip(v + offset_px[1] / h, 0.0, 1.0)
    return sample(texture, su, sv)
