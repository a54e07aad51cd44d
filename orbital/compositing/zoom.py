from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np

from .sampling import sample, to_float, uv_grid

DEFAULT_ZOOM_MAX = 1.2
ZOOM_UNSHARP_THRESHOLD = 1.25


@dataclass
class ZoomParams:
    center: Tuple[float, float] = (0.5, 0.5)
    unsharp: bool = True
    unsharp_amount: float = 0.5
    unsharp_threshold: float = ZOOM_UNSHARP_THRESHOLD


def zoom(image: np.ndarray, factor: float, params: ZoomParams = None) -> np.ndarray:
    """
    Magnify ``image`` by ``factor`` about params.center.

    Above the unsharp threshold the sample is bicubic and sharpened with a
    four-neighbour unsharp mask to hide the upscaling blur.

    :return: float32 RGBA in [0, 1].
    """
    params = params or ZoomParams()
    tex = to_float(image)
    if factor <= 1.0:
        return tex.copy()

    h, w = tex.shape[:2]
    u, v = uv_grid(h, w)
    cu, cv = params.center
    zu = np.clip((u - cu) / factor + cu, 0.0, 1.0)
    zv = np.clip((v - cv) / factor + cv, 0.0, 1.0)

    if not (params.unsharp and factor > params.unsharp_threshold):
        return sample(tex, zu, zv)

    color = sample(tex, zu, zv, interpolation=cv2.INTER_CUBIC)
    du, dv = 1.0 / w, 1.0 / h
    blur = (
        sample(tex, zu - du, zv)
        + sample(tex, zu + du, zv)
        + sample(tex, zu, zv - dv)
        + sample(tex, zu, zv + dv)
    ) * 0.25
    return np.clip(color + (color - blur) * params.unsharp_amount, 0.0, 1.0)
