import cv2
import numpy as np
from typing import Tuple

from .sheet import ensure_rgba


def generate_matte(
    image: np.ndarray,
    y_range: Tuple[int, int] = (16, 235),
    cb_range: Tuple[int, int] = (16, 240),
    cr_range: Tuple[int, int] = (16, 240),
    morphology_size: int = 1,
) -> np.ndarray:
    """
    Build an alpha matte for frames delivered on a neutral background.

    Pixels whose YCbCr value falls inside all three ranges are kept as
    foreground. The mask is cleaned with a dilate-then-erode pass before it
    replaces the alpha channel.

    :param image: (H, W, 3|4) RGB(A) uint8 frame.
    :param morphology_size: Radius of the square structuring element; 0 disables it.
    :return: A new RGBA uint8 frame with the matte as alpha.
    """
    rgba = ensure_rgba(image).copy()
    ycrcb = cv2.cvtColor(np.ascontiguousarray(rgba[..., :3]), cv2.COLOR_RGB2YCrCb)
    y, cr, cb = ycrcb[..., 0], ycrcb[..., 1], ycrcb[..., 2]

    mask = (
        (y >= y_range[0]) & (y <= y_range[1])
        & (cb >= cb_range[0]) & (cb <= cb_range[1])
        & (cr >= cr_range[0]) & (cr <= cr_range[1])
    ).astype(np.uint8) * 255

    if morphology_size > 0:
        k = 2 * morphology_size + 1
        kernel = np.ones((k, k), dtype=np.uint8)
        mask = cv2.morphologyEx(mask, cv2.MORPH_CLOSE, kernel, borderType=cv2.BORDER_REPLICATE)

    rgba[..., 3] = mask
    return rgba
