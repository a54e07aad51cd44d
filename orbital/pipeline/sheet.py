import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple, Union

import cv2
import numpy as np

from orbital.errors import SheetLayoutError

Grid = Tuple[int, int]  # (cols, rows)

# Canonical generation layout: 4x3 cells of 176 px with 20% overscan
GEN_GRID: Grid = (4, 3)
GEN_CELL = 176
GEN_SHEET = (GEN_GRID[0] * GEN_CELL, GEN_GRID[1] * GEN_CELL)
OVERSCAN = 0.20

# Display cells are cropped out of the overscanned generation cells
DISP_CELL = 146
DISP_SHEET = (GEN_GRID[0] * DISP_CELL, GEN_GRID[1] * DISP_CELL)
CROP_MARGIN = (GEN_CELL - DISP_CELL) // 2

ALLOWED_FRAME_COUNTS = (12, 24, 36)
ALLOWED_CELL_SIZES = (176, 312, 584)

LOGGER = logging.getLogger(__name__)


@dataclass
class TileRect:
    """Rectangle of one cell inside a sprite sheet."""
    x: int = 0
    y: int = 0
    w: int = 0
    h: int = 0

    def is_valid(self) -> bool:
        return self.w > 0 and self.h > 0


def tile_rect(index: int, cell: int = GEN_CELL, grid: Grid = GEN_GRID) -> TileRect:
    """Cell rectangle of frame ``index``; cells run left to right, top to bottom."""
    cols = grid[0]
    col = index % cols
    row = index // cols
    return TileRect(x=col * cell, y=row * cell, w=cell, h=cell)


def crop_rect(
    index: int,
    cell: int = GEN_CELL,
    grid: Grid = GEN_GRID,
    disp_cell: int = DISP_CELL,
) -> TileRect:
    """Display rectangle of frame ``index``: its cell minus the overscan margin."""
    t = tile_rect(index, cell, grid)
    margin = (cell - disp_cell) // 2
    return TileRect(x=t.x + margin, y=t.y + margin, w=disp_cell, h=disp_cell)


def parse_grid(text: str) -> Grid:
    """Parse ``"4x3"`` into ``(4, 3)``."""
    try:
        cols, rows = (int(part) for part in text.lower().split("x"))
    except ValueError as exc:
        raise ValueError(f"Grid must look like COLSxROWS, got '{text}'") from exc
    if cols <= 0 or rows <= 0:
        raise ValueError(f"Grid dimensions must be positive, got '{text}'")
    return cols, rows


def ensure_rgba(image: np.ndarray) -> np.ndarray:
    """Return an (H, W, 4) uint8 view of ``image``, adding an opaque alpha if needed."""
    if image.ndim == 2:
        image = np.repeat(image[..., None], 3, axis=2)
    if image.shape[2] == 3:
        alpha = np.full(image.shape[:2] + (1,), 255, dtype=np.uint8)
        image = np.concatenate([image.astype(np.uint8), alpha], axis=2)
    return image.astype(np.uint8, copy=False)


class SheetSlicer:
    """
    Cuts a grid-packed sprite sheet into individual RGBA frames.
    """

    def __init__(self, grid: Grid = GEN_GRID, cell: int = GEN_CELL):
        if grid[0] <= 0 or grid[1] <= 0:
            raise SheetLayoutError(f"Invalid grid {grid}")
        if cell <= 0:
            raise SheetLayoutError(f"Invalid cell size {cell}")
        self.grid = grid
        self.cell = cell
        self.log = logging.getLogger("SheetSlicer")

    @property
    def frame_count(self) -> int:
        return self.grid[0] * self.grid[1]

    def slice(self, sheet: np.ndarray) -> List[np.ndarray]:
        """
        Split the sheet into ``cols * rows`` frames.

        :param sheet: (H, W, 3|4) image; a missing alpha channel is made opaque.
        :return: List of (cell, cell, 4) uint8 frames in reading order.
        """
        if sheet is None or sheet.size == 0:
            raise SheetLayoutError("Empty sprite sheet")

        sheet = ensure_rgba(sheet)
        h, w = sheet.shape[:2]
        need_w = self.grid[0] * self.cell
        need_h = self.grid[1] * self.cell
        if w < need_w or h < need_h:
            raise SheetLayoutError(
                f"Sheet {w}x{h} is smaller than grid {self.grid[0]}x{self.grid[1]} of {self.cell}px cells"
            )
        if w != need_w or h != need_h:
            self.log.warning(f"Sheet {w}x{h} larger than {need_w}x{need_h}; extra pixels ignored")

        frames = []
        for index in range(self.frame_count):
            r = tile_rect(index, self.cell, self.grid)
            frames.append(sheet[r.y:r.y + r.h, r.x:r.x + r.w].copy())

        self.log.debug(f"Sliced {len(frames)} frames of {self.cell}px")
        return frames

    def crop_display(self, frame: np.ndarray, disp_cell: int = DISP_CELL) -> np.ndarray:
        """
        Crop the centre display region out of an overscanned frame.
        Returns the frame untouched if it is already smaller than ``disp_cell``.
        """
        if frame is None or frame.size == 0:
            return frame

        h, w = frame.shape[:2]
        if disp_cell <= 0 or disp_cell >= min(h, w):
            return frame

        x1 = (w - disp_cell) // 2
        y1 = (h - disp_cell) // 2
        return frame[y1:y1 + disp_cell, x1:x1 + disp_cell]

    def pack(self, frames: List[np.ndarray]) -> np.ndarray:
        """Inverse of slice(): lay frames back out on a sheet."""
        if len(frames) > self.frame_count:
            raise SheetLayoutError(f"{len(frames)} frames do not fit a {self.grid} grid")
        cell = frames[0].shape[0] if frames else self.cell
        sheet = np.zeros((self.grid[1] * cell, self.grid[0] * cell, 4), dtype=np.uint8)
        for index, frame in enumerate(frames):
            r = tile_rect(index, cell, self.grid)
            sheet[r.y:r.y + r.h, r.x:r.x + r.w] = ensure_rgba(frame)
        return sheet


def load_image(path: Union[str, Path]) -> np.ndarray:
    """Read an image from disk as RGBA uint8."""
    img = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
    if img is None:
        raise ValueError(f"Failed to read image: {path}")

    if img.ndim == 2:
        img = cv2.cvtColor(img, cv2.COLOR_GRAY2RGBA)
    elif img.shape[2] == 3:
        img = cv2.cvtColor(img, cv2.COLOR_BGR2RGBA)
    else:
        img = cv2.cvtColor(img, cv2.COLOR_BGRA2RGBA)
    return img


def save_image(image: np.ndarray, path: Union[str, Path]) -> Path:
    """Write an RGBA uint8 image to disk (PNG keeps the alpha channel)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    bgra = cv2.cvtColor(ensure_rgba(image), cv2.COLOR_RGBA2BGRA)
    try:
        ok = cv2.imwrite(str(path), bgra)
    except cv2.error as exc:
        raise RuntimeError(f"Failed to write image to {path}: {exc}") from exc
    if not ok:
        raise RuntimeError(f"Failed to write image to {path}")
    LOGGER.debug("Saved %s", path)
    return path
