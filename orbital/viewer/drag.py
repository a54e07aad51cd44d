from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass
class ActivationRegion:
    """Rectangle (viewport pixels) in which a pointer-down starts a drag."""
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    def contains(self, px: float, py: float) -> bool:
        return self.x <= px <= self.x + self.width and self.y <= py <= self.y + self.height


@dataclass
class DragTracker:
    """
    Baseline and running estimates of one drag gesture.
    Velocity is an exponential moving average of per-move pointer deltas.
    """
    start_x: float
    start_y: float
    start_yaw: float
    start_pitch: float
    last_x: Optional[float] = None
    last_y: Optional[float] = None
    velocity: Tuple[float, float] = (0.0, 0.0)
    smoothing: float = 0.5

    def __post_init__(self):
        if self.last_x is None:
            self.last_x = self.start_x
        if self.last_y is None:
            self.last_y = self.start_y

    def move(self, x: float, y: float) -> Tuple[float, float]:
        """Record a pointer position; returns the delta since the previous one."""
        dx = x - self.last_x
        dy = y - self.last_y
        k = self.smoothing
        self.velocity = (dx * k + self.velocity[0] * (1.0 - k), dy * k + self.velocity[1] * (1.0 - k))
        self.last_x, self.last_y = x, y
        return dx, dy

    def total(self, x: Optional[float] = None, y: Optional[float] = None) -> Tuple[float, float]:
        """Cumulative displacement from the drag start."""
        x = self.last_x if x is None else x
        y = self.last_y if y is None else y
        return x - self.start_x, y - self.start_y
