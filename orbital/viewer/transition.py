from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Callable, Dict

from orbital.errors import TransitionSuperseded
from orbital.geometry.phase import normalize_yaw, shortest_yaw_delta


def ease_linear(t: float) -> float:
    return t


def ease_in_cubic(t: float) -> float:
    return t * t * t


def ease_out_cubic(t: float) -> float:
    return 1.0 - (1.0 - t) ** 3


def ease_in_out_cubic(t: float) -> float:
    if t < 0.5:
        return 4.0 * t * t * t
    return 1.0 - (-2.0 * t + 2.0) ** 3 / 2.0


EASINGS: Dict[str, Callable[[float], float]] = {
    "linear": ease_linear,
    "easeIn": ease_in_cubic,
    "easeOut": ease_out_cubic,
    "easeInOut": ease_in_out_cubic,
}


def resolve_easing(name: str) -> Callable[[float], float]:
    try:
        return EASINGS[name]
    except KeyError:
        raise ValueError(f"Unknown easing '{name}'. Choose from {list(EASINGS)}") from None


@dataclass
class AnimatedTransition:
    """
    A programmatic camera move. Yaw travels the short way round the ring.
    ``future`` settles with None on completion or TransitionSuperseded when replaced.
    """
    start_yaw: float
    start_pitch: float
    start_zoom: float
    target_yaw: float
    target_pitch: float
    target_zoom: float
    start_time: float
    duration_ms: float
    ease: str = "easeInOut"
    future: Future = field(default_factory=Future, repr=False, compare=False)

    def progress(self, now: float) -> float:
        if self.duration_ms <= 0:
            return 1.0
        elapsed_ms = (now - self.start_time) * 1000.0
        return min(max(elapsed_ms / self.duration_ms, 0.0), 1.0)

    def sample(self, now: float):
        """(yaw, pitch, zoom, finished) at wall-clock time ``now`` (seconds)."""
        p = self.progress(now)
        eased = resolve_easing(self.ease)(p)
        yaw = normalize_yaw(self.start_yaw + shortest_yaw_delta(self.start_yaw, self.target_yaw) * eased)
        pitch = self.start_pitch + (self.target_pitch - self.start_pitch) * eased
        zoom = self.start_zoom + (self.target_zoom - self.start_zoom) * eased
        if p >= 1.0:
            return normalize_yaw(self.target_yaw), self.target_pitch, self.target_zoom, True
        return yaw, pitch, zoom, False

    @property
    def cancelled(self) -> bool:
        return self.future.cancelled()

    def complete(self) -> None:
        if not self.future.done():
            self.future.set_result(None)

    def supersede(self) -> None:
        if not self.future.done():
            self.future.set_exception(TransitionSuperseded(self.target_yaw, self.target_pitch))
