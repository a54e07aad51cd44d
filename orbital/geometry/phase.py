"""
Angle bookkeeping for a ring of discrete yaw frames.

Maps a continuous viewing angle onto the two frames that bracket it, the blend
factor between them, and the direction the camera is moving in.
"""

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence


@dataclass(frozen=True)
class RingConfig:
    """One set of yaw frames captured at a fixed pitch."""
    pitch: float = 0.0
    frame_count: int = 12
    sheets: int = 1
    dual_offset: bool = False

    def __post_init__(self):
        if self.frame_count < 1:
            raise ValueError(f"frame_count must be >= 1, got {self.frame_count}")


DEFAULT_RINGS = (RingConfig(pitch=0.0),)
FULL_SPHERE_RINGS = (
    RingConfig(pitch=-15.0),
    RingConfig(pitch=0.0),
    RingConfig(pitch=15.0),
)


@dataclass(frozen=True)
class PhaseParams:
    i: int
    j: int
    t: float
    step_deg: float


@dataclass(frozen=True)
class Neighbor:
    ring: RingConfig
    frame: int
    weight: float


@dataclass(frozen=True)
class SphericalNeighbors:
    neighbors: List[Neighbor]
    t_theta: float
    t_phi: float


@dataclass(frozen=True)
class MotionDirection:
    angle: float
    magnitude: float


def normalize_yaw(theta_deg: float) -> float:
    """Wrap an angle into [0, 360)."""
    wrapped = theta_deg % 360.0
    # -1e-15 % 360 rounds to exactly 360.0
    return 0.0 if wrapped >= 360.0 else wrapped


def angle_for_index(i: int, total: int = 12) -> float:
    """Yaw angle in degrees of frame ``i`` on a ring of ``total`` frames."""
    return i * (360.0 / total)


def phase_params(theta_deg: float, frame_count: int = 12) -> PhaseParams:
    """
    Resolve a yaw angle into the frame pair that brackets it.

    :param theta_deg: Yaw in degrees, any range.
    :param frame_count: Frames on the ring.
    :return: PhaseParams(i, j, t, step_deg) where ``t`` is the blend from i to j.
    """
    if frame_count < 1:
        raise ValueError(f"frame_count must be >= 1, got {frame_count}")

    theta = normalize_yaw(theta_deg)
    step = 360.0 / frame_count
    u = theta / step
    base = math.floor(u)
    i = int(base) % frame_count
    return PhaseParams(i=i, j=(i + 1) % frame_count, t=u - base, step_deg=step)


def snap_yaw(theta_deg: float, frame_count: int = 12) -> float:
    """Round a yaw angle to the nearest discrete frame angle."""
    step = 360.0 / frame_count
    index = int(round(normalize_yaw(theta_deg) / step)) % frame_count
    return angle_for_index(index, frame_count)


def shortest_yaw_delta(from_deg: float, to_deg: float) -> float:
    """Signed yaw change in (-180, 180] going from ``from_deg`` to ``to_deg``."""
    delta = (to_deg - from_deg) % 360.0
    if delta > 180.0:
        delta -= 360.0
    return delta


def dual_sprite_offset(frame_count: int = 12) -> float:
    """Yaw offset of the second, interleaved sprite sheet (half a step)."""
    return 180.0 / frame_count


def pitch_range(rings: Sequence[RingConfig]):
    if not rings:
        raise ValueError("At least one ring is required")
    pitches = [r.pitch for r in rings]
    return min(pitches), max(pitches)


def spherical_neighbors(
    theta_deg: float,
    phi_deg: float,
    rings: Sequence[RingConfig],
    frames_per_ring: Optional[int] = None,
) -> SphericalNeighbors:
    """
    Frames to blend for a camera at (theta, phi).

    Picks the two rings bracketing ``phi`` (clamped to the outermost ring when
    outside the range) and the two yaw frames on each. Weights are bilinear in
    yaw x pitch and sum to 1. When both brackets are the same ring only the two
    yaw neighbours of that ring are returned.

    :param frames_per_ring: Overrides each ring's own frame_count when given.
    """
    if not rings:
        raise ValueError("At least one ring is required")

    ordered = sorted(rings, key=lambda r: r.pitch)
    lower = upper = ordered[0]
    t_phi = 0.0

    if phi_deg <= ordered[0].pitch:
        lower = upper = ordered[0]
    elif phi_deg >= ordered[-1].pitch:
        lower = upper = ordered[-1]
    else:
        for r0, r1 in zip(ordered, ordered[1:]):
            if r0.pitch <= phi_deg <= r1.pitch:
                lower, upper = r0, r1
                span = r1.pitch - r0.pitch
                t_phi = (phi_deg - r0.pitch) / span if span > 0 else 0.0
                break

    def _pair(ring: RingConfig, ring_weight: float) -> List[Neighbor]:
        count = frames_per_ring or ring.frame_count
        phase = phase_params(theta_deg, count)
        return [
            Neighbor(ring=ring, frame=phase.i, weight=(1.0 - phase.t) * ring_weight),
            Neighbor(ring=ring, frame=phase.j, weight=phase.t * ring_weight),
        ]

    if lower is upper or t_phi == 0.0:
        neighbors = _pair(lower, 1.0)
    elif t_phi == 1.0:
        neighbors = _pair(upper, 1.0)
    else:
        neighbors = _pair(lower, 1.0 - t_phi) + _pair(upper, t_phi)

    t_theta = phase_params(theta_deg, frames_per_ring or lower.frame_count).t
    return SphericalNeighbors(neighbors=neighbors, t_theta=t_theta, t_phi=t_phi)


def motion_direction(d_theta: float, d_phi: float) -> MotionDirection:
    """Direction (radians) and magnitude of the instantaneous camera motion."""
    return MotionDirection(angle=math.atan2(d_phi, d_theta), magnitude=math.hypot(d_theta, d_phi))
