"""Yaw / pitch resolution for discrete frame rings."""

from .phase import (
    DEFAULT_RINGS,
    FULL_SPHERE_RINGS,
    MotionDirection,
    Neighbor,
    PhaseParams,
    RingConfig,
    SphericalNeighbors,
    angle_for_index,
    dual_sprite_offset,
    motion_direction,
    normalize_yaw,
    phase_params,
    pitch_range,
    shortest_yaw_delta,
    snap_yaw,
    spherical_neighbors,
)

__all__ = [
    "DEFAULT_RINGS",
    "FULL_SPHERE_RINGS",
    "MotionDirection",
    "Neighbor",
    "PhaseParams",
    "RingConfig",
    "SphericalNeighbors",
    "angle_for_index",
    "dual_sprite_offset",
    "motion_direction",
    "normalize_yaw",
    "phase_params",
    "pitch_range",
    "shortest_yaw_delta",
    "snap_yaw",
    "spherical_neighbors",
]
