"""
Tests for yaw / pitch resolution.

- phase_params brackets a yaw with two frames and a blend factor
- spherical_neighbors picks rings and weights
- helpers: snapping, shortest delta, motion direction
"""

import math

import pytest

from orbital.geometry import (
    FULL_SPHERE_RINGS,
    RingConfig,
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


class TestPhaseParams:
    """Yaw to frame-pair resolution on a 12 frame ring."""

    def test_between_frames(self):
        p = phase_params(10.0, 12)
        assert (p.i, p.j) == (0, 1)
        assert p.t == pytest.approx(1.0 / 3.0)
        assert p.step_deg == pytest.approx(30.0)

    def test_wraps_past_last_frame(self):
        p = phase_params(345.0, 12)
        assert (p.i, p.j) == (11, 0)
        assert p.t == pytest.approx(0.5)

    def test_exact_frame_angle(self):
        p = phase_params(90.0, 12)
        assert (p.i, p.j, p.t) == (3, 4, 0.0)

    def test_negative_yaw(self):
        p = phase_params(-15.0, 12)
        assert (p.i, p.j) == (11, 0)
        assert p.t == pytest.approx(0.5)

    def test_single_frame_ring(self):
        p = phase_params(200.0, 1)
        assert (p.i, p.j) == (0, 0)

    def test_invalid_frame_count(self):
        with pytest.raises(ValueError):
            phase_params(0.0, 0)


class TestAngleHelpers:

    def test_normalize_yaw(self):
        assert normalize_yaw(370.0) == pytest.approx(10.0)
        assert normalize_yaw(-10.0) == pytest.approx(350.0)
        assert normalize_yaw(-1e-15) == 0.0

    def test_angle_for_index(self):
        assert angle_for_index(3, 12) == pytest.approx(90.0)
        assert angle_for_index(5, 24) == pytest.approx(75.0)

    def test_snap_yaw_rounds_to_nearest(self):
        assert snap_yaw(14.0, 12) == pytest.approx(0.0)
        assert snap_yaw(16.0, 12) == pytest.approx(30.0)
        assert snap_yaw(355.0, 12) == pytest.approx(0.0)

    def test_shortest_yaw_delta(self):
        assert shortest_yaw_delta(350.0, 10.0) == pytest.approx(20.0)
        assert shortest_yaw_delta(10.0, 350.0) == pytest.approx(-20.0)
        assert shortest_yaw_delta(0.0, 180.0) == pytest.approx(180.0)

    def test_dual_sprite_offset(self):
        assert dual_sprite_offset(12) == pytest.approx(15.0)

    def test_motion_direction(self):
        assert motion_direction(10.0, 0.0).angle == pytest.approx(0.0)
        assert motion_direction(0.0, 5.0).angle == pytest.approx(math.pi / 2)
        assert motion_direction(3.0, 4.0).magnitude == pytest.approx(5.0)


class TestSphericalNeighbors:
    """Ring selection and bilinear weights."""

    def test_single_ring_gives_two_neighbors(self):
        result = spherical_neighbors(10.0, 0.0, [RingConfig()])
        assert [n.frame for n in result.neighbors] == [0, 1]
        assert [n.weight for n in result.neighbors] == pytest.approx([2.0 / 3.0, 1.0 / 3.0])

    def test_between_rings_gives_four_neighbors(self):
        result = spherical_neighbors(10.0, 7.5, FULL_SPHERE_RINGS)
        assert len(result.neighbors) == 4
        assert result.t_phi == pytest.approx(0.5)
        assert sum(n.weight for n in result.neighbors) == pytest.approx(1.0)
        assert {n.ring.pitch for n in result.neighbors} == {0.0, 15.0}

    def test_pitch_clamped_to_outer_ring(self):
        result = spherical_neighbors(0.0, 40.0, FULL_SPHERE_RINGS)
        assert len(result.neighbors) == 2
        assert all(n.ring.pitch == 15.0 for n in result.neighbors)

    def test_exactly_on_ring(self):
        result = spherical_neighbors(0.0, 15.0, FULL_SPHERE_RINGS)
        assert all(n.ring.pitch == 15.0 for n in result.neighbors)

    def test_frames_per_ring_override(self):
        result = spherical_neighbors(10.0, 0.0, [RingConfig(frame_count=12)], frames_per_ring=36)
        assert [n.frame for n in result.neighbors] == [1, 2]

    def test_empty_rings(self):
        with pytest.raises(ValueError):
            spherical_neighbors(0.0, 0.0, [])

    def test_pitch_range(self):
        assert pitch_range(FULL_SPHERE_RINGS) == (-15.0, 15.0)

    def test_ring_requires_frames(self):
        with pytest.raises(ValueError):
            RingConfig(frame_count=0)
