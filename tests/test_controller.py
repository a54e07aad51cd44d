"""
Tests for ViewerController.

- construction and ready notification
- camera setters clamp, wrap and snap
- render ticks resolve frames, seam direction and rings
- drag gestures commit or revert on release
- play_to futures complete, get superseded or cancelled
- keyboard / wheel / pinch input and auto-rotation
"""

import threading

import numpy as np
import pytest

from orbital.errors import TransitionSuperseded, ViewerInitError
from orbital.geometry import FULL_SPHERE_RINGS, RingConfig
from orbital.pipeline import FrameStabilizer
from orbital.telemetry import Telemetry
from orbital.viewer import DragPhase, EventKind, ViewerConfig, ViewerController


@pytest.fixture
def make_controller(ring_frames, clock):
    def factory(frames=None, **kwargs):
        kwargs.setdefault("clock", clock)
        return ViewerController(ring_frames if frames is None else frames, **kwargs)
    return factory


@pytest.fixture
def sphere_controller(ring_frames, clock):
    return ViewerController([ring_frames] * 3, rings=FULL_SPHERE_RINGS, clock=clock)


def collect(controller, kind):
    events = []
    controller.subscribe(kind, events.append)
    return events


class TestConstruction:

    def test_no_frames(self):
        with pytest.raises(ViewerInitError):
            ViewerController([])

    def test_nested_frames_need_rings(self, ring_frames):
        with pytest.raises(ViewerInitError):
            ViewerController([ring_frames, ring_frames])

    def test_ring_count_mismatch(self, ring_frames):
        with pytest.raises(ViewerInitError):
            ViewerController([ring_frames], rings=FULL_SPHERE_RINGS)

    def test_duplicate_ring_pitch(self, ring_frames):
        rings = [RingConfig(pitch=0.0), RingConfig(pitch=0.0)]
        with pytest.raises(ViewerInitError):
            ViewerController([ring_frames, ring_frames], rings=rings)

    def test_ready_emitted_once(self, make_controller):
        telemetry = Telemetry()
        controller = make_controller(telemetry=telemetry)
        ready = collect(controller, "ready")
        assert controller.fsm.state == "initializing"

        controller.tick()
        controller.tick()
        assert len(ready) == 1
        assert (ready[0].frame_count, ready[0].ring_count) == (12, 1)
        assert controller.fsm.state == "idle"
        assert [e["type"] for e in telemetry.events()] == ["session_start", "viewer_ready"]

    def test_accepts_stabilization_result(self, ring_frames, clock):
        result = FrameStabilizer().stabilize(ring_frames)
        controller = ViewerController(result, clock=clock)
        assert controller.rings[0].frame_count == 12
        assert controller.tick() is not None


class TestSetters:

    def test_yaw_wraps_and_snaps(self, make_controller):
        controller = make_controller()
        controller.set_yaw(370.0)
        assert controller.get_state().yaw == pytest.approx(10.0)
        controller.set_yaw(-30.0)
        assert controller.get_state().yaw == pytest.approx(330.0)
        controller.set_yaw(14.0, snap=True)
        assert controller.get_state().yaw == pytest.approx(0.0)

    def test_pitch_clamps_to_rings(self, sphere_controller):
        sphere_controller.set_pitch(40.0)
        assert sphere_controller.get_state().pitch == 15.0
        sphere_controller.set_pitch(-90.0)
        assert sphere_controller.get_state().pitch == -15.0
        sphere_controller.set_pitch(7.0, snap=True)
        assert sphere_controller.get_state().pitch == 0.0

    def test_single_ring_pitch_is_fixed(self, make_controller):
        controller = make_controller()
        controller.set_pitch(20.0)
        assert controller.get_state().pitch == 0.0

    def test_zoom_clamps(self, make_controller):
        controller = make_controller()
        controller.set_zoom(5.0)
        assert controller.get_state().zoom == pytest.approx(1.2)
        controller.set_zoom(0.5)
        assert controller.get_state().zoom == 1.0

    def test_zoom_disabled(self, make_controller):
        controller = make_controller(config=ViewerConfig(enable_zoom=False))
        controller.set_zoom(1.1)
        assert controller.get_state().zoom == 1.0

    def test_parallax_clamps(self, make_controller):
        controller = make_controller()
        controller.set_parallax(1.0)
        assert controller.get_state().parallax == pytest.approx(0.02)
        controller.set_parallax(-1.0)
        assert controller.get_state().parallax == 0.0

    def test_parallax_disabled(self, make_controller):
        controller = make_controller(config=ViewerConfig(enable_parallax=False))
        controller.set_parallax(0.01)
        assert controller.get_state().parallax == 0.0

    def test_angle_events(self, make_controller):
        controller = make_controller()
        angles = collect(controller, EventKind.ANGLE)
        controller.set_yaw(45.0)
        assert (angles[-1].yaw, angles[-1].pitch) == (45.0, 0.0)

    def test_get_state_is_a_copy(self, make_controller):
        controller = make_controller()
        snapshot = controller.get_state()
        snapshot.yaw = 99.0
        assert controller.get_state().yaw == 0.0


class TestRender:

    def test_yaw_between_frames(self, make_controller):
        controller = make_controller()
        controller.set_yaw(10.0)
        composite = controller.tick()

        assert (composite.frame_index, composite.next_index) == (0, 1)
        assert composite.t == pytest.approx(1.0 / 3.0)
        assert composite.seam_angle == pytest.approx(0.0)
        assert composite.image.shape == (16, 16, 4)
        assert composite.image.dtype == np.uint8
        assert controller.last_composite is composite

    def test_frame_event_on_change(self, make_controller):
        controller = make_controller()
        frames = collect(controller, "frame")
        controller.tick()
        assert frames == []

        controller.set_yaw(45.0)
        controller.tick()
        assert [e.frame_index for e in frames] == [1]
        assert controller.get_state().frame_index == 1

    def test_seam_follows_pitch_motion(self, sphere_controller):
        sphere_controller.tick()
        sphere_controller.set_pitch(7.5)
        composite = sphere_controller.tick()
        assert composite.seam_angle == pytest.approx(np.pi / 2)
        assert composite.pitch == 7.5

    def test_seam_kept_when_still(self, make_controller):
        controller = make_controller()
        controller.set_yaw(20.0)
        controller.tick()
        controller.set_yaw(10.0)
        assert controller.tick().seam_angle == pytest.approx(np.pi)
        assert controller.tick().seam_angle == pytest.approx(np.pi)

    def test_missing_frame_skips_render(self, ring_frames, clock):
        controller = ViewerController(ring_frames[:6], rings=[RingConfig(frame_count=12)], clock=clock)
        controller.set_yaw(200.0)
        assert controller.tick() is None
        controller.set_yaw(10.0)
        assert controller.tick() is not None

    def test_parallax_and_zoom_render(self, make_controller):
        controller = make_controller()
        controller.set_zoom(1.2)
        controller.set_parallax(0.02)
        controller.set_yaw(15.0)
        assert controller.tick() is not None


class TestDrag:

    def test_small_drag_reverts(self, make_controller, clock):
        controller = make_controller()
        drags = collect(controller, "drag")

        assert controller.pointer_down(300.0, 200.0)
        assert controller.get_state().is_dragging
        controller.pointer_move(350.0, 200.0)
        assert controller.get_state().yaw == pytest.approx(335.0)

        future = controller.pointer_up()
        assert not controller.get_state().is_dragging
        assert controller.fsm.state == "animating"

        clock.advance(0.5)
        controller.tick()
        assert future.result(timeout=0) is None
        assert controller.get_state().yaw == pytest.approx(0.0)
        assert controller.fsm.state == "idle"

        assert [e.phase for e in drags] == [DragPhase.START, DragPhase.MOVE, DragPhase.END]
        assert drags[-1].committed is False

    def test_long_drag_commits_to_next_frame(self, make_controller, clock):
        controller = make_controller()
        drags = collect(controller, "drag")

        controller.pointer_down(300.0, 200.0)
        controller.pointer_move(50.0, 200.0)
        assert controller.get_state().yaw == pytest.approx(125.0)

        future = controller.pointer_up()
        clock.advance(1.0)
        controller.tick()
        assert future.done()
        assert controller.get_state().yaw == pytest.approx(30.0)
        assert drags[-1].committed is True

    def test_commit_in_other_direction(self, make_controller, clock):
        controller = make_controller()
        controller.pointer_down(100.0, 200.0)
        controller.pointer_up(400.0, 200.0)
        clock.advance(1.0)
        controller.tick()
        assert controller.get_state().yaw == pytest.approx(330.0)

    def test_vertical_drag_moves_pitch(self, sphere_controller):
        sphere_controller.pointer_down(100.0, 100.0)
        sphere_controller.pointer_move(100.0, 120.0)
        assert sphere_controller.get_state().pitch == pytest.approx(5.0)

    def test_outside_activation_region(self, make_controller):
        controller = make_controller(config=ViewerConfig(activation_region=(0, 0, 100, 100)))
        assert not controller.pointer_down(200.0, 200.0)
        assert controller.pointer_up() is None

    def test_drag_disabled(self, make_controller):
        controller = make_controller(config=ViewerConfig(enable_drag=False))
        assert not controller.pointer_down(10.0, 10.0)

    def test_second_pointer_ignored(self, make_controller):
        controller = make_controller()
        assert controller.pointer_down(10.0, 10.0)
        assert not controller.pointer_down(20.0, 20.0)

    def test_drag_supersedes_animation(self, make_controller):
        controller = make_controller()
        future = controller.play_to(90.0, 0.0, 1.0)
        controller.pointer_down(10.0, 10.0)
        with pytest.raises(TransitionSuperseded):
            future.result(timeout=0)
        assert controller.fsm.state == "dragging"
        assert not controller.has_pending_transition

    def test_drag_of_exactly_the_threshold_commits(self, make_controller, clock):
        controller = make_controller(config=ViewerConfig(viewport=(800, 600), commit_fraction=0.25))
        drags = collect(controller, "drag")
        controller.pointer_down(300.0, 200.0)
        controller.pointer_up(100.0, 200.0)
        clock.advance(1.0)
        controller.tick()
        assert drags[-1].committed is True
        assert controller.get_state().yaw == pytest.approx(30.0)


class TestTransitions:

    def test_play_to_reaches_target(self, make_controller, clock):
        controller = make_controller()
        future = controller.play_to(90.0, 0.0, 1.0, ease="linear", zoom=1.2)

        clock.advance(0.5)
        controller.tick()
        state = controller.get_state()
        assert state.yaw == pytest.approx(45.0)
        assert state.zoom == pytest.approx(1.1)
        assert not future.done()

        clock.advance(0.6)
        controller.tick()
        assert future.result(timeout=0) is None
        assert controller.get_state().yaw == pytest.approx(90.0)

    def test_new_transition_supersedes(self, make_controller):
        controller = make_controller()
        first = controller.play_to(90.0, 0.0, 1.0)
        second = controller.play_to(180.0, 0.0, 1.0)

        with pytest.raises(TransitionSuperseded) as exc:
            first.result(timeout=0)
        assert exc.value.target_yaw == 90.0
        assert not second.done()

    def test_cancelled_transition_is_dropped(self, make_controller, clock):
        controller = make_controller()
        future = controller.play_to(90.0, 0.0, 1.0)
        assert future.cancel()

        clock.advance(0.5)
        controller.tick()
        assert not controller.has_pending_transition
        assert controller.fsm.state == "idle"
        assert controller.get_state().yaw == 0.0

    def test_unknown_easing(self, make_controller):
        with pytest.raises(ValueError):
            make_controller().play_to(90.0, 0.0, 1.0, ease="bounce")

    def test_transition_chained_while_superseded_still_settles(self, make_controller, clock):
        controller = make_controller()
        chained = []
        first = controller.play_to(90.0, 0.0, 1.0)
        first.add_done_callback(lambda _: chained.append(controller.play_to(45.0, 0.0, 1.0)))

        third = controller.play_to(180.0, 0.0, 1.0)
        assert len(chained) == 1
        # the transition started from the callback replaced the one being installed
        with pytest.raises(TransitionSuperseded):
            third.result(timeout=0)

        clock.advance(2.0)
        controller.tick()
        assert chained[0].result(timeout=0) is None
        assert controller.get_state().yaw == pytest.approx(45.0)
        assert not controller.has_pending_transition

    def test_done_callback_may_chain(self, make_controller, clock):
        controller = make_controller()
        chained = []
        future = controller.play_to(30.0, 0.0, 0.1)
        future.add_done_callback(lambda _: chained.append(controller.play_to(60.0, 0.0, 0.1)))

        clock.advance(0.2)
        controller.tick()
        assert len(chained) == 1
        clock.advance(0.2)
        controller.tick()
        assert controller.get_state().yaw == pytest.approx(60.0)


class TestInput:

    def test_arrow_keys_step_frames(self, make_controller, clock):
        controller = make_controller()
        assert controller.handle_key("ArrowRight")
        clock.advance(1.0)
        controller.tick()
        assert controller.get_state().yaw == pytest.approx(30.0)

        controller.handle_key("ArrowLeft")
        controller.handle_key("ArrowLeft")
        clock.advance(1.0)
        controller.tick()
        assert controller.get_state().yaw == pytest.approx(0.0)

    def test_arrow_keys_step_rings(self, sphere_controller, clock):
        sphere_controller.handle_key("ArrowUp")
        clock.advance(1.0)
        sphere_controller.tick()
        assert sphere_controller.get_state().pitch == 15.0

        sphere_controller.handle_key("ArrowUp")
        clock.advance(1.0)
        sphere_controller.tick()
        assert sphere_controller.get_state().pitch == 15.0

    def test_unknown_key(self, make_controller):
        assert not make_controller().handle_key("q")

    def test_space_toggles_play(self, make_controller):
        controller = make_controller()
        controller.handle_key("Space")
        assert controller.get_state().is_playing
        controller.handle_key(" ")
        assert not controller.get_state().is_playing

    def test_wheel_and_pinch(self, make_controller):
        controller = make_controller()
        controller.handle_wheel(-1.0)
        assert controller.get_state().zoom == pytest.approx(1.1)
        controller.handle_wheel(-1.0)
        controller.handle_wheel(-1.0)
        assert controller.get_state().zoom == pytest.approx(1.2)
        controller.handle_wheel(1.0)
        assert controller.get_state().zoom == pytest.approx(1.1)

        controller.handle_pinch(0.5)
        assert controller.get_state().zoom == 1.0
        controller.handle_pinch(2.0)
        assert controller.get_state().zoom == pytest.approx(1.2)


class TestAutoPlay:

    def test_rotates_at_configured_speed(self, make_controller):
        controller = make_controller(config=ViewerConfig(auto_play=True, auto_play_speed=30.0))
        controller.tick(0.0)
        controller.tick(1.0)
        assert controller.get_state().yaw == pytest.approx(30.0)

        controller.pause()
        controller.tick(2.0)
        assert controller.get_state().yaw == pytest.approx(30.0)

        controller.resume()
        controller.tick(2.5)
        assert controller.get_state().yaw == pytest.approx(45.0)

    def test_paused_while_dragging(self, make_controller):
        controller = make_controller(config=ViewerConfig(auto_play=True))
        controller.tick(0.0)
        controller.pointer_down(10.0, 10.0)
        controller.tick(1.0)
        assert controller.get_state().yaw == 0.0


class TestConcurrency:

    def test_parallel_setters_and_ticks(self, make_controller):
        controller = make_controller(clock=lambda: 0.0)
        errors = []

        def worker(offset):
            try:
                for i in range(20):
                    controller.set_yaw(offset + i * 7.0)
                    controller.tick()
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(k * 90.0,)) for k in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert 0.0 <= controller.get_state().yaw < 360.0
