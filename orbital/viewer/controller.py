import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from orbital.compositing import CompositeFrame, CompositingEngine, RingLayer
from orbital.errors import ViewerInitError
from orbital.fsm import ViewerFSM
from orbital.geometry import (
    RingConfig,
    angle_for_index,
    motion_direction,
    normalize_yaw,
    phase_params,
    pitch_range,
    shortest_yaw_delta,
    snap_yaw,
    spherical_neighbors,
)

from .config import ViewerConfig
from .drag import ActivationRegion, DragTracker
from .events import AngleEvent, DragEvent, DragPhase, EventDispatcher, EventKind, FrameEvent, ReadyEvent
from .state import ViewerState
from .transition import AnimatedTransition, resolve_easing

FrameLike = Union[np.ndarray, object]  # raw array or anything with an ``image`` attribute


def _as_image(frame) -> Optional[np.ndarray]:
    if frame is None:
        return None
    return getattr(frame, "image", frame)


class ViewerController:
    """
    Owns the camera of one orbital view and drives its render loop:
    - Controls the interaction FSM (idle / dragging / animating)
    - Clamps and wraps yaw, pitch, zoom, parallax
    - Turns pointer gestures into camera moves with commit / revert on release
    - Advances animated transitions and auto-rotation on wall-clock time
    - Resolves frame neighbours and runs the compositing passes each tick
    - Dispatches angle / frame / ready / drag events

    Instances share no mutable state; mutation is serialised by a per-instance lock.
    """

    def __init__(
        self,
        frames,
        rings: Sequence[RingConfig] = None,
        config: ViewerConfig = None,
        engine: CompositingEngine = None,
        clock: Callable[[], float] = None,
        callbacks: dict = None,
        telemetry=None,
    ):
        """
        :param frames: Frames of a single ring (sequence of images / StabilizedFrames,
                       or a StabilizationResult), or one such sequence per ring.
        :param rings: RingConfigs matching ``frames``; inferred for a single ring.
        :param clock: Monotonic clock in seconds (defaults to time.monotonic).
        :param callbacks: Extra FSM callbacks, e.g. {"on_enter_dragging": fn}.
        """
        self.log = logging.getLogger("ViewerController")
        self.config = config or ViewerConfig()
        self.engine = engine or self.config.build_engine()
        self.clock = clock or time.monotonic
        self.telemetry = telemetry

        self.rings, self.ring_frames = self._index_frames(frames, rings)
        self.pitch_min, self.pitch_max = pitch_range(self.rings)

        # --- State ---
        self.state = ViewerState(
            yaw=normalize_yaw(self.config.initial_yaw),
            pitch=self._clamp_pitch(self.config.initial_pitch),
            zoom=self._clamp_zoom(self.config.initial_zoom),
            is_playing=self.config.auto_play,
        )
        self.events = EventDispatcher()
        self.last_composite: Optional[CompositeFrame] = None

        self._lock = threading.RLock()
        self._transition: Optional[AnimatedTransition] = None
        self._drag: Optional[DragTracker] = None
        self._last_tick: Optional[float] = None
        self._prev_yaw = self.state.yaw
        self._prev_pitch = self.state.pitch
        self._seam_angle = 0.0

        width, height = self.config.viewport
        region = self.config.activation_region or (0.0, 0.0, width, height)
        self.activation_region = ActivationRegion(*region)

        # --- FSM ---
        self.fsm = ViewerFSM(callbacks=self._fsm_callbacks(callbacks))

    # ----------------------------------------------------------------------
    # SETUP
    # ----------------------------------------------------------------------

    def _index_frames(self, frames, rings) -> Tuple[Tuple[RingConfig, ...], Dict[RingConfig, List]]:
        frames = getattr(frames, "frames", frames)  # StabilizationResult
        if frames is None or len(frames) == 0:
            raise ViewerInitError("No frames to display")

        nested = not (isinstance(frames[0], np.ndarray) or hasattr(frames[0], "image"))
        frame_sets = [list(getattr(s, "frames", s)) for s in frames] if nested else [list(frames)]

        if rings is None:
            if len(frame_sets) != 1:
                raise ViewerInitError("rings must be given when frames for several rings are passed")
            rings = [RingConfig(pitch=0.0, frame_count=len(frame_sets[0]))]
        rings = tuple(rings)

        if not rings:
            raise ViewerInitError("At least one ring is required")
        if len(rings) != len(frame_sets):
            raise ViewerInitError(f"{len(rings)} rings but {len(frame_sets)} frame sets")
        if len({r.pitch for r in rings}) != len(rings):
            raise ViewerInitError("Ring pitches must be unique")

        indexed = {}
        for ring, frame_set in zip(rings, frame_sets):
            images = [_as_image(f) for f in frame_set[:ring.frame_count]]
            if len(frame_set) > ring.frame_count:
                self.log.warning(f"Ring {ring.pitch}: {len(frame_set)} frames for {ring.frame_count} slots, extra ignored")
            if len(images) < ring.frame_count:
                self.log.warning(f"Ring {ring.pitch}: only {len(images)} of {ring.frame_count} frames available")
                images += [None] * (ring.frame_count - len(images))
            indexed[ring] = images

        if all(img is None for images in indexed.values() for img in images):
            raise ViewerInitError("No usable frames in any ring")
        return rings, indexed

    def _fsm_callbacks(self, user_callbacks):
        """Merge internal callbacks with user-provided ones."""
        cb = dict(user_callbacks) if user_callbacks else {}

        cb.update(
            {
                "on_enter_idle": self._on_enter_idle,
                "on_enter_dragging": self._on_enter_dragging,
                "on_exit_dragging": self._on_exit_dragging,
                "on_enter_animating": self._on_enter_animating,
            }
        )
        return cb

    # ----------------------------------------------------------------------
    # STATE CALLBACKS
    # ----------------------------------------------------------------------

    def _on_enter_idle(self):
        self.log.debug("Viewer idle")

    def _on_enter_dragging(self):
        self.state.is_dragging = True

    def _on_exit_dragging(self):
        self.state.is_dragging = False

    def _on_enter_animating(self):
        t = self._transition
        if t is not None:
            self.log.debug(f"Animating to yaw={t.target_yaw:.1f} pitch={t.target_pitch:.1f} over {t.duration_ms:.0f}ms")

    # ----------------------------------------------------------------------
    # HELPERS
    # ----------------------------------------------------------------------

    def _clamp_pitch(self, phi: float) -> float:
        return min(self.pitch_max, max(self.pitch_min, phi))

    def _clamp_zoom(self, z: float) -> float:
        return min(self.config.zoom_max, max(1.0, z))

    def _ring_for_pitch(self, phi: float) -> RingConfig:
        return min(self.rings, key=lambda r: abs(r.pitch - phi))

    def _emit_angle(self):
        self.events.emit(AngleEvent(yaw=self.state.yaw, pitch=self.state.pitch))

    def _supersede_transition(self, replacement: Optional[AnimatedTransition] = None):
        # Swap before settling: the old future's done-callbacks may start a new transition
        old, self._transition = self._transition, replacement
        if old is not None:
            old.supersede()

    @property
    def has_pending_transition(self) -> bool:
        return self._transition is not None

    # ----------------------------------------------------------------------
    # PUBLIC API
    # ----------------------------------------------------------------------

    def initialize(self):
        """Leave the initializing state and emit ``ready`` (once)."""
        with self._lock:
            if self.fsm.state != "initializing":
                return
            self.fsm.init_done()
            frame_count = sum(r.frame_count for r in self.rings)
            self.log.info(f"Viewer ready: {len(self.rings)} ring(s), {frame_count} frames")
            if self.telemetry is not None:
                self.telemetry.emit("viewer_ready", frameCount=frame_count, rings=len(self.rings))
            self.events.emit(ReadyEvent(frame_count=frame_count, ring_count=len(self.rings)))

    def subscribe(self, kind: Union[EventKind, str], handler) -> Callable[[], None]:
        return self.events.subscribe(kind, handler)

    def unsubscribe(self, kind: Union[EventKind, str], handler) -> None:
        self.events.unsubscribe(kind, handler)

    def get_state(self) -> ViewerState:
        with self._lock:
            return replace(self.state)

    def set_yaw(self, theta: float, snap: bool = False):
        """Set yaw (wrapped to [0, 360)); ``snap`` rounds to the nearest frame angle."""
        with self._lock:
            yaw = normalize_yaw(theta)
            if snap:
                yaw = snap_yaw(yaw, self._ring_for_pitch(self.state.pitch).frame_count)
            self.state.yaw = yaw
            self._emit_angle()

    def set_pitch(self, phi: float, snap: bool = False):
        """Set pitch clamped to the ring range; ``snap`` picks the nearest ring."""
        with self._lock:
            pitch = self._clamp_pitch(phi)
            if snap:
                pitch = self._ring_for_pitch(pitch).pitch
            self.state.pitch = pitch
            self._emit_angle()

    def set_zoom(self, z: float):
        with self._lock:
            if not self.config.enable_zoom:
                return
            self.state.zoom = self._clamp_zoom(z)

    def set_parallax(self, p: float):
        with self._lock:
            if not self.config.enable_parallax:
                return
            self.state.parallax = min(self.config.parallax_max, max(0.0, p))

    def pause(self):
        with self._lock:
            self.state.is_playing = False

    def resume(self):
        with self._lock:
            self.state.is_playing = True

    def play_to(
        self,
        yaw: float,
        pitch: float,
        duration_secs: float,
        ease: str = "easeInOut",
        zoom: Optional[float] = None,
    ) -> Future:
        """
        Animate the camera to (yaw, pitch[, zoom]).

        Replaces any pending transition, whose future then fails with
        TransitionSuperseded. The returned future resolves to None when the
        move completes; cancelling it stops the move on the next tick.
        """
        resolve_easing(ease)
        with self._lock:
            self.initialize()
            self._drag = None

            transition = AnimatedTransition(
                start_yaw=self.state.yaw,
                start_pitch=self.state.pitch,
                start_zoom=self.state.zoom,
                target_yaw=normalize_yaw(yaw),
                target_pitch=self._clamp_pitch(pitch),
                target_zoom=self._clamp_zoom(zoom) if zoom is not None and self.config.enable_zoom else self.state.zoom,
                start_time=self.clock(),
                duration_ms=max(duration_secs, 0.0) * 1000.0,
                ease=ease,
            )
            self.fsm.start_transition()
            self._supersede_transition(transition)
            return transition.future

    def step(self, direction: int) -> Future:
        """Animate to the neighbouring frame (direction +1 / -1) of the current ring."""
        with self._lock:
            n = self._ring_for_pitch(self.state.pitch).frame_count
            index = int(round(self.state.yaw / (360.0 / n))) % n
            target = angle_for_index((index + direction) % n, n)
            return self.play_to(target, self.state.pitch, self.config.step_secs)

    def step_pitch(self, direction: int) -> Future:
        """Animate to the next ring up (+1) or down (-1)."""
        with self._lock:
            pitches = sorted(r.pitch for r in self.rings)
            current = pitches.index(self._ring_for_pitch(self.state.pitch).pitch)
            target = pitches[min(len(pitches) - 1, max(0, current + direction))]
            return self.play_to(self.state.yaw, target, self.config.step_secs)

    # ----------------------------------------------------------------------
    # INPUT
    # ----------------------------------------------------------------------

    def pointer_down(self, x: float, y: float) -> bool:
        """Start a drag if (x, y) lies in the activation region. Returns True if it did."""
        with self._lock:
            if not self.config.enable_drag or not self.activation_region.contains(x, y):
                return False
            self.initialize()
            if not self.fsm.can("begin_drag"):
                return False

            while self._transition is not None:
                self._supersede_transition()
            self._drag = DragTracker(
                start_x=x,
                start_y=y,
                start_yaw=self.state.yaw,
                start_pitch=self.state.pitch,
                smoothing=self.config.velocity_smoothing,
            )
            self.fsm.begin_drag()
            self.events.emit(DragEvent(phase=DragPhase.START, x=x, y=y, yaw=self.state.yaw, pitch=self.state.pitch))
            return True

    def pointer_move(self, x: float, y: float):
        with self._lock:
            drag = self._drag
            if drag is None or not self.state.is_dragging:
                return

            dx, dy = drag.move(x, y)
            total_dx, total_dy = drag.total()
            self.set_yaw(drag.start_yaw - total_dx * self.config.drag_sensitivity)
            self.set_pitch(drag.start_pitch + total_dy * self.config.pitch_sensitivity)

            self.events.emit(
                DragEvent(
                    phase=DragPhase.MOVE, x=x, y=y, dx=dx, dy=dy,
                    yaw=self.state.yaw, pitch=self.state.pitch, velocity=drag.velocity,
                )
            )

    def pointer_up(self, x: Optional[float] = None, y: Optional[float] = None) -> Optional[Future]:
        """
        End the drag. Past ``commit_fraction`` of the viewport width the view
        settles on the frame next to the pre-drag one, in the drag direction;
        otherwise it eases back to the pre-drag angles.

        :return: Future of the settling transition, or None if no drag was active.
        """
        with self._lock:
            drag = self._drag
            if drag is None:
                return None
            if x is not None and y is not None and (x, y) != (drag.last_x, drag.last_y):
                self.pointer_move(x, y)

            total_dx, _ = drag.total()
            self._drag = None
            self.fsm.end_drag()

            threshold = self.config.viewport[0] * self.config.commit_fraction
            committed = abs(total_dx) >= threshold
            if committed:
                n = self._ring_for_pitch(drag.start_pitch).frame_count
                start_index = int(round(normalize_yaw(drag.start_yaw) / (360.0 / n))) % n
                direction = 1 if total_dx < 0 else -1
                target = angle_for_index((start_index + direction) % n, n)
                future = self.play_to(target, self.state.pitch, self.config.commit_secs)
            else:
                future = self.play_to(drag.start_yaw, drag.start_pitch, self.config.revert_secs)

            self.events.emit(
                DragEvent(
                    phase=DragPhase.END, x=drag.last_x, y=drag.last_y,
                    yaw=self.state.yaw, pitch=self.state.pitch,
                    velocity=drag.velocity, committed=committed,
                )
            )
            return future

    def handle_wheel(self, delta_y: float):
        """Wheel zoom: scrolling down zooms out, up zooms in."""
        with self._lock:
            if not self.config.enable_zoom or delta_y == 0:
                return
            step = -self.config.wheel_step if delta_y > 0 else self.config.wheel_step
            self.set_zoom(self.state.zoom + step)

    def handle_pinch(self, scale: float):
        with self._lock:
            if scale > 0:
                self.set_zoom(self.state.zoom * scale)

    def handle_key(self, key: str) -> bool:
        """Snap navigation keys. Returns True if the key was handled."""
        key = key.lower()
        if key in ("arrowleft", "left"):
            self.step(-1)
        elif key in ("arrowright", "right"):
            self.step(1)
        elif key in ("arrowup", "up"):
            self.step_pitch(1)
        elif key in ("arrowdown", "down"):
            self.step_pitch(-1)
        elif key in (" ", "space"):
            with self._lock:
                self.state.is_playing = not self.state.is_playing
        else:
            return False
        return True

    # ----------------------------------------------------------------------
    # RENDER LOOP
    # ----------------------------------------------------------------------

    def tick(self, now: Optional[float] = None) -> Optional[CompositeFrame]:
        """
        Advance one display frame: transition or auto-rotation, then render.

        :param now: Wall-clock seconds; read from the clock when omitted.
        :return: The composite, or None if a neighbour frame is missing.
        """
        with self._lock:
            self.initialize()
            now = self.clock() if now is None else now
            dt = 0.0 if self._last_tick is None else max(now - self._last_tick, 0.0)
            self._last_tick = now

            if self._transition is not None:
                self._advance_transition(now)
            elif self.state.is_playing and self.fsm.state == "idle" and dt > 0:
                self.state.yaw = normalize_yaw(self.state.yaw + self.config.auto_play_speed * dt)
                self._emit_angle()

            return self.render()

    def _advance_transition(self, now: float):
        transition = self._transition
        if transition.cancelled:
            self.log.debug("Transition cancelled by caller")
            self._transition = None
            self.fsm.finish_transition()
            return

        yaw, pitch, zoom, finished = transition.sample(now)
        changed = (yaw, pitch) != (self.state.yaw, self.state.pitch)
        self.state.yaw, self.state.pitch, self.state.zoom = yaw, pitch, zoom
        if changed:
            self._emit_angle()

        if finished:
            self._transition = None
            self.fsm.finish_transition()
            transition.complete()

    def render(self) -> Optional[CompositeFrame]:
        """Composite the current view. Returns None when a needed frame is missing."""
        with self._lock:
            yaw, pitch = self.state.yaw, self.state.pitch

            motion = motion_direction(shortest_yaw_delta(self._prev_yaw, yaw), pitch - self._prev_pitch)
            if motion.magnitude > 0:
                self._seam_angle = motion.angle
            self._prev_yaw, self._prev_pitch = yaw, pitch

            neighbors = spherical_neighbors(yaw, pitch, self.rings)
            ring_weights: Dict[RingConfig, float] = {}
            for n in neighbors.neighbors:
                ring_weights[n.ring] = ring_weights.get(n.ring, 0.0) + n.weight

            dominant = max(ring_weights, key=ring_weights.get)
            phase = phase_params(yaw, dominant.frame_count)
            if phase.i != self.state.frame_index:
                self.state.frame_index = phase.i
                self.events.emit(FrameEvent(frame_index=phase.i, pitch=dominant.pitch))

            layers = []
            for ring, weight in ring_weights.items():
                ring_phase = phase_params(yaw, ring.frame_count)
                frame_a = self.ring_frames[ring][ring_phase.i]
                frame_b = self.ring_frames[ring][ring_phase.j]
                if frame_a is None or frame_b is None:
                    self.log.warning(
                        f"Missing frame {ring_phase.i if frame_a is None else ring_phase.j} "
                        f"on ring {ring.pitch}; skipping render"
                    )
                    return None
                layers.append(
                    RingLayer(
                        frame_a=frame_a, frame_b=frame_b, t=ring_phase.t,
                        step_deg=ring_phase.step_deg, weight=weight, pitch=ring.pitch,
                    )
                )

            tile_width = layers[0].frame_a.shape[1]
            magnitude = self.state.parallax * tile_width
            parallax_px = (magnitude * np.cos(self._seam_angle), magnitude * np.sin(self._seam_angle))

            image = self.engine.composite(layers, self._seam_angle, parallax_px, self.state.zoom)
            self.last_composite = CompositeFrame(
                image=image,
                frame_index=phase.i,
                next_index=phase.j,
                t=phase.t,
                seam_angle=self._seam_angle,
                pitch=pitch,
            )
            return self.last_composite
