"""
Interactive side of the orbital viewer.

This package contains the components responsible for:
- Camera / interaction state and its shareable fragment (state)
- Viewer tunables loaded from YAML or a manifest (config)
- Angle / frame / ready / drag notifications (events)
- Eased programmatic camera moves (transition)
- Pointer gesture tracking (drag)
- Driving the render loop and the interaction FSM (controller)
"""

from .state import ViewerState
from .config import ViewerConfig
from .events import (
    AngleEvent,
    DragEvent,
    DragPhase,
    EventDispatcher,
    EventKind,
    FrameEvent,
    ReadyEvent,
)
from .transition import EASINGS, AnimatedTransition
from .drag import ActivationRegion, DragTracker
from .controller import ViewerController


__all__ = [
    "ViewerState",
    "ViewerConfig",
    "AngleEvent",
    "DragEvent",
    "DragPhase",
    "EventDispatcher",
    "EventKind",
    "FrameEvent",
    "ReadyEvent",
    "EASINGS",
    "AnimatedTransition",
    "ActivationRegion",
    "DragTracker",
    "ViewerController",
]
