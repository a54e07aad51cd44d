import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Union


class EventKind(Enum):
    ANGLE = "angle"
    FRAME = "frame"
    READY = "ready"
    DRAG = "drag"


class DragPhase(Enum):
    START = "start"
    MOVE = "move"
    END = "end"


@dataclass(frozen=True)
class AngleEvent:
    yaw: float
    pitch: float
    kind: EventKind = EventKind.ANGLE


@dataclass(frozen=True)
class FrameEvent:
    frame_index: int
    pitch: float = 0.0
    kind: EventKind = EventKind.FRAME


@dataclass(frozen=True)
class ReadyEvent:
    frame_count: int
    ring_count: int
    kind: EventKind = EventKind.READY


@dataclass(frozen=True)
class DragEvent:
    phase: DragPhase
    x: float = 0.0
    y: float = 0.0
    dx: float = 0.0
    dy: float = 0.0
    yaw: float = 0.0
    pitch: float = 0.0
    velocity: tuple = (0.0, 0.0)
    committed: Optional[bool] = None
    kind: EventKind = EventKind.DRAG


ViewerEvent = Union[AngleEvent, FrameEvent, ReadyEvent, DragEvent]
Handler = Callable[[ViewerEvent], None]


class EventDispatcher:
    """
    Subscriber sets per event kind.

    A handler that raises is logged and skipped; the remaining handlers for
    the same event still run.
    """

    def __init__(self):
        self.log = logging.getLogger("EventDispatcher")
        self._handlers: Dict[EventKind, List[Handler]] = {kind: [] for kind in EventKind}

    def subscribe(self, kind: Union[EventKind, str], handler: Handler) -> Callable[[], None]:
        """
        Register ``handler`` for ``kind``. Returns a function that unsubscribes it.
        Registering the same handler twice has no effect.
        """
        kind = EventKind(kind)
        if handler not in self._handlers[kind]:
            self._handlers[kind].append(handler)
        return lambda: self.unsubscribe(kind, handler)

    def unsubscribe(self, kind: Union[EventKind, str], handler: Handler) -> None:
        kind = EventKind(kind)
        if handler in self._handlers[kind]:
            self._handlers[kind].remove(handler)

    def emit(self, event: ViewerEvent) -> int:
        """
        Deliver ``event`` to every subscriber of its kind.
        :return: Number of handlers that completed without raising.
        """
        delivered = 0
        # Copy so handlers may unsubscribe while being called
        for handler in list(self._handlers[event.kind]):
            try:
                handler(event)
                delivered += 1
            except Exception:
                self.log.exception(f"Listener {getattr(handler, '__name__', handler)!r} failed on {event.kind.value}")
        return delivered

    def handler_count(self, kind: Union[EventKind, str]) -> int:
        return len(self._handlers[EventKind(kind)])
