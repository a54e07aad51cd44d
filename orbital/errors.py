"""Exception types shared across the orbital packages."""


class OrbitalError(Exception):
    """Base class for errors raised by orbital."""


class ViewerInitError(OrbitalError):
    """The viewer cannot be brought up (no rings, no frames to show)."""


class TransitionSuperseded(OrbitalError):
    """
    Set on the future of an animated transition that was replaced by a newer
    play_to() call or by the start of a drag before it could finish.
    """

    def __init__(self, target_yaw: float, target_pitch: float):
        super().__init__(
            f"Transition to yaw={target_yaw:.2f} pitch={target_pitch:.2f} was superseded"
        )
        self.target_yaw = target_yaw
        self.target_pitch = target_pitch


class SheetLayoutError(OrbitalError, ValueError):
    """A sprite sheet does not match the requested grid / cell layout."""
