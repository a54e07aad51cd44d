from dataclasses import dataclass, fields
from typing import Dict
from urllib.parse import parse_qsl, urlencode


@dataclass
class ViewerState:
    """Camera and interaction state; mutated only by ViewerController."""
    yaw: float = 0.0
    pitch: float = 0.0
    zoom: float = 1.0
    parallax: float = 0.0
    frame_index: int = 0
    is_dragging: bool = False
    is_playing: bool = False

    # Fields persisted in a shareable fragment, with their precision
    FRAGMENT_FORMAT = {"yaw": "{:.1f}", "pitch": "{:.1f}", "zoom": "{:.2f}", "parallax": "{:.3f}"}

    def to_fragment(self) -> str:
        """Encode the camera as ``yaw=..&pitch=..&zoom=..&parallax=..``."""
        return urlencode({key: fmt.format(getattr(self, key)) for key, fmt in self.FRAGMENT_FORMAT.items()})

    @classmethod
    def parse_fragment(cls, fragment: str) -> Dict[str, float]:
        """
        Decode a fragment written by to_fragment(). Unknown keys and
        unparsable values are skipped; a leading '#' is ignored.
        """
        known = {f.name for f in fields(cls)} & set(cls.FRAGMENT_FORMAT)
        values = {}
        for key, raw in parse_qsl(fragment.lstrip("#")):
            if key not in known:
                continue
            try:
                values[key] = float(raw)
            except ValueError:
                continue
        return values
