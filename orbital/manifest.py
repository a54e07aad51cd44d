"""
Export manifest describing how an orbital sprite set was generated and how
it should be displayed.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Tuple, Union

from orbital.compositing.stitch import DEFAULT_FEATHER_PX, DEFAULT_SHEAR
from orbital.compositing.zoom import DEFAULT_ZOOM_MAX
from orbital.geometry import DEFAULT_RINGS, RingConfig
from orbital.pipeline.sheet import DISP_CELL, DISP_SHEET, GEN_CELL, GEN_GRID, GEN_SHEET, OVERSCAN
from orbital.viewer.config import DEFAULT_PARALLAX_MAX

MANIFEST_VERSION = "1.1"
WARP_TYPES = ("cylindrical", "conical", "spherical")
DEFAULT_WARP_TYPE = "cylindrical"

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModeConfig:
    frames: int
    cell: int
    dual_sprite: bool
    sheets: int


MODE_CONFIGS: Dict[str, ModeConfig] = {
    "fast": ModeConfig(frames=12, cell=176, dual_sprite=False, sheets=1),
    "pro": ModeConfig(frames=12, cell=176, dual_sprite=False, sheets=1),
    "smooth": ModeConfig(frames=24, cell=176, dual_sprite=True, sheets=2),
}


@dataclass
class GenerationLayout:
    grid: Tuple[int, int] = GEN_GRID
    cell: int = GEN_CELL
    sheet: Tuple[int, int] = GEN_SHEET
    overscan: float = OVERSCAN


@dataclass
class DisplayLayout:
    grid: Tuple[int, int] = GEN_GRID
    cell: int = DISP_CELL
    sheet: Tuple[int, int] = DISP_SHEET


@dataclass
class StitchSettings:
    feather: float = DEFAULT_FEATHER_PX
    warp: str = DEFAULT_WARP_TYPE
    shear: float = DEFAULT_SHEAR


@dataclass
class ZoomSettings:
    max: float = DEFAULT_ZOOM_MAX
    unsharp: bool = True


@dataclass
class OrbitalManifest:
    version: str = MANIFEST_VERSION
    generation: GenerationLayout = field(default_factory=GenerationLayout)
    display: DisplayLayout = field(default_factory=DisplayLayout)
    rings: List[RingConfig] = field(default_factory=lambda: list(DEFAULT_RINGS))
    stitch: StitchSettings = field(default_factory=StitchSettings)
    zoom: ZoomSettings = field(default_factory=ZoomSettings)
    parallax_max: float = DEFAULT_PARALLAX_MAX

    def __post_init__(self):
        if self.stitch.warp not in WARP_TYPES:
            raise ValueError(f"Unknown warp type '{self.stitch.warp}'. Choose from {WARP_TYPES}")

    # -------------------- Serialisation --------------------

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for section in ("generation", "display"):
            data[section] = {k: list(v) if isinstance(v, tuple) else v for k, v in data[section].items()}
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrbitalManifest":
        version = data.get("version", MANIFEST_VERSION)
        if version != MANIFEST_VERSION:
            LOGGER.warning("Manifest version %s, expected %s; loading anyway", version, MANIFEST_VERSION)

        def tuples(section: Dict[str, Any]) -> Dict[str, Any]:
            return {k: tuple(v) if isinstance(v, list) else v for k, v in section.items()}

        return cls(
            version=version,
            generation=GenerationLayout(**tuples(data.get("generation", {}))),
            display=DisplayLayout(**tuples(data.get("display", {}))),
            rings=[RingConfig(**ring) for ring in data.get("rings", [asdict(r) for r in DEFAULT_RINGS])],
            stitch=StitchSettings(**data.get("stitch", {})),
            zoom=ZoomSettings(**data.get("zoom", {})),
            parallax_max=data.get("parallax_max", DEFAULT_PARALLAX_MAX),
        )

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        LOGGER.info("Manifest written to %s", path)
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> "OrbitalManifest":
        with open(path, "r") as f:
            return cls.from_dict(json.load(f))


def create_default_manifest(mode: str = None) -> OrbitalManifest:
    """
    Manifest for the canonical 4x3 generation layout.

    :param mode: Optional key of MODE_CONFIGS; sets the ring frame count and
                 sheet count, and the dual-sprite offset.
    """
    manifest = OrbitalManifest()
    if mode is None:
        return manifest

    try:
        mode_config = MODE_CONFIGS[mode]
    except KeyError:
        raise ValueError(f"Unknown mode '{mode}'. Choose from {list(MODE_CONFIGS)}") from None

    manifest.rings = [
        RingConfig(
            pitch=ring.pitch,
            frame_count=mode_config.frames,
            sheets=mode_config.sheets,
            dual_offset=mode_config.dual_sprite,
        )
        for ring in manifest.rings
    ]
    return manifest
