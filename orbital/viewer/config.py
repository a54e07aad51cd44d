import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from orbital.compositing import CompositingEngine, ParallaxParams, ShadowParams, StitchParams, ZoomParams
from orbital.compositing.zoom import DEFAULT_ZOOM_MAX

DEFAULT_PARALLAX_MAX = 0.02

LOGGER = logging.getLogger(__name__)

_SECTIONS = {
    "stitch": StitchParams,
    "parallax_layers": ParallaxParams,
    "shadow": ShadowParams,
    "zoom_pass": ZoomParams,
}


@dataclass
class ViewerConfig:
    """
    Tunables of ViewerController. Defaults follow the canonical
    generation layout (584x438 display, 30 deg/s auto-rotation).
    """
    viewport: Tuple[int, int] = (584, 438)
    initial_yaw: float = 0.0
    initial_pitch: float = 0.0
    initial_zoom: float = 1.0

    zoom_max: float = DEFAULT_ZOOM_MAX
    parallax_max: float = DEFAULT_PARALLAX_MAX
    enable_zoom: bool = True
    enable_parallax: bool = True
    enable_shadow: bool = True
    enable_drag: bool = True

    auto_play: bool = False
    auto_play_speed: float = 30.0      # degrees per second

    drag_sensitivity: float = 0.5      # degrees of yaw per pixel
    pitch_sensitivity: float = 0.25    # degrees of pitch per pixel
    velocity_smoothing: float = 0.5
    commit_fraction: float = 1.0 / 3.0  # of viewport width
    commit_secs: float = 0.25
    revert_secs: float = 0.25
    step_secs: float = 0.3
    wheel_step: float = 0.1

    activation_region: Optional[Tuple[float, float, float, float]] = None  # x, y, w, h

    stitch: StitchParams = field(default_factory=StitchParams)
    parallax_layers: ParallaxParams = field(default_factory=ParallaxParams)
    shadow: ShadowParams = field(default_factory=ShadowParams)
    zoom_pass: ZoomParams = field(default_factory=ZoomParams)

    def build_engine(self) -> CompositingEngine:
        return CompositingEngine(
            stitch_params=self.stitch,
            parallax_params=self.parallax_layers,
            shadow_params=self.shadow,
            zoom_params=self.zoom_pass,
            enable_parallax=self.enable_parallax,
            enable_shadow=self.enable_shadow,
            enable_zoom=self.enable_zoom,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base: Optional["ViewerConfig"] = None) -> "ViewerConfig":
        """
        Build from a plain mapping; unknown keys are logged and ignored.

        :param base: Config the values are layered onto (defaults when None).
            Section mappings update only the keys they name.
        """
        base = base if base is not None else cls()
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in (data or {}).items():
            if key not in known:
                LOGGER.warning("Ignoring unknown viewer config key '%s'", key)
                continue
            if key in _SECTIONS and isinstance(value, dict):
                value = replace(getattr(base, key), **{k: (tuple(v) if isinstance(v, list) else v) for k, v in value.items()})
            elif isinstance(value, list):
                value = tuple(value)
            kwargs[key] = value
        return replace(base, **kwargs)

    @classmethod
    def from_yaml(cls, path: Union[str, Path], base: Optional["ViewerConfig"] = None) -> "ViewerConfig":
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        LOGGER.debug("Loaded viewer config from %s", path)
        return cls.from_dict(data, base=base)

    @classmethod
    def from_manifest(cls, manifest, **overrides) -> "ViewerConfig":
        """Take stitch / zoom / parallax limits from an OrbitalManifest."""
        config = cls(
            zoom_max=manifest.zoom.max,
            parallax_max=manifest.parallax_max,
            stitch=StitchParams(feather_px=manifest.stitch.feather, shear=manifest.stitch.shear),
            zoom_pass=ZoomParams(unsharp=manifest.zoom.unsharp),
        )
        for key, value in overrides.items():
            setattr(config, key, value)
        return config
