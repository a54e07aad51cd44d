"""Command line entry point for the orbital toolchain.

Subcommands:
    - stabilize : slice a grid-packed sprite sheet, stabilize the frames and
                  write them out with a manifest and QC metrics
    - render    : composite one view of a stabilized frame set at a given
                  yaw / pitch / zoom

Usage:
    orbital stabilize sheet.png --out build/mug
    orbital render build/mug --yaw 10 --out view.png
"""

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import List, Sequence

import numpy as np

from orbital.geometry import RingConfig
from orbital.manifest import MODE_CONFIGS, OrbitalManifest, create_default_manifest
from orbital.pipeline import FrameStabilizer, StabilizerOptions, load_image, save_image
from orbital.pipeline.sheet import GEN_CELL, SheetSlicer, parse_grid
from orbital.telemetry import KPIRecorder, Telemetry
from orbital.viewer import ViewerConfig, ViewerController

LOGGER = logging.getLogger(__name__)
LOG_LEVELS = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}
FRAME_PATTERN = "frame_*.png"
MANIFEST_NAME = "manifest.json"
METRICS_NAME = "metrics.json"


def _render_progress(label: str, current: int, total: int) -> None:
    if total <= 0:
        return

    bar_len = 30
    fraction = max(0.0, min(1.0, current / total))
    filled = int(bar_len * fraction)
    bar = "#" * filled + "-" * (bar_len - filled)
    sys.stdout.write(f"\r{label} [{bar}] {current}/{total}")
    sys.stdout.flush()
    if current >= total:
        sys.stdout.write("\n")


def _configure_logging(level: str) -> None:
    numeric = LOG_LEVELS.get(level.lower())
    if numeric is None:
        raise ValueError(f"Unknown log level '{level}'. Choose from {list(LOG_LEVELS)}")

    if not logging.getLogger().hasHandlers():
        logging.basicConfig(level=numeric, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    logging.getLogger().setLevel(numeric)
    LOGGER.debug("Logging configured at %s", level.upper())


def _load_frames(frames_dir: Path) -> List[np.ndarray]:
    paths = sorted(frames_dir.glob(FRAME_PATTERN))
    if not paths:
        raise FileNotFoundError(f"No frames matching {FRAME_PATTERN} in {frames_dir}")
    return [load_image(path) for path in paths]


def _split_rings(frames: Sequence[np.ndarray], rings: Sequence[RingConfig]):
    """Cut a flat frame list into consecutive per-ring sets."""
    if sum(r.frame_count for r in rings) != len(frames):
        LOGGER.warning(
            "Manifest rings expect %d frames, found %d; using a single ring",
            sum(r.frame_count for r in rings),
            len(frames),
        )
        return [RingConfig(pitch=0.0, frame_count=len(frames))], [list(frames)]

    sets, offset = [], 0
    for ring in rings:
        sets.append(list(frames[offset:offset + ring.frame_count]))
        offset += ring.frame_count
    return list(rings), sets


# ----------------------------------------------------------------------
# SUBCOMMANDS
# ----------------------------------------------------------------------


def run_stabilize(
    sheet_path: Path,
    out_dir: Path,
    *,
    grid: str = "4x3",
    cell: int = GEN_CELL,
    mode: str = None,
    options: StabilizerOptions = None,
    telemetry_path: Path = None,
) -> Path:
    telemetry = Telemetry()
    recorder = KPIRecorder(telemetry)

    with telemetry.measure("upload_ingest", cellSize=cell):
        sheet = load_image(sheet_path)
    LOGGER.info("Loaded sheet %s (%dx%d)", sheet_path, sheet.shape[1], sheet.shape[0])

    frames = SheetSlicer(parse_grid(grid), cell).slice(sheet)
    stabilizer = FrameStabilizer(options, kpi_recorder=recorder)
    result = stabilizer.stabilize(frames)

    out_dir.mkdir(parents=True, exist_ok=True)
    total = len(result.frames)
    for frame in result.frames:
        save_image(frame.image, out_dir / f"frame_{frame.index:03d}.png")
        _render_progress("Writing frames", frame.index + 1, total)

    manifest = create_default_manifest(mode)
    manifest.rings = [
        RingConfig(pitch=r.pitch, frame_count=total, sheets=r.sheets, dual_offset=r.dual_offset)
        for r in manifest.rings[:1]
    ]
    manifest.save(out_dir / MANIFEST_NAME)

    with open(out_dir / METRICS_NAME, "w") as f:
        json.dump(asdict(result.metrics), f, indent=2)

    if telemetry_path is not None:
        telemetry.flush(telemetry_path)

    status = "passed" if result.metrics.passed else "missed"
    print(
        f"Stabilized {total} frames into {out_dir} "
        f"(centroid stddev {result.metrics.centroid_stddev:.3f}px, "
        f"area drift {result.metrics.area_drift:.2f}%, KPIs {status})"
    )
    return out_dir


def run_render(
    frames_dir: Path,
    out_path: Path,
    *,
    yaw: float = 0.0,
    pitch: float = 0.0,
    zoom: float = 1.0,
    parallax: float = 0.0,
    seam_from: float = None,
    config_path: Path = None,
) -> Path:
    frames = _load_frames(frames_dir)
    manifest_path = frames_dir / MANIFEST_NAME

    if manifest_path.exists():
        manifest = OrbitalManifest.load(manifest_path)
        rings, frame_sets = _split_rings(frames, manifest.rings)
        config = ViewerConfig.from_manifest(manifest)
    else:
        rings, frame_sets = [RingConfig(pitch=0.0, frame_count=len(frames))], [frames]
        config = ViewerConfig()

    if config_path is not None:
        config = ViewerConfig.from_yaml(config_path, base=config)

    controller = ViewerController(frame_sets, rings=rings, config=config, clock=lambda: 0.0)
    controller.initialize()

    # Render once from seam_from so the stitch seam follows the motion direction
    if seam_from is not None:
        controller.set_yaw(seam_from)
        controller.render()

    controller.set_yaw(yaw)
    controller.set_pitch(pitch)
    controller.set_zoom(zoom)
    controller.set_parallax(parallax)
    composite = controller.render()
    if composite is None:
        raise RuntimeError(f"Could not composite yaw={yaw} pitch={pitch}: missing frames")

    save_image(composite.image, out_path)
    LOGGER.info(
        "Rendered frames %d/%d t=%.3f seam=%.3frad",
        composite.frame_index,
        composite.next_index,
        composite.t,
        composite.seam_angle,
    )
    print(f"Saved composite to {out_path}")
    return out_path


# ----------------------------------------------------------------------
# ARGUMENT PARSING
# ----------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="orbital", description="Orbital sprite stabilizer and viewer toolkit")
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS.keys(),
        default="info",
        help="Logging verbosity",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    stab = sub.add_parser("stabilize", help="Stabilize the frames of a sprite sheet")
    stab.add_argument("sheet", type=Path, help="Grid-packed RGBA sprite sheet")
    stab.add_argument("--out", type=Path, required=True, help="Output directory")
    stab.add_argument("--grid", default="4x3", help="Sheet grid as COLSxROWS")
    stab.add_argument("--cell", type=int, default=GEN_CELL, help="Cell size in pixels")
    stab.add_argument("--mode", choices=MODE_CONFIGS.keys(), default=None, help="Generation mode for the manifest")
    stab.add_argument("--target-fit", type=float, default=0.80, help="Median bbox extent / output size")
    stab.add_argument("--scale-clamp", type=float, default=0.03, help="Max per-frame scale correction")
    stab.add_argument("--smooth-window", type=int, default=5, help="Odd smoothing window (frames)")
    stab.add_argument("--feather", type=float, default=2.0, help="Border alpha feather in pixels")
    stab.add_argument("--output-size", type=int, default=None, help="Square output size (default: cell)")
    stab.add_argument("--closed-loop", action="store_true", help="Smooth across the 359/0 degree wrap")
    stab.add_argument("--telemetry", type=Path, default=None, help="Append telemetry events as NDJSON")

    rend = sub.add_parser("render", help="Composite one view of a stabilized frame set")
    rend.add_argument("frames", type=Path, help="Directory written by 'orbital stabilize'")
    rend.add_argument("--out", type=Path, required=True, help="Output PNG")
    rend.add_argument("--yaw", type=float, default=0.0, help="Yaw in degrees")
    rend.add_argument("--pitch", type=float, default=0.0, help="Pitch in degrees")
    rend.add_argument("--zoom", type=float, default=1.0, help="Zoom factor (clamped to the configured max)")
    rend.add_argument("--parallax", type=float, default=0.0, help="Parallax strength")
    rend.add_argument("--from-yaw", type=float, default=None, help="Previous yaw, sets the seam direction")
    rend.add_argument("--config", type=Path, default=None, help="Viewer config YAML")
    return parser


def main(argv: Sequence[str] = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(args.log_level)

    if args.command == "stabilize":
        options = StabilizerOptions(
            target_fit=args.target_fit,
            scale_clamp=args.scale_clamp,
            feather_px=args.feather,
            smooth_window=args.smooth_window,
            output_size=args.output_size,
            closed_loop=args.closed_loop,
        )
        run_stabilize(
            args.sheet,
            args.out,
            grid=args.grid,
            cell=args.cell,
            mode=args.mode,
            options=options,
            telemetry_path=args.telemetry,
        )
    elif args.command == "render":
        run_render(
            args.frames,
            args.out,
            yaw=args.yaw,
            pitch=args.pitch,
            zoom=args.zoom,
            parallax=args.parallax,
            seam_from=args.from_yaw,
            config_path=args.config,
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
