"""
Tests for the export manifest and telemetry.

- default manifest values and generation modes
- JSON persistence
- telemetry buffering, listeners and NDJSON
- KPI percentiles
"""

import json

import pytest

from orbital.geometry import RingConfig
from orbital.manifest import MODE_CONFIGS, OrbitalManifest, StitchSettings, create_default_manifest
from orbital.pipeline import StabilizationMetrics
from orbital.telemetry import KPIRecorder, Telemetry


def metrics(stddev, drift, ms=10.0):
    return StabilizationMetrics(
        centroid_stddev=stddev, area_drift=drift, avg_post_proc_ms=ms,
        frame_count=12, degenerate_count=0, passed=stddev < 0.5 and drift < 2.5,
    )


class TestManifest:

    def test_defaults(self):
        manifest = create_default_manifest()
        data = manifest.to_dict()
        assert data["version"] == "1.1"
        assert data["generation"] == {"grid": [4, 3], "cell": 176, "sheet": [704, 528], "overscan": 0.2}
        assert data["display"] == {"grid": [4, 3], "cell": 146, "sheet": [584, 438]}
        assert data["rings"] == [{"pitch": 0.0, "frame_count": 12, "sheets": 1, "dual_offset": False}]
        assert data["stitch"] == {"feather": 10.0, "warp": "cylindrical", "shear": 0.1}
        assert data["zoom"] == {"max": 1.2, "unsharp": True}
        assert data["parallax_max"] == 0.02

    def test_smooth_mode(self):
        manifest = create_default_manifest("smooth")
        assert manifest.rings == [RingConfig(pitch=0.0, frame_count=24, sheets=2, dual_offset=True)]
        assert MODE_CONFIGS["fast"].frames == 12

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            create_default_manifest("ultra")

    def test_unknown_warp(self):
        with pytest.raises(ValueError):
            OrbitalManifest(stitch=StitchSettings(warp="fisheye"))

    def test_save_and_load(self, tmp_path):
        manifest = create_default_manifest("smooth")
        path = manifest.save(tmp_path / "out" / "manifest.json")
        assert json.loads(path.read_text())["version"] == "1.1"
        assert OrbitalManifest.load(path) == manifest

    def test_from_dict_fills_missing_sections(self):
        manifest = OrbitalManifest.from_dict({"version": "1.1", "parallax_max": 0.01})
        assert manifest.parallax_max == 0.01
        assert manifest.generation.cell == 176
        assert manifest.rings == [RingConfig()]


class TestTelemetry:

    def test_session_start_and_fields(self):
        telemetry = Telemetry(clock=lambda: 12.5)
        event = telemetry.emit("cache_hit", cellSize=176, errCode=None)
        assert event["type"] == "cache_hit"
        assert event["ts"] == 12500
        assert event["sessionId"] == telemetry.session_id
        assert "errCode" not in event
        assert [e["type"] for e in telemetry.events()] == ["session_start", "cache_hit"]

    def test_unknown_event(self):
        with pytest.raises(ValueError):
            Telemetry().emit("page_view")

    def test_listeners_isolated(self):
        telemetry = Telemetry()
        seen = []

        def broken(event):
            raise RuntimeError("listener bug")

        telemetry.subscribe(broken)
        off = telemetry.subscribe(seen.append)
        telemetry.emit("export_start")
        off()
        telemetry.emit("export_done")
        assert [e["type"] for e in seen] == ["export_start"]

    def test_buffer_drops_oldest(self):
        telemetry = Telemetry(buffer_size=2)
        telemetry.emit("export_start")
        telemetry.emit("export_done")
        assert [e["type"] for e in telemetry.events()] == ["export_start", "export_done"]

    def test_disabled_keeps_nothing(self):
        telemetry = Telemetry(enabled=False)
        telemetry.emit("export_start")
        assert telemetry.events() == []

    def test_ndjson_and_flush(self, tmp_path):
        telemetry = Telemetry()
        telemetry.emit("export_start")
        lines = telemetry.to_ndjson().splitlines()
        assert [json.loads(line)["type"] for line in lines] == ["session_start", "export_start"]

        path = tmp_path / "telemetry.ndjson"
        assert telemetry.flush(path) == 2
        assert telemetry.events() == []
        telemetry.emit("export_done")
        telemetry.flush(path)
        assert len(path.read_text().splitlines()) == 3

    def test_measure(self):
        telemetry = Telemetry()
        with telemetry.measure("export_done", cellSize=176):
            pass
        with pytest.raises(KeyError):
            with telemetry.measure("error"):
                raise KeyError("boom")

        ok_event, err_event = telemetry.events()[-2:]
        assert ok_event["ok"] is True
        assert ok_event["latencyMs"] >= 0.0
        assert err_event["ok"] is False
        assert err_event["errCode"] == "KeyError"


class TestKPIRecorder:

    def test_empty_stats(self):
        assert KPIRecorder().stats() == {"p50": {}, "p95": {}, "avg": {}}

    def test_record_emits_normalize_done(self):
        telemetry = Telemetry()
        recorder = KPIRecorder(telemetry)
        assert recorder.record(metrics(0.2, 1.0))
        assert not recorder.record(metrics(0.7, 1.0))

        done = [e for e in telemetry.events() if e["type"] == "normalize_done"]
        assert [e["ok"] for e in done] == [True, False]
        assert done[0]["centroidStddev"] == pytest.approx(0.2)

    def test_percentiles(self):
        recorder = KPIRecorder()
        for stddev in (0.3, 0.1, 0.2, 0.4):
            recorder.record(metrics(stddev, stddev * 10, ms=stddev * 100))

        stats = recorder.stats()
        assert stats["p50"]["centroid_stddev"] == pytest.approx(0.3)
        assert stats["p95"]["centroid_stddev"] == pytest.approx(0.4)
        assert stats["avg"]["area_drift"] == pytest.approx(2.5)
        assert stats["avg"]["post_proc_ms"] == pytest.approx(25.0)
