"""
Privacy-safe event log (metrics only, no payloads) with NDJSON export,
plus the stabilization KPI tracker built on top of it.
"""

import json
import logging
import math
import threading
import time
import uuid
from collections import deque
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, List, Union

EVENT_TYPES = (
    "session_start",
    "upload_ingest",
    "normalize_done",
    "viewer_ready",
    "export_start",
    "export_done",
    "cache_hit",
    "error",
)

Listener = Callable[[Dict[str, Any]], None]


def _new_session_id() -> str:
    return f"ses_{int(time.time() * 1000):x}_{uuid.uuid4().hex[:8]}"


class Telemetry:
    """
    Buffers events in memory and fans them out to listeners.

    A listener that raises is logged and skipped. When the buffer is full
    the oldest events are dropped.
    """

    def __init__(self, buffer_size: int = 100, enabled: bool = True, clock: Callable[[], float] = time.time):
        self.log = logging.getLogger("Telemetry")
        self.session_id = _new_session_id()
        self.enabled = enabled
        self.clock = clock
        self._buffer = deque(maxlen=buffer_size)
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

        self.emit("session_start")

    def emit(self, event_type: str, **fields) -> Dict[str, Any]:
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown telemetry event '{event_type}'. Choose from {EVENT_TYPES}")

        event = {"type": event_type, "ts": int(self.clock() * 1000), "sessionId": self.session_id}
        event.update({k: v for k, v in fields.items() if v is not None})

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                self.log.exception(f"Telemetry listener failed on {event_type}")

        self.log.debug(json.dumps(event))
        if self.enabled:
            with self._lock:
                self._buffer.append(event)
        return event

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        if listener not in self._listeners:
            self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def events(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._buffer)

    def to_ndjson(self) -> str:
        return "\n".join(json.dumps(event) for event in self.events())

    def flush(self, path: Union[str, Path] = None) -> int:
        """
        Empty the buffer, appending it to ``path`` as NDJSON when given.
        :return: Number of events flushed.
        """
        with self._lock:
            events = list(self._buffer)
            self._buffer.clear()

        if path is not None and events:
            path = Path(path)
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "a") as f:
                for event in events:
                    f.write(json.dumps(event) + "\n")
            self.log.info(f"Flushed {len(events)} telemetry events to {path}")
        return len(events)

    @contextmanager
    def measure(self, event_type: str, **fields):
        """Emit ``event_type`` with latencyMs / ok / errCode around the block."""
        start = time.perf_counter()
        ok, err_code = True, None
        try:
            yield
        except Exception as e:
            ok, err_code = False, type(e).__name__
            raise
        finally:
            latency_ms = (time.perf_counter() - start) * 1000.0
            self.emit(event_type, latencyMs=latency_ms, ok=ok, errCode=err_code, **fields)


# ----------------------------------------------------------------------
# KPI TRACKING
# ----------------------------------------------------------------------

KPI_FIELDS = ("centroid_stddev", "area_drift", "post_proc_ms")


class KPIRecorder:
    """
    Collects StabilizationMetrics across runs and summarises them.
    Pass an instance to FrameStabilizer(kpi_recorder=...).
    """

    def __init__(self, telemetry: Telemetry = None, max_centroid_stddev: float = 0.5, max_area_drift: float = 2.5):
        self.telemetry = telemetry
        self.max_centroid_stddev = max_centroid_stddev
        self.max_area_drift = max_area_drift
        self._records: List[Dict[str, float]] = []

    def record(self, metrics) -> bool:
        """Store one run's metrics; returns whether both KPIs were met."""
        entry = {
            "centroid_stddev": float(metrics.centroid_stddev),
            "area_drift": float(metrics.area_drift),
            "post_proc_ms": float(metrics.avg_post_proc_ms),
        }
        self._records.append(entry)

        ok = entry["centroid_stddev"] < self.max_centroid_stddev and entry["area_drift"] < self.max_area_drift
        if self.telemetry is not None:
            self.telemetry.emit(
                "normalize_done",
                centroidStddev=entry["centroid_stddev"],
                areaDrift=entry["area_drift"],
                postProcMs=entry["post_proc_ms"],
                frameCount=metrics.frame_count,
                ok=ok,
            )
        return ok

    def __len__(self):
        return len(self._records)

    def stats(self) -> Dict[str, Dict[str, float]]:
        """p50 / p95 / avg of every KPI; empty dicts before the first record."""
        if not self._records:
            return {"p50": {}, "p95": {}, "avg": {}}

        n = len(self._records)
        p50_idx = int(math.floor(n * 0.5))
        p95_idx = min(int(math.floor(n * 0.95)), n - 1)

        stats = {"p50": {}, "p95": {}, "avg": {}}
        for name in KPI_FIELDS:
            values = sorted(r[name] for r in self._records)
            stats["p50"][name] = values[p50_idx]
            stats["p95"][name] = values[p95_idx]
            stats["avg"][name] = sum(values) / n
        return stats
