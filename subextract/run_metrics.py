from __future__ import annotations

"""
subextract/run_metrics.py

Métricas agregadas del run (thread-safe).

Objetivo:
- Contar eventos relevantes del scan (episodios saltados/procesados/fallidos,
  placeholders, llamadas HTTP a Jellyfin, extracciones ffmpeg).
- Imprimir un resumen final CONSISTENTE (sin depender de variables locales).

Uso:
    from subextract.run_metrics import METRICS

    METRICS.incr("subs.episodes.skipped")
    METRICS.observe_ms("subs.extract.latency_ms", elapsed_ms)
    METRICS.add_error("ffmpeg", "extract", endpoint=media_path, detail="exit 1")

    summary = METRICS.snapshot()
"""

import threading
import time
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ErrorEvent:
    ts: float
    subsystem: str  # "jellyfin" | "ffmpeg" | "scan"
    action: str  # "items" | "virtual_folders" | "extract" | ...
    endpoint: str | None
    detail: str


class RunMetrics:
    """
    Contadores + observaciones básicas.

    - counters: dict[str, int]
    - timings_ms: dict[str, {"count", "sum", "min", "max", "avg"}]
    - errors: lista acotada (se descartan los más antiguos)
    """

    def __init__(self, *, max_error_events: int = 500) -> None:
        self._lock = threading.Lock()
        self._counters: dict[str, int] = {}
        self._timings: dict[str, dict[str, float]] = {}
        self._errors: list[ErrorEvent] = []
        self._max_error_events = max(0, int(max_error_events))

    def incr(self, key: str, n: int = 1) -> None:
        if not key:
            return
        with self._lock:
            self._counters[key] = int(self._counters.get(key, 0)) + int(n)

    def get(self, key: str) -> int:
        with self._lock:
            return int(self._counters.get(key, 0))

    def observe_ms(self, key: str, ms: float) -> None:
        if not key:
            return
        v = float(ms)
        with self._lock:
            t = self._timings.get(key)
            if t is None:
                self._timings[key] = {"count": 1.0, "sum": v, "min": v, "max": v}
                return
            t["count"] += 1.0
            t["sum"] += v
            t["min"] = min(t["min"], v)
            t["max"] = max(t["max"], v)

    def add_error(self, subsystem: str, action: str, *, endpoint: str | None, detail: str) -> None:
        ev = ErrorEvent(
            ts=time.time(),
            subsystem=str(subsystem),
            action=str(action),
            endpoint=endpoint,
            detail=str(detail)[:800],
        )
        with self._lock:
            if self._max_error_events <= 0:
                return
            if len(self._errors) >= self._max_error_events:
                self._errors.pop(0)
            self._errors.append(ev)

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._timings.clear()
            self._errors.clear()

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            counters = dict(self._counters)
            timings = {k: dict(v) for k, v in self._timings.items()}
            errors = list(self._errors)

        by_subsystem: dict[str, int] = {}
        for e in errors:
            by_subsystem[e.subsystem] = by_subsystem.get(e.subsystem, 0) + 1

        for t in timings.values():
            t["avg"] = t["sum"] / max(1.0, t["count"])

        return {
            "counters": counters,
            "timings_ms": timings,
            "errors": errors,
            "derived": {"errors.total": len(errors), "errors.by_subsystem": by_subsystem},
        }

    def format_summary(self, prefix: str) -> str:
        """Línea compacta con los contadores que empiezan por `prefix`."""
        snap = self.snapshot()
        parts = [
            f"{k[len(prefix):].lstrip('.')}={v}"
            for k, v in sorted(snap["counters"].items())
            if k.startswith(prefix)
        ]
        parts.append(f"errors={snap['derived']['errors.total']}")
        return " ".join(parts)


# Singleton del run (módulo)
METRICS = RunMetrics()
