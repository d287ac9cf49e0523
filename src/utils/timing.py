"""Simple timing helpers for collecting phase durations with optional context."""

from __future__ import annotations

from time import perf_counter
from typing import Any, Dict, List, Optional


class PhaseTimer:
    """Collects duration metrics for named import phases.

    Repeated phases (one per row for ``validate``/``resolve``/``insert``) are
    accumulated into a single entry carrying a call count.
    """

    def __init__(self, base_context: Optional[Dict[str, Any]] = None) -> None:
        self._base_context = base_context or {}
        self._totals: Dict[str, float] = {}
        self._counts: Dict[str, int] = {}

    def as_list(self) -> List[Dict[str, Any]]:
        entries: List[Dict[str, Any]] = []
        for phase, duration in self._totals.items():
            entry: Dict[str, Any] = {
                "phase": phase,
                "duration_ms": round(duration * 1000, 3),
                "calls": self._counts[phase],
            }
            entry.update(self._base_context)
            entries.append(entry)
        return entries

    def add(self, phase: str, duration: float) -> None:
        self._totals[phase] = self._totals.get(phase, 0.0) + duration
        self._counts[phase] = self._counts.get(phase, 0) + 1

    def measure(self, phase: str):
        """Context manager recording elapsed wall time for a phase."""

        class _TimerCtx:
            def __init__(self, outer: "PhaseTimer") -> None:
                self.outer = outer
                self.phase = phase
                self.start = 0.0

            def __enter__(self):
                self.start = perf_counter()
                return None

            def __exit__(self, exc_type, exc, tb):
                self.outer.add(self.phase, perf_counter() - self.start)
                return False

        return _TimerCtx(self)
