"""Component timing for ecology steps.

Cells run on worker threads, so the monitor serialises updates to its
statistics behind a lock. A disabled monitor does nothing.

Usage:
    perf = PerfMonitor(enabled=True)
    model = EcologyModel(grid, traits, config, perf=perf)
    model.run(12)
    print(perf.report())
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, Optional


@dataclass
class ComponentStats:
    """Wall-clock statistics for one named component."""
    total_time: float = 0.0
    call_count: int = 0
    min_time: float = float('inf')
    max_time: float = 0.0

    @property
    def mean_time(self) -> float:
        return self.total_time / self.call_count if self.call_count > 0 else 0.0

    def add(self, elapsed: float) -> None:
        self.total_time += elapsed
        self.call_count += 1
        self.min_time = min(self.min_time, elapsed)
        self.max_time = max(self.max_time, elapsed)


class PerfMonitor:
    """Thread-safe per-component timer.

    Component times from concurrent workers are summed, so the total for a
    parallel phase can exceed its wall-clock duration.
    """

    def __init__(self, enabled: bool = False):
        self.enabled = enabled
        self._stats: Dict[str, ComponentStats] = {}
        self._lock = threading.Lock()
        self._start_time: Optional[float] = None
        self._total_time: float = 0.0

    def start(self) -> None:
        if self.enabled:
            self._start_time = time.perf_counter()

    def stop(self) -> None:
        if self.enabled and self._start_time is not None:
            self._total_time = time.perf_counter() - self._start_time

    @contextmanager
    def track(self, component: str) -> Iterator[None]:
        """Time the enclosed block under `component`."""
        if not self.enabled:
            yield
            return
        t0 = time.perf_counter()
        try:
            yield
        finally:
            self.record(component, time.perf_counter() - t0)

    def record(self, component: str, elapsed: float) -> None:
        if not self.enabled:
            return
        with self._lock:
            stats = self._stats.get(component)
            if stats is None:
                stats = self._stats[component] = ComponentStats()
            stats.add(elapsed)

    def get_stats(self) -> Dict[str, ComponentStats]:
        with self._lock:
            return dict(self._stats)

    def _total(self, stats: Dict[str, ComponentStats]) -> float:
        return self._total_time or sum(s.total_time for s in stats.values())

    def summary(self) -> dict:
        """JSON-friendly summary, slowest component first."""
        stats = self.get_stats()
        total = self._total(stats)
        result = {}
        for name, s in sorted(stats.items(), key=lambda x: -x[1].total_time):
            result[name] = {
                'total_s': round(s.total_time, 4),
                'calls': s.call_count,
                'mean_ms': round(s.mean_time * 1000, 3),
                'pct': round(s.total_time / total * 100, 1) if total > 0 else 0.0,
            }
        result['_total_s'] = round(total, 4)
        return result

    def report(self, title: str = "Ecology timing") -> str:
        """Plain-text table of the summary."""
        summary = self.summary()
        total = summary.pop('_total_s')
        rule = '-' * 58
        lines = [rule, f" {title}", rule,
                 f"{'Component':<22} {'Total (s)':>10} {'Calls':>8} "
                 f"{'Mean (ms)':>10} {'%':>5}"]
        for name, row in summary.items():
            lines.append(
                f"{name:<22} {row['total_s']:>10.4f} {row['calls']:>8} "
                f"{row['mean_ms']:>10.3f} {row['pct']:>5.1f}"
            )
        lines.append(rule)
        lines.append(f"{'TOTAL':<22} {total:>10.4f}")
        return '\n'.join(lines)

    def reset(self) -> None:
        with self._lock:
            self._stats.clear()
        self._start_time = None
        self._total_time = 0.0
