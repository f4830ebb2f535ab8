# tp_platform/agent/_telemetry.py
# per-run counters for the sync agent.
from __future__ import annotations

import threading
from collections import Counter
from typing import Any


class Stats:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_status: Counter[str] = Counter()
        self.calls: Counter[str] = Counter()

    def record(self, status: Any) -> None:
        key = str(getattr(status, "value", status))
        with self._lock:
            self._by_status[key] += 1

    def record_call(self, name: str, *, ok: bool = True) -> None:
        with self._lock:
            self.calls[name] += 1
            if not ok:
                self.calls[f"{name}:failed"] += 1

    def count(self, status: Any) -> int:
        with self._lock:
            return self._by_status.get(str(getattr(status, "value", status)), 0)

    def overview(self) -> dict[str, Any]:
        with self._lock:
            return {
                "statuses": dict(self._by_status),
                "calls": dict(self.calls),
            }

    def merge(self, other: "Stats") -> None:
        ov = other.overview()
        with self._lock:
            self._by_status.update(ov["statuses"])
            self.calls.update(ov["calls"])
