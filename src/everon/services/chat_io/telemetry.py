# src/everon/services/chat_io/telemetry.py
"""In-process counters for chat IO and registration outcomes.

Exposed by ``GET /healthz``; names render as ``metric{label=value,...}``.
"""
from __future__ import annotations

import threading
from collections import Counter
from typing import Dict, Mapping, Tuple

_Key = Tuple[str, Tuple[Tuple[str, str], ...]]

_COUNTERS: "Counter[_Key]" = Counter()
_LOCK = threading.Lock()


def _render(key: _Key) -> str:
    metric, labels = key
    if not labels:
        return metric
    return metric + "{" + ",".join(f"{k}={v}" for k, v in labels) + "}"


def record_event(metric: str, labels: Mapping[str, str] | None = None, value: float = 1.0) -> None:
    key = (metric, tuple(sorted((k, str(v)) for k, v in (labels or {}).items())))
    with _LOCK:
        _COUNTERS[key] += float(value)


def snapshot() -> Dict[str, float]:
    with _LOCK:
        items = sorted(_COUNTERS.items())
    return {_render(key): float(val) for key, val in items}


def reset() -> None:
    with _LOCK:
        _COUNTERS.clear()
