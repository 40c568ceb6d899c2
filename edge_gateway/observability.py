from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from typing import Any

logger = logging.getLogger("edge_gateway")

if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
logger.setLevel(logging.INFO)

MAX_SAMPLES = 2000

_lock = threading.Lock()
_counters: dict[str, int] = defaultdict(int)
_timings_ms: dict[str, list[float]] = defaultdict(list)


def log_event(event: str, level: int = logging.INFO, **fields: Any) -> None:
    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, separators=(",", ":"), sort_keys=True, default=str))


def increment(name: str, value: int = 1) -> None:
    with _lock:
        _counters[name] += value


def observe_ms(name: str, value: float) -> None:
    with _lock:
        samples = _timings_ms[name]
        samples.append(float(value))
        if len(samples) > MAX_SAMPLES:
            del samples[:-MAX_SAMPLES]


def p95(values: list[float]) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    return ordered[max(0, int(0.95 * len(ordered)) - 1)]


def snapshot() -> dict[str, Any]:
    with _lock:
        return {
            "counters": dict(_counters),
            "timings_ms": {
                name: {"count": len(values), "p95": p95(values)}
                for name, values in _timings_ms.items()
            },
        }


def reset() -> None:
    with _lock:
        _counters.clear()
        _timings_ms.clear()
