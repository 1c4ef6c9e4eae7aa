"""
Workflow metrics — in-process counters.

Counters:
    transitions, rejections, posts, approvals, orders_created,
    sweeps, sweep_failures, sla_overdue, sla_at_risk,
    notifications_sent, notification_failures, audit_write_failures

All counters are in-memory (no external dependency), reset on restart.
"""

from __future__ import annotations

import threading
from collections import Counter

COUNTER_NAMES = (
    "transitions",
    "rejections",
    "posts",
    "approvals",
    "orders_created",
    "sweeps",
    "sweep_failures",
    "sla_overdue",
    "sla_at_risk",
    "notifications_sent",
    "notification_failures",
    "audit_write_failures",
)

_lock = threading.Lock()
_counters: Counter = Counter()


def increment(name: str, amount: int = 1) -> None:
    with _lock:
        _counters[name] += amount


def get(name: str) -> int:
    with _lock:
        return _counters[name]


def snapshot() -> dict[str, int]:
    """Return every known counter, zero-filled."""
    with _lock:
        data = {name: _counters[name] for name in COUNTER_NAMES}
        data.update({k: v for k, v in _counters.items() if k not in data})
    return data


def reset() -> None:
    """Clear all counters (for testing)."""
    with _lock:
        _counters.clear()
