"""Filesystem timestamp helpers, all in epoch milliseconds."""
from __future__ import annotations

import os
import time
from typing import Any


def _ns_to_ms(value: int) -> int:
    return int(value) // 1_000_000


def _seconds_to_ms(value: float) -> int:
    return int(float(value) * 1000)


def file_created_ms(stats: os.stat_result | Any) -> int:
    """Creation time where the platform records one, change time otherwise."""
    birthtime = getattr(stats, "st_birthtime", None)
    if isinstance(birthtime, (int, float)) and birthtime > 0:
        return _seconds_to_ms(birthtime)
    ctime_ns = getattr(stats, "st_ctime_ns", None)
    if isinstance(ctime_ns, int) and ctime_ns > 0:
        return _ns_to_ms(ctime_ns)
    ctime = getattr(stats, "st_ctime", 0)
    return _seconds_to_ms(ctime) if ctime else 0


def file_modified_ms(stats: os.stat_result | Any) -> int:
    mtime_ns = getattr(stats, "st_mtime_ns", None)
    if isinstance(mtime_ns, int):
        return _ns_to_ms(mtime_ns)
    return _seconds_to_ms(getattr(stats, "st_mtime", 0))


def now_ms() -> int:
    return time.time_ns() // 1_000_000
