"""Common utility functions."""

from __future__ import annotations

import re
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")


def _to_base36(value: int) -> str:
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)) or "0"


def generate_id(prefix: str = "") -> str:
    """Generate a collision-resistant identifier.

    Format is ``<prefix>_<epoch millis>_<9 base36 chars>``, e.g.
    ``team_1700000000000_k3j9x0a1b``. The random part comes from uuid4 so
    concurrent callers need no coordination.
    """
    millis = int(time.time() * 1000)
    suffix = _to_base36(uuid.uuid4().int)[-9:].rjust(9, "0")
    if prefix:
        return f"{prefix}_{millis}_{suffix}"
    return f"{millis}_{suffix}"


def generate_run_id() -> str:
    """Generate a run ID."""
    timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
    return f"run_{timestamp}_{uuid.uuid4().hex[:8]}"


def parse_duration(value: Any) -> float:
    """Parse a duration (e.g., 30, '30s', '1m', '1m30s', '500ms', '2h') to seconds."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"Duration must be >= 0: {value}")
        return float(value)
    if not isinstance(value, str):
        raise ValueError(f"Invalid duration: {value!r}")

    text = value.strip().lower().replace(" ", "")
    if not text:
        raise ValueError("Empty duration")

    if re.fullmatch(r"\d+(?:\.\d+)?", text):
        return float(text)

    parts = _DURATION_PART.findall(text)
    if not parts or "".join(num + unit for num, unit in parts) != text:
        raise ValueError(f"Invalid duration format: {value}")

    units = {"ms": 0.001, "s": 1, "m": 60, "h": 3600}
    return sum(float(num) * units[unit] for num, unit in parts)


def format_duration(seconds: float) -> str:
    """Format seconds to human-readable duration."""
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    elif seconds < 3600:
        minutes = seconds // 60
        secs = seconds % 60
        return f"{minutes}m {secs}s"
    else:
        hours = seconds // 3600
        minutes = (seconds % 3600) // 60
        secs = seconds % 60
        return f"{hours}h {minutes}m {secs}s"


def load_yaml(path: str | Path) -> dict:
    """Load a YAML file."""
    with open(path, 'r') as f:
        return yaml.safe_load(f) or {}


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


class Timer:
    """Context manager measuring wall-clock time with a monotonic clock."""

    def __init__(self):
        self.start_time: float | None = None
        self.end_time: float | None = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args):
        self.end_time = time.perf_counter()

    @property
    def elapsed_seconds(self) -> float:
        if self.start_time is None:
            return 0
        end = self.end_time if self.end_time is not None else time.perf_counter()
        return end - self.start_time

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed_seconds * 1000
