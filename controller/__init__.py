"""Load test controller: stage scheduling, metrics and thresholds."""

__version__ = "1.0.0"
