"""Common utilities and models shared across controller and virtual users."""

from common.models.config import RunConfig, Stage, ScenarioProfile, CheckMode
from common.models.metrics import RunSummary, ThresholdExpression
from common.exceptions import (
    HarnessError,
    ConfigurationError,
    TransportError,
    ResponseParseError,
    ThresholdViolation,
)

__all__ = [
    "RunConfig",
    "Stage",
    "ScenarioProfile",
    "CheckMode",
    "RunSummary",
    "ThresholdExpression",
    "HarnessError",
    "ConfigurationError",
    "TransportError",
    "ResponseParseError",
    "ThresholdViolation",
]
