"""Run configuration models."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from common.models.metrics import ThresholdExpression
from common.utils import parse_duration


class RunMode(str, Enum):
    """Top-level run mode, selecting default stages and thresholds."""
    FULL = "full"
    SMOKE = "smoke"


class ScenarioProfile(str, Enum):
    """Named scenario profiles."""
    FULL = "full"
    SMOKE = "smoke"
    INDEPENDENT = "independent"
    SPIKE = "spike"


class CheckMode(str, Enum):
    """Check strictness.

    ``strict`` evaluates every payload invariant; ``relaxed`` keeps only the
    status-code checks of each step.
    """
    STRICT = "strict"
    RELAXED = "relaxed"


class Stage(BaseModel):
    """One segment of the load ramp."""
    model_config = ConfigDict(frozen=True)

    duration: float = Field(..., ge=0, description="Stage duration in seconds")
    target: int = Field(..., ge=0, description="Worker count reached at the end of the stage")

    @field_validator("duration", mode="before")
    @classmethod
    def parse_human_duration(cls, v):
        """Accept '30s', '1m', '1m30s', '500ms' as well as plain numbers."""
        return parse_duration(v)


class PacingPolicy(BaseModel):
    """Delays inserted between steps and after each iteration, in seconds."""
    model_config = ConfigDict(frozen=True)

    step_delay: float = Field(default=0.5, ge=0)
    iteration_delay: float = Field(default=2.0, ge=0)
    jitter: float = Field(default=0.0, ge=0, description="Uniform random extra delay added to each pause")

    @field_validator("step_delay", "iteration_delay", "jitter", mode="before")
    @classmethod
    def parse_human_duration(cls, v):
        return parse_duration(v)


FULL_STAGES = (
    Stage(duration=30, target=10),
    Stage(duration=60, target=50),
    Stage(duration=120, target=50),
    Stage(duration=30, target=100),
    Stage(duration=60, target=100),
    Stage(duration=30, target=0),
)

SMOKE_STAGES = (
    Stage(duration=10, target=1),
)

FULL_THRESHOLDS = {
    "http_req_duration": ["p(95)<500", "p(99)<1000"],
    "critical_errors": ["rate<0.05"],
}

SMOKE_THRESHOLDS = {
    "http_req_duration": ["p(95)<300", "p(99)<500"],
    "critical_errors": ["rate<0.01"],
}


def default_stages(mode: RunMode) -> tuple[Stage, ...]:
    """Get the default ramp profile for a run mode."""
    return SMOKE_STAGES if mode == RunMode.SMOKE else FULL_STAGES


def default_thresholds(mode: RunMode) -> dict[str, list[str]]:
    """Get the default threshold expressions for a run mode."""
    source = SMOKE_THRESHOLDS if mode == RunMode.SMOKE else FULL_THRESHOLDS
    return {name: list(exprs) for name, exprs in source.items()}


def default_profile(mode: RunMode) -> ScenarioProfile:
    """Get the scenario profile a run mode selects when none is given."""
    return ScenarioProfile.SMOKE if mode == RunMode.SMOKE else ScenarioProfile.FULL


class RunConfig(BaseModel):
    """Immutable configuration for one load test run.

    Built once at startup and passed by reference to every component.
    """
    model_config = ConfigDict(frozen=True)

    base_url: str = Field(default="http://localhost:8080", description="Backend under test")
    mode: RunMode = Field(default=RunMode.FULL)
    profile: ScenarioProfile = Field(default=ScenarioProfile.FULL)
    check_mode: CheckMode = Field(default=CheckMode.STRICT)

    stages: tuple[Stage, ...] = Field(default=FULL_STAGES)
    thresholds: dict[str, tuple[ThresholdExpression, ...]] = Field(default_factory=dict)
    pacing: PacingPolicy = Field(default_factory=PacingPolicy)

    # Engine timing
    control_interval: float = Field(default=0.5, gt=0, description="Scheduler sampling interval in seconds")
    report_interval: float = Field(default=10.0, gt=0, description="Progress log interval in seconds")
    request_timeout: float = Field(default=30.0, gt=0, description="Per-request timeout in seconds")
    exit_after_stages: bool = Field(
        default=False,
        description="Stop once the last stage has elapsed instead of holding its target",
    )

    name: Optional[str] = Field(default=None, description="Run name")

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL: {v}")
        return v.rstrip("/")

    @field_validator("stages")
    @classmethod
    def require_stages(cls, v):
        if not v:
            raise ValueError("At least one stage is required")
        return v

    @field_validator("thresholds", mode="before")
    @classmethod
    def parse_thresholds(cls, v):
        """Parse threshold strings into expressions once, at load time."""
        if v is None:
            return {}
        parsed = {}
        for metric_name, expressions in dict(v).items():
            if isinstance(expressions, (str, ThresholdExpression)):
                expressions = [expressions]
            parsed[metric_name] = tuple(
                expr if isinstance(expr, ThresholdExpression)
                else ThresholdExpression.parse(metric_name, expr)
                for expr in expressions
            )
        return parsed

    @model_validator(mode="after")
    def check_stage_plan(self) -> "RunConfig":
        if self.exit_after_stages and self.total_duration <= 0:
            raise ValueError("exit_after_stages requires a stage plan with a non-zero duration")
        return self

    @property
    def total_duration(self) -> float:
        """Total duration of the stage plan in seconds."""
        return sum(stage.duration for stage in self.stages)

    @property
    def peak_target(self) -> int:
        """Highest worker count of the stage plan."""
        return max(stage.target for stage in self.stages)

    def threshold_strings(self) -> dict[str, list[str]]:
        """Thresholds as their original source strings."""
        return {
            name: [expr.source for expr in exprs]
            for name, exprs in self.thresholds.items()
        }
