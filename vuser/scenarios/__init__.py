"""Scenario profiles run by virtual users."""

from __future__ import annotations

from common.exceptions import ConfigurationError
from common.models.config import ScenarioProfile
from vuser.scenarios.base import Scenario, ScenarioContext, StateMachineScenario, Step
from vuser.scenarios.full import FullWorkflowScenario
from vuser.scenarios.independent import IndependentActionScenario, SpikeScenario
from vuser.scenarios.smoke import SmokeScenario

SCENARIOS: dict[ScenarioProfile, type[Scenario]] = {
    ScenarioProfile.FULL: FullWorkflowScenario,
    ScenarioProfile.SMOKE: SmokeScenario,
    ScenarioProfile.INDEPENDENT: IndependentActionScenario,
    ScenarioProfile.SPIKE: SpikeScenario,
}


def get_scenario(profile: ScenarioProfile | str) -> Scenario:
    """Instantiate the scenario registered for a profile."""
    try:
        profile = ScenarioProfile(profile)
        scenario_class = SCENARIOS[profile]
    except (ValueError, KeyError):
        raise ConfigurationError(f"Unknown scenario profile: {profile}")
    return scenario_class()


__all__ = [
    "SCENARIOS",
    "get_scenario",
    "Scenario",
    "ScenarioContext",
    "StateMachineScenario",
    "Step",
    "FullWorkflowScenario",
    "SmokeScenario",
    "IndependentActionScenario",
    "SpikeScenario",
]
