"""Loading of scenarios from the scenario catalogue."""

from importlib import resources
from pathlib import Path

import yaml
from pydantic import ValidationError

from webnn_harness.models.scenario import DemoScenario, Scenario, ScenarioCatalogue

CATALOGUE_FILE = "scenarios.yaml"


class ScenarioNotFoundError(Exception):
    """Raised when a scenario is not present in the catalogue."""


def load_catalogue(path: Path | None = None) -> ScenarioCatalogue:
    """Load and validate a scenario catalogue.

    Args:
        path: Catalogue file to read; the catalogue bundled with the
            package is used when omitted

    Returns:
        Parsed scenario catalogue

    Raises:
        FileNotFoundError: If the catalogue file doesn't exist
        ValueError: If the catalogue is not valid YAML or fails validation

    """
    if path is None:
        content = (
            resources.files("webnn_harness")
            .joinpath(CATALOGUE_FILE)
            .read_text(encoding="utf-8")
        )
    else:
        if not path.exists():
            raise FileNotFoundError(f"Scenario file not found: {path}")
        content = path.read_text(encoding="utf-8")

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in scenario catalogue: {e}") from e

    try:
        return ScenarioCatalogue.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid scenario catalogue: {e}") from e


def load_scenario(name: str, path: Path | None = None) -> Scenario:
    """Look up a scenario by name.

    Raises:
        ScenarioNotFoundError: If no scenario with the given name exists

    """
    return find_scenario(load_catalogue(path), name)


def find_scenario(catalogue: ScenarioCatalogue, name: str) -> Scenario:
    """Look up a scenario by name in an already loaded catalogue.

    Raises:
        ScenarioNotFoundError: If no scenario with the given name exists

    """
    for scenario in catalogue.scenarios:
        if scenario.name == name:
            return scenario

    available = [s.name for s in catalogue.scenarios]
    raise ScenarioNotFoundError(
        f"Scenario '{name}' not found. Available scenarios: {available}"
    )


def group_scenarios(catalogue: ScenarioCatalogue, group: str) -> list[DemoScenario]:
    """Demo scenarios belonging to a group, in catalogue order."""
    return [
        scenario
        for scenario in catalogue.scenarios
        if isinstance(scenario, DemoScenario) and scenario.group == group
    ]
