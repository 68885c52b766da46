"""Declarative scenarios interpreted by the unit executor."""

from collections.abc import Mapping, Sequence
from typing import Annotated, Literal, TypeAlias

from pydantic import Field

from webnn_harness.models.base import Model


class ConformanceScenario(Model):
    """A suite of testharness pages discovered from a remote index."""

    kind: Literal["conformance"] = "conformance"
    name: str = Field(..., description="Catalogue key")
    title: str = Field(..., description="Human-readable suite name")
    index_url: str = Field(..., description="Index page listing the test files")
    url_template: str = Field(
        default="{base_url}{page}?device={device}",
        description="Address of one unit; {base_url}, {page} and {device} are filled in",
    )
    file_suffix: str = Field(default=".js", description="Suffix of discoverable files")
    status_selector: str = Field(
        default=".status", description="Element marking a finished harness run"
    )
    completion_markers: Sequence[str] = Field(
        default=("Pass", "Fail", "Found", "test"),
        description="Body text that indicates results have rendered",
    )


StepAction: TypeAlias = Literal[
    "click", "click_if_visible", "fill", "wait_visible", "wait_enabled", "pause"
]


class DemoStep(Model):
    """One page interaction performed before a demo's metrics are read."""

    action: StepAction = Field(..., description="What to do with the element")
    selector: str = Field(default="", description="Target element, unused by pause")
    text: str = Field(default="", description="Text typed by a fill step")
    seconds: float = Field(default=0.0, ge=0, description="Length of a pause")
    timeout: float | None = Field(
        default=None,
        gt=0,
        description="Seconds the step may take; the scenario's click_timeout if unset",
    )


class DemoScenario(Model):
    """A single model demo page that reports timings once inference finishes."""

    kind: Literal["demo"] = "demo"
    name: str = Field(..., description="Catalogue key")
    title: str = Field(..., description="Human-readable demo name")
    group: Literal["sample", "preview"] = Field(
        default="sample", description="Suite that runs the demo with its siblings"
    )
    url: str = Field(..., description="Demo address; {device} is filled in")
    device_options: Mapping[str, str] = Field(
        default_factory=dict, description="Selector to click for each device"
    )
    select_options: Sequence[str] = Field(
        default_factory=list,
        description="Selectors clicked in order after the device is chosen",
    )
    steps: Sequence[DemoStep] = Field(
        default_factory=list,
        description="Interactions performed after the select options",
    )
    metrics: Mapping[str, str] = Field(
        ..., description="Metric label mapped to the selector holding its value"
    )
    required_metrics: Sequence[str] = Field(
        default_factory=list,
        description="Metrics that must be populated (empty means all)",
    )
    ready_pattern: str = Field(
        default="",
        description="Regular expression a required metric must match to count",
    )
    click_timeout: float = Field(
        default=10.0, gt=0, description="Seconds to wait for a control to click"
    )
    completion_timeout: float = Field(
        default=30.0, gt=0, description="Seconds to wait for the metrics"
    )
    unit_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Overall budget for the demo, replacing the run's per-test one",
    )


Scenario = Annotated[ConformanceScenario | DemoScenario, Field(discriminator="kind")]


class ScenarioCatalogue(Model):
    """Complete scenario catalogue loaded from scenarios.yaml."""

    version: str = Field(..., description="Catalogue schema version")
    scenarios: Sequence[Scenario] = Field(default_factory=list)
