"""Configuration for a harness run."""

from collections.abc import Sequence
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

DEFAULT_BASE_URL = "https://wpt.live/webnn/conformance_tests/"


class BrowserConfig(BaseModel):
    """Configuration for launching the automated browser."""

    channel: str = "chrome"
    executable_path: str | None = None
    headless: bool = False
    # A user data dir switches launches to a persistent context
    user_data_dir: Path | None = None
    enable_features: Sequence[str] = ("WebMachineLearningNeuralNetwork",)
    extra_args: Sequence[str] = ()

    @property
    def process_name(self) -> str:
        """Executable name used when force-terminating a wedged browser."""
        return "msedge.exe" if "edge" in self.channel else "chrome.exe"

    def launch_args(self) -> list[str]:
        """Command line switches passed to the browser."""
        args: list[str] = []
        if self.enable_features:
            args.append(f"--enable-features={','.join(self.enable_features)}")
        args.extend(self.extra_args)
        return args


class RunSettings(BaseModel):
    """Values controlling which units run and how."""

    suite: Sequence[str] = ("wpt",)
    # Overrides the conformance scenario's index address
    base_url: str | None = None
    device: Literal["cpu", "gpu", "npu"] = "cpu"
    cases: Sequence[str] = ()
    # Narrow the "sample" and "preview" demo groups to these scenario names
    sample_cases: Sequence[str] = ()
    preview_cases: Sequence[str] = ()
    index_ranges: str = ""
    jobs: int = Field(default=1, ge=1)
    skip_retry: bool = False
    retry_policy: Literal["quick", "strict"] = "quick"
    discovery: Literal["browser", "http"] = "browser"
    unit_timeout: float = Field(default=60.0, gt=0)
    settle_delay: float = Field(default=2.0, ge=0)
    relaunch_delay: float = Field(default=3.0, ge=0)
    force_kill: bool = False
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
