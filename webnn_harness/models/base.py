"""Base model configuration for declarative harness data."""

from pydantic import BaseModel, ConfigDict


class Model(BaseModel):
    """Frozen model shared by scenario declarations."""

    model_config = ConfigDict(frozen=True, extra="forbid")
