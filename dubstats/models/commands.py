from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Optional


class CommandMessage(BaseModel):
    """Body of a work-queue message: {"command": str, "args": <opaque>}."""

    model_config = ConfigDict(extra="ignore")

    command: str = Field(..., min_length=1)
    args: Any = None


class StatsArgs(BaseModel):
    """Optional arguments of the update_package_stats command."""

    model_config = ConfigDict(extra="forbid")

    limit: Optional[int] = Field(None, ge=1, le=1000)
