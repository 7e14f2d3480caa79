from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class Downloads(BaseModel):
    model_config = ConfigDict(extra="ignore")

    total: int = 0
    monthly: int = 0
    weekly: int = 0
    daily: int = 0


class Repo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    stars: int = 0
    watchers: int = 0
    forks: int = 0
    issues: int = 0


class PackageStats(BaseModel):
    """Payload of /api/packages/<name>/stats."""

    model_config = ConfigDict(extra="ignore")

    downloads: Downloads = Field(default_factory=Downloads)
    repo: Repo = Field(default_factory=Repo)
    score: float = Field(0.0, description="Registry-computed popularity score")


class PackageInfo(BaseModel):
    """Payload of /api/packages/<name>/<version>/info (only the fields we keep)."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    version: str
    readme: Optional[str] = None
    date: Optional[str] = None
    commit_id: Optional[str] = Field(None, alias="commitID")
