"""Pydantic models for config types."""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

class RepoConfig(BaseModel):
    """Repository configuration."""
    model_config = ConfigDict(extra="allow")

    github_remote: str = "origin"
    github_branch: str = "main"
    github_repo_owner: Optional[str] = None
    github_repo_name: Optional[str] = None
    github_host: str = "github.com"
    merge_method: str = "squash"
    branch_prefix: str = "ztk"
    id_trailer: str = "ztk-id"
    require_checks: bool = True
    require_approval: bool = True

class UserConfig(BaseModel):
    """User configuration."""
    model_config = ConfigDict(extra="allow")

class ToolConfig(BaseModel):
    """Tool configuration."""
    model_config = ConfigDict(extra="allow")

    pretend: bool = False

class ZtkConfig(BaseModel):
    """Full pyztk configuration."""
    model_config = ConfigDict(extra="allow")

    repo: RepoConfig = Field(default_factory=RepoConfig)
    user: UserConfig = Field(default_factory=UserConfig)
    tool: ToolConfig = Field(default_factory=ToolConfig)
