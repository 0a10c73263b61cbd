"""Config module."""

from typing import Dict, Any

from pydantic import ValidationError

from .models import RepoConfig, UserConfig, ZtkConfig, ToolConfig
from ..typing import InvalidConfigError

class Config(ZtkConfig):
    """Config object holding repository, user and tool config.

    Built from the parsed config dict; each section is validated by its
    own pydantic model.
    """
    def __init__(self, config: Dict[str, Dict[str, Any]]):
        """Initialize with parsed config dict."""
        repo_config = config.get('repo') or {}
        user_config = config.get('user') or {}
        tool_section = config.get('tool') or {}
        tool_config = tool_section.get('ztk') or {}

        try:
            super().__init__(
                repo=RepoConfig.model_validate(repo_config),
                user=UserConfig.model_validate(user_config),
                tool=ToolConfig.model_validate(tool_config)
            )
        except ValidationError as e:
            raise InvalidConfigError(f"Invalid configuration: {e}") from e

def default_config() -> Config:
    """Get default config without parsing git."""
    return Config({
        'repo': {
            'github_remote': 'origin',
            'github_branch': 'main',
        },
        'user': {},
        'tool': {
            'ztk': {
                'pretend': False
            }
        }
    })
