"""Config parser logic."""

import json
import os
from typing import Dict, Optional, Any
import logging
import yaml

from ...typing import GitInterface, NotInitializedError, InvalidConfigError
from ...git import get_remote_url, parse_github_remote, repo_root

# Get module logger
logger = logging.getLogger(__name__)

CONFIG_FILE = ".ztk.yaml"
LEGACY_CONFIG_FILE = ".ztk.json"

RawConfig = Dict[str, Dict[str, Any]]


def config_path(root: str) -> str:
    return os.path.join(root, CONFIG_FILE)


def config_exists(root: str) -> bool:
    return (os.path.exists(config_path(root))
            or os.path.exists(os.path.join(root, LEGACY_CONFIG_FILE)))


def _load_legacy(path: str) -> Dict[str, Any]:
    """Map the flat legacy JSON layout onto the repo section."""
    with open(path, 'r') as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidConfigError(f"Malformed {LEGACY_CONFIG_FILE}: {e}") from e
    if not isinstance(data, dict):
        raise InvalidConfigError(f"Malformed {LEGACY_CONFIG_FILE}: expected an object")

    repo: Dict[str, Any] = {}
    if data.get('owner'):
        repo['github_repo_owner'] = data['owner']
    if data.get('repo'):
        repo['github_repo_name'] = data['repo']
    trunk = data.get('main_branch') or data.get('mainBranch')
    if trunk:
        repo['github_branch'] = trunk
    if data.get('remote'):
        repo['github_remote'] = data['remote']
    return repo


def parse_config(git_cmd: GitInterface, root: Optional[str] = None) -> RawConfig:
    """Parse config from the repository config file.

    Raises NotInitializedError when neither ``.ztk.yaml`` nor the legacy
    ``.ztk.json`` exists at the repository root.
    """
    if root is None:
        root = repo_root(git_cmd)

    config: RawConfig = {
        'repo': {},
        'user': {},
        'tool': {'ztk': {}},
    }

    path = config_path(root)
    legacy_path = os.path.join(root, LEGACY_CONFIG_FILE)
    if os.path.exists(path):
        logger.info(f"Found {CONFIG_FILE}, loading...")
        with open(path, 'r') as f:
            try:
                repo_config = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise InvalidConfigError(f"Malformed {CONFIG_FILE}: {e}") from e
        logger.debug(f"Config from {CONFIG_FILE}: {repo_config}")
        if repo_config is not None and not isinstance(repo_config, dict):
            raise InvalidConfigError(f"Malformed {CONFIG_FILE}: expected a mapping")
        if repo_config:
            for section in ('repo', 'user'):
                value = repo_config.get(section)
                if isinstance(value, dict):
                    config[section].update(value)
            tool = repo_config.get('tool')
            if isinstance(tool, dict) and isinstance(tool.get('ztk'), dict):
                config['tool']['ztk'].update(tool['ztk'])
    elif os.path.exists(legacy_path):
        logger.info(f"Found legacy {LEGACY_CONFIG_FILE}, loading...")
        config['repo'].update(_load_legacy(legacy_path))
    else:
        raise NotInitializedError()

    # Fill owner/name from the remote when the file leaves them out
    if not config['repo'].get('github_repo_owner') or not config['repo'].get('github_repo_name'):
        remote = config['repo'].get('github_remote', 'origin')
        url = get_remote_url(git_cmd, remote)
        parsed = parse_github_remote(url) if url else None
        if parsed:
            config['repo'].setdefault('github_repo_owner', parsed[0])
            config['repo'].setdefault('github_repo_name', parsed[1])
        else:
            logger.warning(f"Could not determine GitHub repository from remote '{remote}'")

    return config


def init_default(git_cmd: GitInterface, root: str, remote: str = "origin",
                 trunk: str = "main") -> Dict[str, Any]:
    """Write ``.ztk.yaml`` derived from the remote URL. Returns the repo section."""
    url = get_remote_url(git_cmd, remote)
    if not url:
        raise InvalidConfigError(f"No remote named '{remote}'",
                                 hint=f"Add one with: git remote add {remote} <url>")
    parsed = parse_github_remote(url)
    if not parsed:
        raise InvalidConfigError(f"Remote '{remote}' is not a GitHub URL: {url}")

    repo = {
        'github_repo_owner': parsed[0],
        'github_repo_name': parsed[1],
        'github_branch': trunk,
        'github_remote': remote,
    }
    with open(config_path(root), 'w') as f:
        yaml.safe_dump({'repo': repo}, f, default_flow_style=False, sort_keys=False)
    logger.info(f"Wrote {config_path(root)}")
    return repo
