"""Shared utilities for pyztk tests."""
import subprocess
import logging
from typing import Any, Dict, List, Optional, Sequence, Union
from unittest.mock import MagicMock

from pyztk.config import Config
from pyztk.git import is_wip
from pyztk.typing import Commit, CommandFailedError

logger = logging.getLogger(__name__)

Response = Union[str, Exception]


def run_cmd(cmd: str, cwd: Optional[str] = None, check: bool = True) -> str:
    """Run shell command and return output.

    Args:
        cmd: Command to run
        cwd: Working directory
        check: Whether to check return code

    Returns:
        str: Command output
    """
    logger.debug(f"Running command: {cmd}")
    result = subprocess.run(
        cmd, shell=True, check=check, cwd=cwd,
        capture_output=True, text=True
    )
    logger.debug(f"Command output: {result.stdout.strip()}")
    if result.stderr:
        logger.debug(f"Command stderr: {result.stderr.strip()}")
    return result.stdout.strip()


def make_config(**repo: Any) -> Config:
    base: Dict[str, Any] = {
        'github_remote': 'origin',
        'github_branch': 'main',
        'github_repo_owner': 'acme',
        'github_repo_name': 'widgets',
    }
    base.update(repo)
    return Config({'repo': base, 'user': {}, 'tool': {'ztk': {}}})


def sha(char: str) -> str:
    """A fake 40 character hash made of one repeated character."""
    return char * 40


def make_commit(char: str, title: str, body: str = "", stable_id: Optional[str] = None) -> Commit:
    if stable_id and f"ztk-id: {stable_id}" not in body:
        body = f"{body}\n\nztk-id: {stable_id}".strip()
    return Commit.from_strings(sha(char), title, body, wip=is_wip(title), stable_id=stable_id)


def log_output(commits: Sequence[Commit]) -> str:
    """What ``git log --format=%H%x00%s%x00%b%x00`` prints for commits."""
    return "\n".join(f"{c.commit_hash}\x00{c.title}\x00{c.body}\n\x00" for c in commits)


def _key(command: Union[str, Sequence[str]]) -> str:
    return command.strip() if isinstance(command, str) else " ".join(command)


def scripted_git(responses: Dict[str, Response], default: Response = "") -> MagicMock:
    """MagicMock git whose output is looked up by command prefix.

    The longest matching prefix wins. An Exception response is raised from
    must_git and turns into None from run_cmd. Every command run is kept in
    ``mock.commands``.
    """
    git_mock = MagicMock()
    commands: List[str] = []
    git_mock.commands = commands

    def lookup(command: Union[str, Sequence[str]]) -> Response:
        key = _key(command)
        commands.append(key)
        matches = [p for p in responses if key == p or key.startswith(p + " ")]
        if not matches:
            return default
        return responses[max(matches, key=len)]

    def must_git(command: Union[str, Sequence[str]], env: Optional[Dict[str, str]] = None) -> str:
        result = lookup(command)
        if isinstance(result, Exception):
            raise result
        return result

    def run_cmd(command: Union[str, Sequence[str]], env: Optional[Dict[str, str]] = None) -> Optional[str]:
        result = lookup(command)
        if isinstance(result, Exception):
            return None
        return result

    git_mock.must_git.side_effect = must_git
    git_mock.run_cmd.side_effect = run_cmd
    return git_mock


def failed(command: str, stderr: str = "error") -> CommandFailedError:
    return CommandFailedError(command, stderr)
