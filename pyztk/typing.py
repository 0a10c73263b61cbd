"""Common types used across the codebase."""

from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Sequence, Union, NewType

# Create NewTypes for commit identifiers
StableID = NewType('StableID', str)
CommitHash = NewType('CommitHash', str)

GitCommand = Union[str, Sequence[str]]


@dataclass
class Commit:
    """A local commit ahead of trunk."""
    commit_hash: CommitHash
    title: str
    body: str = ""
    wip: bool = False
    stable_id: Optional[StableID] = None

    @property
    def short_hash(self) -> str:
        return self.commit_hash[:7]

    @classmethod
    def from_strings(cls, commit_hash: str, title: str, body: str = "",
                     wip: bool = False, stable_id: Optional[str] = None) -> 'Commit':
        """Create a Commit from plain strings."""
        return cls(CommitHash(commit_hash), title, body, wip,
                   StableID(stable_id) if stable_id else None)


class GitInterface(Protocol):
    """What the engine expects from a git runner."""

    def must_git(self, command: GitCommand, env: Optional[Dict[str, str]] = None) -> str:
        """Run a git command, raising CommandFailedError on failure."""
        ...

    def run_cmd(self, command: GitCommand, env: Optional[Dict[str, str]] = None) -> Optional[str]:
        """Run a git command, returning None on failure."""
        ...


class ZtkError(Exception):
    """Base class for all errors surfaced to the user.

    ``hint`` carries a remediation the CLI prints under the message.
    """

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.hint = hint


# Configuration errors
class ConfigError(ZtkError):
    pass


class NotInitializedError(ConfigError):
    def __init__(self, message: str = "Not initialized.",
                 hint: Optional[str] = "Run 'ztk init' first."):
        super().__init__(message, hint)


class NotInGitRepoError(ConfigError):
    def __init__(self, message: str = "Not in a git repository.", hint: Optional[str] = None):
        super().__init__(message, hint)


class InvalidConfigError(ConfigError):
    pass


# VCS errors
class GitError(ZtkError):
    pass


class CommandFailedError(GitError):
    """A git command exited non-zero."""

    def __init__(self, command: str, stderr: str = "", hint: Optional[str] = None):
        message = f"git {command} failed"
        if stderr:
            message += f": {stderr.strip()}"
        super().__init__(message, hint)
        self.command = command
        self.stderr = stderr


class ParseError(GitError):
    pass


# Forge errors
class ForgeError(ZtkError):
    pass


class NoTokenError(ForgeError):
    def __init__(self, message: str = "No GitHub token found.",
                 hint: Optional[str] = "Set it with: export GITHUB_TOKEN=<your-token> (or run 'gh auth login')"):
        super().__init__(message, hint)


class ForgeRequestError(ForgeError):
    pass


class ForgeParseError(ForgeError):
    pass


class ForgeNotFoundError(ForgeError):
    pass


# Domain errors
class IdentityInjectionError(ZtkError):
    pass


class AbsorbRebaseError(ZtkError):
    def __init__(self, message: str,
                 hint: Optional[str] = "Resolve conflicts, then run 'git rebase --continue'"):
        super().__init__(message, hint)


class NoMergeablePRError(ZtkError):
    pass


class MergeFailedError(ForgeError):
    pass


class SyncRebaseError(ZtkError):
    pass
