"""Git interfaces and implementation."""

import os
import re
import shlex
import uuid
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import git
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from ..typing import (
    Commit, GitCommand, GitInterface, CommandFailedError, NotInGitRepoError, ParseError,
)
from ..config.models import ZtkConfig

# Get module logger
logger = logging.getLogger(__name__)

COMMIT_LOG_FORMAT = "--format=%H%x00%s%x00%b%x00"
WIP_PREFIX = "WIP"
WIP_MARKER = "[WIP]"

_hash_re = re.compile(r'^[0-9a-f]{40,64}$')
_blame_header_re = re.compile(r'^([0-9a-f]{40,64}) (\d+) (\d+)')
_ssh_remote_re = re.compile(r'^[\w.-]+@([^:/]+):(?P<path>.+)$')
_url_remote_re = re.compile(r'^(?:https?|ssh|git)://(?:[^@/]+@)?([^/]+)/(?P<path>.+)$')


@dataclass(frozen=True)
class BlameLine:
    """One blamed line: the commit that last touched it and its final line number."""
    commit_hash: str
    line_number: int


def is_wip(title: str) -> bool:
    """Whether a commit title marks the commit as work in progress."""
    return title.startswith(WIP_PREFIX) or WIP_MARKER in title


def parse_stable_id(body: str, trailer: str = "ztk-id") -> Optional[str]:
    """Find the ``<trailer>: <token>`` line in a commit body."""
    prefix = f"{trailer}:"
    for line in body.splitlines():
        line = line.strip()
        if line.startswith(prefix):
            token = line[len(prefix):].strip()
            if token:
                return token
    return None


def generate_stable_id() -> str:
    """New random 128-bit stable id, UUID formatted."""
    return str(uuid.uuid4())


def parse_commits(commit_log: str, trailer: str = "ztk-id") -> List[Commit]:
    """Parse ``git log --format=%H%x00%s%x00%b%x00`` output.

    Every commit contributes exactly three NUL-terminated fields. Anything
    else is malformed framing and raises ParseError.
    """
    if not commit_log.strip():
        return []

    fields = commit_log.split("\x00")
    # Text after the final NUL is only the record separator
    if fields[-1].strip():
        raise ParseError(f"Unterminated commit record: {fields[-1][:40]!r}")
    fields = fields[:-1]
    if len(fields) % 3 != 0:
        raise ParseError(f"Malformed commit log: {len(fields)} fields is not a multiple of 3")

    commits: List[Commit] = []
    for i in range(0, len(fields), 3):
        commit_hash = fields[i].strip()
        if not _hash_re.match(commit_hash):
            raise ParseError(f"Invalid commit hash in log: {commit_hash[:40]!r}")
        title = fields[i + 1].strip()
        body = fields[i + 2].strip()
        commits.append(Commit.from_strings(
            commit_hash, title, body,
            wip=is_wip(title),
            stable_id=parse_stable_id(body, trailer),
        ))
    return commits


def parse_blame_porcelain(output: str) -> List[BlameLine]:
    """Parse ``git blame --line-porcelain`` output into (sha, line) pairs."""
    lines: List[BlameLine] = []
    for line in output.splitlines():
        if line.startswith("\t"):
            continue
        match = _blame_header_re.match(line)
        if match:
            lines.append(BlameLine(match.group(1), int(match.group(3))))
    return lines


def parse_github_remote(url: str) -> Optional[Tuple[str, str]]:
    """Extract (owner, name) from an SSH or HTTPS remote URL."""
    url = url.strip()
    match = _ssh_remote_re.match(url) or _url_remote_re.match(url)
    if not match:
        return None
    path = match.group('path').strip('/')
    if path.endswith('.git'):
        path = path[:-4]
    parts = path.split('/')
    if len(parts) != 2 or not all(parts):
        return None
    return parts[0], parts[1]


def current_branch(git_cmd: GitInterface) -> str:
    return git_cmd.must_git("rev-parse --abbrev-ref HEAD").strip()


def repo_root(git_cmd: GitInterface) -> str:
    return git_cmd.must_git("rev-parse --show-toplevel").strip()


def ref_exists(git_cmd: GitInterface, ref: str) -> bool:
    return git_cmd.run_cmd(f"rev-parse --verify --quiet {ref}") is not None


def get_merge_base(git_cmd: GitInterface, ref1: str, ref2: str) -> str:
    return git_cmd.must_git(f"merge-base {ref1} {ref2}").strip()


def commit_range(git_cmd: GitInterface, base: str, head: str = "HEAD",
                 trailer: str = "ztk-id") -> List[Commit]:
    """Commits in ``base..head``, oldest first."""
    output = git_cmd.must_git(["log", "--reverse", COMMIT_LOG_FORMAT, f"{base}..{head}"])
    return parse_commits(output, trailer)


def get_commit_message(git_cmd: GitInterface, rev: str = "HEAD") -> str:
    return git_cmd.must_git(["log", "-1", "--format=%B", rev]).strip()


def amend_commit_message(git_cmd: GitInterface, message: str) -> None:
    # Argument list keeps multi-line messages intact
    git_cmd.must_git(["commit", "--amend", "-m", message])


def ensure_branch_at(git_cmd: GitInterface, branch: str, sha: str) -> None:
    """Create or force-move a local branch to sha."""
    git_cmd.must_git(["branch", "-f", branch, sha])


def push(config: ZtkConfig, git_cmd: GitInterface, branch: str, force: bool = True) -> None:
    args = ["push"]
    if force:
        args.append("--force")
    args.extend([config.repo.github_remote, branch])
    git_cmd.must_git(args)


def fetch(git_cmd: GitInterface, remote: str, branch: Optional[str] = None) -> None:
    args = ["fetch", remote]
    if branch:
        args.append(branch)
    git_cmd.must_git(args)


def stash(git_cmd: GitInterface) -> bool:
    """Stash local changes. Returns whether a stash entry was actually created."""
    before = git_cmd.must_git("stash list").splitlines()
    git_cmd.must_git("stash")
    after = git_cmd.must_git("stash list").splitlines()
    created = len(after) > len(before)
    logger.debug(f"stash created={created}")
    return created


def stash_pop(git_cmd: GitInterface, index: bool = False) -> None:
    git_cmd.must_git("stash pop --index" if index else "stash pop")


def write_index_tree(git_cmd: GitInterface) -> str:
    """Snapshot the index as a tree object."""
    return git_cmd.must_git("write-tree").strip()


def stage_from_tree(git_cmd: GitInterface, tree: str, paths: List[str]) -> None:
    """Set the index entries of paths to their content in tree. The working tree is left alone."""
    git_cmd.must_git(["reset", "-q", tree, "--"] + paths)


def restore_index(git_cmd: GitInterface, tree: str) -> None:
    git_cmd.must_git(["read-tree", tree])


def rebase(git_cmd: GitInterface, upstream: str, autostash: bool = True) -> None:
    args = ["rebase"]
    if autostash:
        args.append("--autostash")
    args.append(upstream)
    git_cmd.must_git(args)


def rebase_onto(git_cmd: GitInterface, new_base: str, upstream: str, branch: str) -> None:
    git_cmd.must_git(["rebase", "--onto", new_base, upstream, branch])


def abort_rebase(git_cmd: GitInterface) -> bool:
    """Best-effort rebase abort. Returns whether git accepted it."""
    return git_cmd.run_cmd("rebase --abort") is not None


def blame_range(git_cmd: GitInterface, path: str, start: int, count: int,
                rev: str = "HEAD") -> List[BlameLine]:
    """Blame lines ``[start, start+count)`` of path as of rev."""
    end = start + count - 1
    output = git_cmd.must_git(["blame", "--line-porcelain", "-L", f"{start},{end}", rev, "--", path])
    return parse_blame_porcelain(output)


def staged_diff(git_cmd: GitInterface) -> str:
    return git_cmd.must_git("diff --cached --unified=0 --no-color")


def list_branches(git_cmd: GitInterface, pattern: str) -> List[str]:
    output = git_cmd.must_git(["branch", "--list", pattern, "--format=%(refname:short)"])
    return [b.strip() for b in output.splitlines() if b.strip()]


def delete_branch(git_cmd: GitInterface, branch: str) -> None:
    git_cmd.must_git(["branch", "-D", branch])


def delete_remote_branch(config: ZtkConfig, git_cmd: GitInterface, branch: str) -> None:
    git_cmd.must_git(["push", config.repo.github_remote, f":{branch}"])


def get_remote_url(git_cmd: GitInterface, remote: str = "origin") -> Optional[str]:
    url = git_cmd.run_cmd(f"remote get-url {remote}")
    return url.strip() if url else None


class RealGit:
    """Real Git implementation.

    Commands are dispatched through GitPython's ``repo.git``. Only one
    engine invocation may run against a given working tree at a time.
    """
    def __init__(self, config: ZtkConfig, path: Optional[str] = None):
        """Initialize with config."""
        self.config: ZtkConfig = config
        self.path = path or os.getcwd()
        self._repo: Optional[git.Repo] = None

    @property
    def repo(self) -> git.Repo:
        if self._repo is None:
            try:
                self._repo = git.Repo(self.path, search_parent_directories=True)
            except (InvalidGitRepositoryError, NoSuchPathError):
                raise NotInGitRepoError()
        return self._repo

    def must_git(self, command: GitCommand, env: Optional[Dict[str, str]] = None) -> str:
        """Run git command, failing on error."""
        args = shlex.split(command.strip()) if isinstance(command, str) else list(command)
        if not args:
            raise CommandFailedError("", "empty command")
        cmd_str = " ".join(args)

        if self.config.tool.pretend and args[0] == 'push':
            # Pretend mode - just log
            logger.info(f"> git {cmd_str} (pretend)")
            return ""

        logger.info(f"> git {cmd_str}")
        method = getattr(self.repo.git, args[0].replace('-', '_'))
        kwargs = {}
        if env:
            kwargs['env'] = env
        try:
            result = method(*args[1:], **kwargs)
        except GitCommandError as e:
            stderr = e.stderr if isinstance(e.stderr, str) else str(e.stderr or "")
            raise CommandFailedError(cmd_str, stderr.strip())
        return result if isinstance(result, str) else str(result)

    def run_cmd(self, command: GitCommand, env: Optional[Dict[str, str]] = None) -> Optional[str]:
        """Run git command, returning None on failure."""
        try:
            return self.must_git(command, env)
        except CommandFailedError as e:
            logger.debug(f"Ignoring git failure: {e}")
            return None
