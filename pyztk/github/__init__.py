"""GitHub interfaces and implementation."""

import os
import logging
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Literal, Protocol, Tuple, runtime_checkable

import yaml
from github.GithubException import GithubException, UnknownObjectException
from pydantic import ValidationError

from .types import (
    CheckStatus, PRReviewSummary, PullRequest, Review, ReviewComment, ReviewState,
    collapse_check_runs, is_approved,
)
from ..config.models import ZtkConfig
from ..stack import PRSpec
from ..typing import (
    ForgeNotFoundError, ForgeParseError, ForgeRequestError, InvalidConfigError, NoTokenError,
)

# Define merge method type
MergeMethod = Literal['merge', 'squash', 'rebase']

# Get module logger
logger = logging.getLogger(__name__)

# Define protocols for GitHub objects
@runtime_checkable
class GitHubUserProtocol(Protocol):
    """Protocol for GitHub user objects (real or fake)."""
    @property
    def login(self) -> str:
        """Get the user's login name."""
        ...

@runtime_checkable
class GitHubRefProtocol(Protocol):
    """Protocol for GitHub ref objects (base/head references)."""
    @property
    def ref(self) -> str:
        """Get the ref name (e.g., 'main', 'feature-branch')."""
        ...

    @property
    def sha(self) -> str:
        """Get the commit SHA."""
        ...

@runtime_checkable
class GitHubReviewProtocol(Protocol):
    """Protocol for a submitted pull request review."""
    id: int
    body: Optional[str]
    state: str
    submitted_at: Optional[datetime]

    @property
    def user(self) -> Optional[GitHubUserProtocol]:
        ...

@runtime_checkable
class GitHubReviewCommentProtocol(Protocol):
    """Protocol for an inline review comment."""
    id: int
    body: Optional[str]
    path: Optional[str]
    line: Optional[int]
    original_line: Optional[int]
    diff_hunk: Optional[str]
    created_at: Optional[datetime]
    in_reply_to_id: Optional[int]

    @property
    def user(self) -> Optional[GitHubUserProtocol]:
        ...

@runtime_checkable
class GitHubCheckRunProtocol(Protocol):
    """Protocol for a check run on a commit."""
    name: str
    status: str
    conclusion: Optional[str]

@runtime_checkable
class GitHubCommitProtocol(Protocol):
    """Protocol for GitHub commit objects."""
    @property
    def sha(self) -> str:
        """Get the commit SHA."""
        ...

    def get_check_runs(self) -> List[GitHubCheckRunProtocol]:
        """Get check runs for this commit."""
        ...

@runtime_checkable
class GitHubGitRefProtocol(Protocol):
    """Protocol for a git reference that can be deleted."""
    def delete(self) -> None:
        ...

@runtime_checkable
class GitHubPullRequestProtocol(Protocol):
    """Protocol for GitHub pull request objects (real or fake)."""
    @property
    def number(self) -> int:
        """Get the PR number."""
        ...

    @property
    def title(self) -> str:
        """Get the PR title."""
        ...

    @property
    def body(self) -> Optional[str]:
        """Get the PR body."""
        ...

    @property
    def state(self) -> str:
        """Get the PR state (open, closed)."""
        ...

    @property
    def base(self) -> GitHubRefProtocol:
        """Get the base reference."""
        ...

    @property
    def head(self) -> GitHubRefProtocol:
        """Get the head reference."""
        ...

    @property
    def mergeable(self) -> Optional[bool]:
        """Get whether the PR is mergeable. None while GitHub is computing it."""
        ...

    @property
    def merged(self) -> bool:
        """Get whether the PR is merged."""
        ...

    @property
    def html_url(self) -> str:
        ...

    def edit(self, title: Optional[str] = None, body: Optional[str] = None, state: Optional[str] = None,
             base: Optional[str] = None) -> None:
        """Edit the pull request."""
        ...

    def create_issue_comment(self, body: str) -> None:
        """Add a comment to the pull request."""
        ...

    def merge(self, commit_title: str = "", commit_message: str = "",
              sha: str = "", merge_method: str = "merge") -> None:
        """Merge the pull request."""
        ...

    def get_reviews(self) -> List[GitHubReviewProtocol]:
        ...

    def get_review_comments(self) -> List[GitHubReviewCommentProtocol]:
        ...

@runtime_checkable
class GitHubRepoProtocol(Protocol):
    """Protocol for GitHub repository objects (real or fake)."""
    def get_pull(self, number: int) -> GitHubPullRequestProtocol:
        """Get a pull request by number."""
        ...

    def get_pulls(self, state: str = "open", head: str = "", base: str = "") -> List[GitHubPullRequestProtocol]:
        """Get pull requests with optional filtering."""
        ...

    def create_pull(self, title: str, body: str, base: str, head: str,
                    draft: bool = False) -> GitHubPullRequestProtocol:
        """Create a new pull request."""
        ...

    def get_commit(self, sha: str) -> GitHubCommitProtocol:
        ...

    def get_git_ref(self, ref: str) -> GitHubGitRefProtocol:
        ...

@runtime_checkable
class PyGithubProtocol(Protocol):
    """Protocol for PyGithub implementations (real or fake).

    Both the real PyGithub library (through the adapters) and the in-memory
    fake used by the tests satisfy it.
    """
    def get_repo(self, full_name_or_id: str) -> GitHubRepoProtocol:
        """Get a repository by full name."""
        ...

def find_github_token(host: str = "github.com") -> Optional[str]:
    """Find GitHub token from env var or gh CLI config."""
    # First try environment variable
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        return token

    # Then try gh CLI config at ~/.config/gh/hosts.yml
    gh_config_path = Path.home() / ".config" / "gh" / "hosts.yml"
    try:
        if gh_config_path.exists():
            with open(gh_config_path, "r") as f:
                gh_config = yaml.safe_load(f)
            if gh_config and host in gh_config:
                host_config: Dict[str, object] = gh_config[host] or {}
                token = host_config.get("oauth_token")
                if isinstance(token, str) and token:
                    return token
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error reading gh CLI config: {e}")
    return None

@contextmanager
def forge_errors(operation: str) -> Iterator[None]:
    """Map PyGithub and response parsing failures to forge errors."""
    try:
        yield
    except UnknownObjectException as e:
        raise ForgeNotFoundError(f"GitHub {operation}: not found") from e
    except GithubException as e:
        message = e.data.get("message") if isinstance(e.data, dict) else None
        raise ForgeRequestError(f"GitHub {operation} failed ({e.status}): {message or e}") from e
    except ValidationError as e:
        raise ForgeParseError(f"Unexpected GitHub response for {operation}: {e}") from e

def _login(user: Optional[GitHubUserProtocol]) -> str:
    return user.login if user is not None else "ghost"

def to_pull_request(pr: GitHubPullRequestProtocol) -> PullRequest:
    return PullRequest.model_validate({
        'number': pr.number,
        'title': pr.title,
        'body': pr.body,
        'head_ref': pr.head.ref,
        'base_ref': pr.base.ref,
        'state': pr.state,
        'merged': bool(pr.merged),
        'mergeable': pr.mergeable,
        'head_sha': pr.head.sha,
        'url': pr.html_url or "",
    })

class GitHubClient:
    """GitHub client implementation."""
    def __init__(self, config: ZtkConfig, github_client: Optional[PyGithubProtocol] = None):
        """Initialize with config and GitHub client implementation.

        Args:
            config: The configuration
            github_client: GitHub client implementation (real or fake).
                           None means no token was found; forge calls raise NoTokenError.
        """
        self.config = config
        self.client = github_client
        self._repo: Optional[GitHubRepoProtocol] = None

    @property
    def repo(self) -> GitHubRepoProtocol:
        """Get GitHub repository."""
        if self._repo is None:
            if self.client is None:
                raise NoTokenError()
            owner = self.config.repo.github_repo_owner
            name = self.config.repo.github_repo_name
            if not owner or not name:
                raise InvalidConfigError("GitHub repository owner/name not configured",
                                         hint="Run 'ztk init' or set repo.github_repo_owner/github_repo_name")
            with forge_errors("get repository"):
                self._repo = self.client.get_repo(f"{owner}/{name}")
        return self._repo

    def _head_filter(self, branch: str) -> str:
        return f"{self.config.repo.github_repo_owner}:{branch}"

    def pr_url(self, number: int) -> str:
        repo = self.config.repo
        return f"https://{repo.github_host}/{repo.github_repo_owner}/{repo.github_repo_name}/pull/{number}"

    def find_pr(self, head: str) -> Optional[PullRequest]:
        """Open PR whose head is the given branch, if any."""
        logger.info(f"> github find pr {head}")
        with forge_errors(f"find pr for {head}"):
            pulls = self.repo.get_pulls(state="open", head=self._head_filter(head))
            for pr in pulls:
                if pr.head.ref == head:
                    return to_pull_request(pr)
        return None

    def find_prs_any_state(self, head: str) -> List[PullRequest]:
        with forge_errors(f"list prs for {head}"):
            pulls = self.repo.get_pulls(state="all", head=self._head_filter(head))
            return [to_pull_request(pr) for pr in pulls if pr.head.ref == head]

    def get_pr(self, number: int) -> PullRequest:
        logger.info(f"> github get #{number}")
        with forge_errors(f"get #{number}"):
            return to_pull_request(self.repo.get_pull(number))

    def create_pr(self, head: str, base: str, title: str, body: str) -> PullRequest:
        logger.info(f"> github create {head} -> {base} : {title}")
        with forge_errors(f"create pr for {head}"):
            pr = self.repo.create_pull(title=title, body=body, base=base, head=head)
            return to_pull_request(pr)

    def update_pr(self, number: int, title: Optional[str] = None, body: Optional[str] = None,
                  base: Optional[str] = None) -> None:
        """Edit only the fields that are given."""
        if title is None and body is None and base is None:
            return
        logger.info(f"> github update #{number}")
        with forge_errors(f"update #{number}"):
            self.repo.get_pull(number).edit(title=title, body=body, base=base)

    def create_or_update_pr(self, spec: PRSpec) -> Tuple[PRSpec, bool]:
        """Make the remote PR match the spec.

        Returns the spec with its PR number filled in and whether a new PR
        was created.
        """
        existing = self.find_pr(spec.branch_name)
        if existing is None:
            pr = self.create_pr(spec.branch_name, spec.base_ref, spec.title, spec.body)
            return replace(spec, pr_number=pr.number), True

        self.update_pr(
            existing.number,
            title=spec.title if existing.title != spec.title else None,
            body=spec.body if existing.body != spec.body else None,
            base=spec.base_ref if existing.base_ref != spec.base_ref else None,
        )
        return replace(spec, pr_number=existing.number), False

    def list_reviews(self, number: int) -> List[Review]:
        """Submitted reviews, oldest first. Pending reviews are dropped."""
        logger.info(f"> github reviews #{number}")
        reviews: List[Review] = []
        with forge_errors(f"reviews for #{number}"):
            for r in self.repo.get_pull(number).get_reviews():
                if r.state == ReviewState.PENDING.value:
                    continue
                reviews.append(Review.model_validate({
                    'id': r.id,
                    'author': _login(r.user),
                    'state': r.state,
                    'body': r.body,
                    'submitted_at': r.submitted_at,
                }))
        return reviews

    def review_approved(self, number: int) -> bool:
        return is_approved(self.list_reviews(number))

    def list_review_comments(self, number: int) -> List[ReviewComment]:
        logger.info(f"> github review comments #{number}")
        with forge_errors(f"review comments for #{number}"):
            return [ReviewComment.model_validate({
                'id': c.id,
                'author': _login(c.user),
                'body': c.body,
                'path': c.path,
                'line': c.line,
                'original_line': c.original_line,
                'diff_hunk': c.diff_hunk,
                'created_at': c.created_at,
                'in_reply_to_id': c.in_reply_to_id,
            }) for c in self.repo.get_pull(number).get_review_comments()]

    def get_review_summary(self, number: int) -> PRReviewSummary:
        pr = self.get_pr(number)
        return PRReviewSummary(
            pr_number=pr.number,
            pr_title=pr.title,
            pr_url=pr.url or self.pr_url(pr.number),
            branch=pr.head_ref,
            reviews=self.list_reviews(number),
            comments=self.list_review_comments(number),
        )

    def get_check_status(self, sha: str) -> CheckStatus:
        logger.info(f"> github checks {sha[:8]}")
        with forge_errors(f"checks for {sha[:8]}"):
            runs = self.repo.get_commit(sha).get_check_runs()
            return collapse_check_runs((run.status, run.conclusion) for run in runs)

    def merge_pr(self, number: int, method: MergeMethod = "squash") -> None:
        logger.info(f"> github merge #{number} ({method})")
        with forge_errors(f"merge #{number}"):
            self.repo.get_pull(number).merge(merge_method=method)

    def close_pr(self, number: int) -> None:
        logger.info(f"> github close #{number}")
        with forge_errors(f"close #{number}"):
            self.repo.get_pull(number).edit(state="closed")

    def comment_pr(self, number: int, body: str) -> None:
        logger.info(f"> github comment #{number}")
        with forge_errors(f"comment on #{number}"):
            self.repo.get_pull(number).create_issue_comment(body)

    def delete_branch(self, branch: str) -> None:
        logger.info(f"> github delete branch {branch}")
        with forge_errors(f"delete branch {branch}"):
            self.repo.get_git_ref(f"heads/{branch}").delete()

    def is_branch_merged_or_closed(self, branch: str) -> bool:
        """True only when the branch has PRs and none of them is open."""
        prs = self.find_prs_any_state(branch)
        return bool(prs) and not any(pr.is_open for pr in prs)
