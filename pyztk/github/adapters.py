"""Adapter classes to wrap PyGithub objects with our protocol interfaces."""

from typing import List, Optional
import logging

from github import Auth, Github
from github.Repository import Repository
from github.PullRequest import PullRequest as PyGithubPullRequest
from github.GithubObject import NotSet

from . import (
    PyGithubProtocol,
    GitHubRepoProtocol,
    GitHubPullRequestProtocol,
    GitHubRefProtocol,
    GitHubReviewProtocol,
    GitHubReviewCommentProtocol,
    GitHubCommitProtocol,
    GitHubGitRefProtocol,
)

logger = logging.getLogger(__name__)


class PyGithubPullRequestAdapter(GitHubPullRequestProtocol):
    """Adapter for PyGithub PullRequest objects."""

    def __init__(self, pr: PyGithubPullRequest) -> None:
        self._pr = pr

    @property
    def number(self) -> int:
        return self._pr.number

    @property
    def title(self) -> str:
        return self._pr.title

    @property
    def body(self) -> Optional[str]:
        return self._pr.body

    @property
    def state(self) -> str:
        return self._pr.state

    @property
    def base(self) -> GitHubRefProtocol:
        return self._pr.base

    @property
    def head(self) -> GitHubRefProtocol:
        return self._pr.head

    @property
    def mergeable(self) -> Optional[bool]:
        return self._pr.mergeable

    @property
    def merged(self) -> bool:
        return self._pr.merged

    @property
    def html_url(self) -> str:
        return self._pr.html_url

    def edit(self, title: Optional[str] = None, body: Optional[str] = None,
             state: Optional[str] = None, base: Optional[str] = None) -> None:
        """Edit the pull request."""
        # Convert None to NotSet for PyGithub
        self._pr.edit(
            title=title if title is not None else NotSet,
            body=body if body is not None else NotSet,
            state=state if state is not None else NotSet,
            base=base if base is not None else NotSet
        )

    def create_issue_comment(self, body: str) -> None:
        """Add a comment to the pull request."""
        self._pr.create_issue_comment(body)

    def merge(self, commit_title: str = "", commit_message: str = "",
              sha: str = "", merge_method: str = "merge") -> None:
        """Merge the pull request."""
        # PyGithub expects NotSet for empty strings
        self._pr.merge(
            commit_title=commit_title if commit_title else NotSet,
            commit_message=commit_message if commit_message else NotSet,
            sha=sha if sha else NotSet,
            merge_method=merge_method
        )

    def get_reviews(self) -> List[GitHubReviewProtocol]:
        # Convert PaginatedList to List
        return list(self._pr.get_reviews())

    def get_review_comments(self) -> List[GitHubReviewCommentProtocol]:
        return list(self._pr.get_review_comments())


class PyGithubRepoAdapter(GitHubRepoProtocol):
    """Adapter for PyGithub Repository objects."""

    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    def get_pull(self, number: int) -> GitHubPullRequestProtocol:
        """Get a pull request by number."""
        return PyGithubPullRequestAdapter(self._repo.get_pull(number))

    def get_pulls(self, state: str = "open", head: str = "", base: str = "") -> List[GitHubPullRequestProtocol]:
        """Get pull requests with optional filtering."""
        # Convert empty strings to NotSet for PyGithub
        pulls = self._repo.get_pulls(
            state=state,
            head=head if head else NotSet,
            base=base if base else NotSet
        )
        return [PyGithubPullRequestAdapter(pr) for pr in pulls]

    def create_pull(self, title: str, body: str, base: str, head: str,
                    draft: bool = False) -> GitHubPullRequestProtocol:
        """Create a new pull request."""
        pr = self._repo.create_pull(
            title=title,
            body=body,
            base=base,
            head=head,
            draft=draft
        )
        return PyGithubPullRequestAdapter(pr)

    def get_commit(self, sha: str) -> GitHubCommitProtocol:
        return self._repo.get_commit(sha)

    def get_git_ref(self, ref: str) -> GitHubGitRefProtocol:
        return self._repo.get_git_ref(ref)


class PyGithubAdapter(PyGithubProtocol):
    """Adapter for the main PyGithub object."""

    def __init__(self, github: Github) -> None:
        self._github = github

    @classmethod
    def from_token(cls, token: str, host: str = "github.com") -> "PyGithubAdapter":
        """Build a client for github.com or a GitHub Enterprise host."""
        if host == "github.com":
            return cls(Github(auth=Auth.Token(token)))
        return cls(Github(base_url=f"https://{host}/api/v3", auth=Auth.Token(token)))

    def get_repo(self, full_name_or_id: str) -> GitHubRepoProtocol:
        """Get a repository by full name."""
        return PyGithubRepoAdapter(self._github.get_repo(full_name_or_id))
