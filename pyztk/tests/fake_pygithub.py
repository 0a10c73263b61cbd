"""In-memory fake of the parts of PyGithub that GitHubClient uses."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set, Tuple

from github.GithubException import GithubException, UnknownObjectException

from pyztk.util import ensure

logger = logging.getLogger(__name__)


@dataclass
class FakeNamedUser:
    """Fake implementation of the NamedUser class from PyGithub."""
    login: str


@dataclass
class FakeRef:
    """Fake base/head reference of a pull request."""
    ref: str
    sha: str = ""


@dataclass
class FakeReview:
    id: int
    user: Optional[FakeNamedUser]
    state: str
    body: Optional[str] = ""
    submitted_at: Optional[datetime] = None


@dataclass
class FakeReviewComment:
    id: int
    user: Optional[FakeNamedUser]
    body: Optional[str]
    path: Optional[str] = None
    line: Optional[int] = None
    original_line: Optional[int] = None
    diff_hunk: Optional[str] = None
    created_at: Optional[datetime] = None
    in_reply_to_id: Optional[int] = None


@dataclass
class FakeCheckRun:
    name: str
    status: str = "completed"
    conclusion: Optional[str] = "success"


@dataclass
class FakeCommit:
    """Fake implementation of the Commit class from PyGithub."""
    sha: str
    check_runs: List[FakeCheckRun] = field(default_factory=list)

    def get_check_runs(self) -> List[FakeCheckRun]:
        return list(self.check_runs)


@dataclass
class FakeGitRef:
    branch: str
    maybe_repo: Optional[FakeRepository] = field(default=None, repr=False)

    def delete(self) -> None:
        repo = ensure(self.maybe_repo)
        repo.events.append(("delete_branch", self.branch))
        repo.branches.discard(self.branch)


@dataclass
class FakePullRequest:
    """Fake implementation of the PullRequest class from PyGithub."""
    number: int
    title: str
    body: Optional[str]
    base: FakeRef
    head: FakeRef
    state: str = "open"
    merged: bool = False
    mergeable: Optional[bool] = True
    reviews: List[FakeReview] = field(default_factory=list)
    review_comments: List[FakeReviewComment] = field(default_factory=list)
    comments: List[str] = field(default_factory=list)
    maybe_repo: Optional[FakeRepository] = field(default=None, repr=False)

    @property
    def repo(self) -> FakeRepository:
        return ensure(self.maybe_repo)

    @property
    def html_url(self) -> str:
        return f"https://github.com/{self.repo.full_name}/pull/{self.number}"

    def edit(self, title: Optional[str] = None, body: Optional[str] = None,
             state: Optional[str] = None, base: Optional[str] = None) -> None:
        changes = {k: v for k, v in (("title", title), ("body", body), ("state", state), ("base", base))
                   if v is not None}
        self.repo.events.append(("edit", self.number, changes))
        if title is not None:
            self.title = title
        if body is not None:
            self.body = body
        if state is not None:
            self.state = state
        if base is not None:
            self.base = FakeRef(base)

    def create_issue_comment(self, body: str) -> None:
        self.repo.events.append(("comment", self.number, body))
        self.comments.append(body)

    def merge(self, commit_title: str = "", commit_message: str = "",
              sha: str = "", merge_method: str = "merge") -> None:
        if self.state != "open" or self.mergeable is False:
            raise GithubException(405, {"message": "Pull Request is not mergeable"}, None)
        self.repo.events.append(("merge", self.number, merge_method))
        self.merged = True
        self.state = "closed"

    def get_reviews(self) -> List[FakeReview]:
        return list(self.reviews)

    def get_review_comments(self) -> List[FakeReviewComment]:
        return list(self.review_comments)


@dataclass
class FakeRepository:
    """Fake implementation of the Repository class from PyGithub."""
    owner: str
    name: str
    pulls: Dict[int, FakePullRequest] = field(default_factory=dict)
    commits: Dict[str, FakeCommit] = field(default_factory=dict)
    branches: Set[str] = field(default_factory=set)
    events: List[Tuple] = field(default_factory=list)
    next_number: int = 1

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def add_pull(self, head: str, base: str, title: str = "", body: str = "", sha: str = "",
                 state: str = "open", merged: bool = False,
                 mergeable: Optional[bool] = True) -> FakePullRequest:
        """Seed a pull request without recording an event."""
        pr = FakePullRequest(self.next_number, title or head, body, FakeRef(base), FakeRef(head, sha),
                             state=state, merged=merged, mergeable=mergeable, maybe_repo=self)
        self.pulls[pr.number] = pr
        self.branches.add(head)
        self.next_number += 1
        return pr

    def get_pull(self, number: int) -> FakePullRequest:
        if number not in self.pulls:
            raise UnknownObjectException(404, {"message": "Not Found"}, None)
        return self.pulls[number]

    def get_pulls(self, state: str = "open", head: str = "", base: str = "") -> List[FakePullRequest]:
        result = []
        for pr in sorted(self.pulls.values(), key=lambda p: p.number, reverse=True):
            if state != "all" and pr.state != state:
                continue
            if head and f"{self.owner}:{pr.head.ref}" != head:
                continue
            if base and pr.base.ref != base:
                continue
            result.append(pr)
        return result

    def create_pull(self, title: str, body: str, base: str, head: str,
                    draft: bool = False) -> FakePullRequest:
        if any(p.head.ref == head and p.state == "open" for p in self.pulls.values()):
            raise GithubException(422, {"message": f"A pull request already exists for {self.owner}:{head}."}, None)
        pr = self.add_pull(head, base, title, body)
        self.events.append(("create", pr.number, head, base))
        return pr

    def get_commit(self, sha: str) -> FakeCommit:
        return self.commits.setdefault(sha, FakeCommit(sha))

    def get_git_ref(self, ref: str) -> FakeGitRef:
        branch = ref[len("heads/"):] if ref.startswith("heads/") else ref
        if branch not in self.branches:
            raise UnknownObjectException(404, {"message": "Reference does not exist"}, None)
        return FakeGitRef(branch, self)


class FakeGithub:
    """Fake implementation of the Github class from PyGithub."""

    def __init__(self, owner: str = "acme", name: str = "widgets") -> None:
        self.repos: Dict[str, FakeRepository] = {}
        self.repo = self.add_repo(owner, name)

    def add_repo(self, owner: str, name: str) -> FakeRepository:
        repo = FakeRepository(owner, name)
        self.repos[repo.full_name] = repo
        return repo

    def get_repo(self, full_name_or_id: str) -> FakeRepository:
        if full_name_or_id not in self.repos:
            raise UnknownObjectException(404, {"message": "Not Found"}, None)
        return self.repos[full_name_or_id]


def review(id: int, login: str, state: str, body: str = "", day: int = 1) -> FakeReview:
    return FakeReview(id, FakeNamedUser(login), state, body,
                      datetime(2024, 1, day, tzinfo=timezone.utc))
