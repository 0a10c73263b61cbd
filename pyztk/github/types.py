"""Type definitions for GitHub API responses."""

from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple
from pydantic import BaseModel, field_validator

class PullRequest(BaseModel):
    number: int
    title: str
    body: str = ""
    head_ref: str
    base_ref: str
    state: str = "open"
    merged: bool = False
    mergeable: Optional[bool] = None
    head_sha: str = ""
    url: str = ""

    @field_validator('body', mode='before')
    @classmethod
    def _none_body(cls, v: Optional[str]) -> str:
        return v or ""

    @property
    def is_open(self) -> bool:
        return self.state == "open"

class ReviewState(str, Enum):
    APPROVED = "APPROVED"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    COMMENTED = "COMMENTED"
    DISMISSED = "DISMISSED"
    PENDING = "PENDING"

class Review(BaseModel):
    id: int
    author: str
    state: ReviewState
    body: Optional[str] = None
    submitted_at: Optional[datetime] = None

    @field_validator('body', mode='before')
    @classmethod
    def _empty_body(cls, v: Optional[str]) -> Optional[str]:
        return v if v and v.strip() else None

class ReviewComment(BaseModel):
    """An inline comment on a line of the PR diff."""
    id: int
    author: str
    body: str = ""
    path: str = ""
    line: Optional[int] = None
    original_line: Optional[int] = None
    diff_hunk: Optional[str] = None
    created_at: Optional[datetime] = None
    in_reply_to_id: Optional[int] = None

    @field_validator('body', 'path', mode='before')
    @classmethod
    def _none_str(cls, v: Optional[str]) -> str:
        return v or ""

    @property
    def display_line(self) -> Optional[int]:
        """Line in the current diff, falling back to the original line."""
        return self.line if self.line is not None else self.original_line

class PRReviewSummary(BaseModel):
    pr_number: int
    pr_title: str
    pr_url: str = ""
    branch: str = ""
    reviews: List[Review] = []
    comments: List[ReviewComment] = []

    def feedback_count(self) -> int:
        """Reviews that say something plus every inline comment."""
        return sum(1 for r in self.reviews if r.body) + len(self.comments)

class CheckStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"

FAILED_CONCLUSIONS = {"failure", "cancelled", "timed_out", "action_required", "startup_failure"}

def collapse_check_runs(runs: Iterable[Tuple[str, Optional[str]]]) -> CheckStatus:
    """Collapse (status, conclusion) pairs of check runs to one status.

    Any failed run wins, then any run still in progress. No runs at all is
    success.
    """
    pending = False
    for status, conclusion in runs:
        if status != "completed":
            pending = True
        elif conclusion in FAILED_CONCLUSIONS:
            return CheckStatus.FAILURE
    return CheckStatus.PENDING if pending else CheckStatus.SUCCESS

def latest_review_states(reviews: Iterable[Review]) -> Dict[str, ReviewState]:
    """Latest decisive state per reviewer.

    Plain comments do not replace an earlier approval or change request.
    """
    ordered = sorted(reviews, key=lambda r: (r.submitted_at is None, r.submitted_at or datetime.min, r.id))
    states: Dict[str, ReviewState] = {}
    for review in ordered:
        if review.state in (ReviewState.COMMENTED, ReviewState.PENDING):
            continue
        states[review.author] = review.state
    return states

def is_approved(reviews: Iterable[Review]) -> bool:
    states = latest_review_states(reviews).values()
    return ReviewState.APPROVED in states and ReviewState.CHANGES_REQUESTED not in states
