"""Bottom-up merge of the stack.

The longest run of mergeable PRs from the bottom is merged with a single
GitHub merge: the topmost PR of the run is retargeted to trunk and merged,
the PRs below it are commented on and closed.
"""

import logging
from dataclasses import dataclass, field
from itertools import takewhile
from typing import List, Optional, Tuple

from ..config.models import ZtkConfig
from ..github import GitHubClient, MergeMethod
from ..github.types import CheckStatus
from ..stack import Stack, derive_pr_specs
from ..typing import Commit, ForgeError, MergeFailedError, NoMergeablePRError, NoTokenError
from ..util import ensure

logger = logging.getLogger(__name__)

MERGE_METHODS = ('merge', 'squash', 'rebase')

STATE_OPEN = "open"
STATE_CLOSED = "closed"
STATE_MISSING = "missing"


@dataclass
class MergePRInfo:
    """Remote state of one stack commit's PR."""
    commit: Commit
    branch_name: str
    pr_number: Optional[int] = None
    title: str = ""
    state: str = STATE_MISSING
    checks: CheckStatus = CheckStatus.PENDING
    approved: bool = False
    conflicting: Optional[bool] = None
    mergeable: bool = False
    reason: str = ""


@dataclass
class MergeResult:
    merged_pr: Optional[int] = None
    closed: List[int] = field(default_factory=list)
    failed: List[Tuple[int, str]] = field(default_factory=list)
    deleted_branches: List[str] = field(default_factory=list)


def block_reason(checks: CheckStatus, approved: bool, conflicting: Optional[bool],
                 force: bool = False, no_review: bool = False,
                 require_checks: bool = True, require_approval: bool = True) -> Optional[str]:
    """Why a PR cannot be merged, or None if it can.

    ``force`` relaxes checks and review, never conflicts. ``no_review``
    relaxes review only. Unknown mergeability counts as blocked.
    """
    if conflicting is None:
        return "mergeability unknown"
    if conflicting:
        return "has conflicts"
    if require_checks and not force and checks != CheckStatus.SUCCESS:
        return f"checks {checks.value}"
    if require_approval and not force and not no_review and not approved:
        return "not approved"
    return None


def collapse_mergeable(checks: CheckStatus, approved: bool, conflicting: Optional[bool],
                       force: bool = False, no_review: bool = False) -> bool:
    return block_reason(checks, approved, conflicting, force, no_review) is None


def gather_merge_infos(config: ZtkConfig, github: GitHubClient, stack: Stack,
                       force: bool = False, no_review: bool = False) -> List[MergePRInfo]:
    """Snapshot the PR state of every stack commit, bottom first.

    A WIP commit has no PR of its own but its code is in every branch above
    it, so it gets a blocked row that ends the mergeable prefix.
    """
    specs = {spec.sha: spec for spec in derive_pr_specs(config, stack)}
    infos: List[MergePRInfo] = []
    for commit in stack.commits:
        spec = specs.get(commit.commit_hash)
        if spec is None:
            infos.append(MergePRInfo(commit=commit, branch_name="", title=commit.title, reason="WIP"))
            continue
        info = MergePRInfo(commit=commit, branch_name=spec.branch_name, title=spec.title)
        infos.append(info)
        try:
            found = github.find_pr(spec.branch_name)
            if found is None:
                info.reason = "no open PR"
                continue
            # Listing does not compute mergeability; fetching the PR does
            pr = github.get_pr(found.number)
            info.pr_number = pr.number
            info.title = pr.title
            info.state = STATE_OPEN if pr.is_open else STATE_CLOSED
            if not pr.is_open:
                info.reason = "PR is closed"
                continue
            if pr.head_sha and pr.head_sha != spec.sha:
                info.reason = "remote branch out of date, run 'ztk update'"
                continue
            info.checks = github.get_check_status(spec.sha)
            info.approved = github.review_approved(pr.number)
            info.conflicting = None if pr.mergeable is None else not pr.mergeable
            reason = block_reason(info.checks, info.approved, info.conflicting, force, no_review,
                                  config.repo.require_checks, config.repo.require_approval)
            info.mergeable = reason is None
            info.reason = reason or ""
        except NoTokenError:
            raise
        except ForgeError as e:
            logger.error(f"Failed to read PR state for {spec.branch_name}: {e}")
            info.reason = f"error: {e}"
    return infos


def compute_mergeable_prefix(infos: List[MergePRInfo]) -> List[MergePRInfo]:
    """Longest bottom-up run of mergeable PRs."""
    return list(takewhile(lambda info: info.mergeable and info.pr_number is not None, infos))


def merged_comment(config: ZtkConfig, number: int) -> str:
    repo = config.repo
    return (
        f"✓ Commit merged in pull request "
        f"[#{number}](https://{repo.github_host}/"
        f"{repo.github_repo_owner}/{repo.github_repo_name}"
        f"/pull/{number})"
    )


def restore_base(github: GitHubClient, number: int, base: str) -> None:
    try:
        github.update_pr(number, base=base)
    except ForgeError as e:
        logger.error(f"Failed to restore base {base} of #{number}: {e}")


def execute_merge(config: ZtkConfig, github: GitHubClient, prefix: List[MergePRInfo],
                  above: Optional[MergePRInfo] = None) -> MergeResult:
    """Merge the prefix through its topmost PR and retire the rest.

    ``above`` is the first PR over the prefix; it is retargeted to trunk
    before the merged branches are deleted so GitHub does not close it.
    """
    if not prefix:
        raise NoMergeablePRError("No mergeable pull requests at the bottom of the stack")

    trunk = config.repo.github_branch
    method: MergeMethod = config.repo.merge_method if config.repo.merge_method in MERGE_METHODS else 'squash'
    top = prefix[-1]
    top_number = ensure(top.pr_number)

    # Retarget first so the single merge lands on trunk
    github.update_pr(top_number, base=trunk)
    try:
        github.merge_pr(top_number, method)
    except ForgeError as e:
        if len(prefix) > 1:
            restore_base(github, top_number, prefix[-2].branch_name)
        raise MergeFailedError(f"Failed to merge #{top_number}: {e}",
                               hint="Nothing was closed; fix the PR on GitHub and run 'ztk merge' again") from e
    result = MergeResult(merged_pr=top_number)

    if above is not None and above.pr_number is not None and above.state == STATE_OPEN:
        try:
            github.update_pr(above.pr_number, base=trunk)
        except ForgeError as e:
            logger.error(f"Failed to retarget #{above.pr_number}: {e}")
            result.failed.append((above.pr_number, str(e)))

    try:
        github.delete_branch(top.branch_name)
        result.deleted_branches.append(top.branch_name)
    except ForgeError as e:
        logger.error(f"Failed to delete {top.branch_name}: {e}")

    comment = merged_comment(config, top_number)
    for info in prefix[:-1]:
        number = ensure(info.pr_number)
        try:
            github.comment_pr(number, comment)
            github.close_pr(number)
            result.closed.append(number)
        except ForgeError as e:
            logger.error(f"Failed to close #{number}: {e}")
            result.failed.append((number, str(e)))
            continue
        try:
            github.delete_branch(info.branch_name)
            result.deleted_branches.append(info.branch_name)
        except ForgeError as e:
            logger.error(f"Failed to delete {info.branch_name}: {e}")
    return result
