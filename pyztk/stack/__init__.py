"""Reading the local commit stack and deriving pull request specs from it."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..typing import Commit, GitInterface
from ..config.models import ZtkConfig
from ..git import commit_range, current_branch, get_merge_base, ref_exists

logger = logging.getLogger(__name__)


@dataclass
class Stack:
    """Commits between the trunk merge base and HEAD, oldest first."""
    base_branch: str
    head_branch: str
    commits: List[Commit] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.commits)

    def is_empty(self) -> bool:
        return not self.commits

    def non_wip_commits(self) -> List[Commit]:
        return [c for c in self.commits if not c.wip]

    def wip_count(self) -> int:
        return sum(1 for c in self.commits if c.wip)

    def missing_ids(self) -> List[Commit]:
        """Non-WIP commits that still lack a stable id."""
        return [c for c in self.commits if not c.wip and not c.stable_id]

    def find_commit(self, sha: str) -> Optional[Commit]:
        for c in self.commits:
            if c.commit_hash == sha:
                return c
        return None


@dataclass
class PRSpec:
    """What one commit's pull request should look like."""
    commit: Commit
    branch_name: str
    base_ref: str
    title: str
    body: str
    pr_number: Optional[int] = None

    @property
    def sha(self) -> str:
        return self.commit.commit_hash


def trunk_ref(config: ZtkConfig, git_cmd: GitInterface) -> str:
    """``<remote>/<trunk>`` if that ref exists, else local trunk."""
    remote_ref = f"{config.repo.github_remote}/{config.repo.github_branch}"
    if ref_exists(git_cmd, remote_ref):
        return remote_ref
    logger.debug(f"{remote_ref} not found, falling back to {config.repo.github_branch}")
    return config.repo.github_branch


def stack_merge_base(config: ZtkConfig, git_cmd: GitInterface) -> str:
    return get_merge_base(git_cmd, trunk_ref(config, git_cmd), "HEAD")


def read_stack(config: ZtkConfig, git_cmd: GitInterface) -> Stack:
    """Read the commits ahead of trunk into a Stack."""
    head = current_branch(git_cmd)
    base = stack_merge_base(config, git_cmd)
    commits = commit_range(git_cmd, base, "HEAD", config.repo.id_trailer)
    logger.info(f"read_stack: {len(commits)} commits on {head} above {base[:8]}")
    for c in commits:
        logger.debug(f"  {c.short_hash}: id={c.stable_id}, wip={c.wip}, title='{c.title}'")
    return Stack(base_branch=config.repo.github_branch, head_branch=head, commits=commits)


def branch_name_for(config: ZtkConfig, head_branch: str, commit: Commit) -> str:
    """Remote branch name for a commit, stable across rebases once it has an id."""
    suffix = commit.stable_id[:8] if commit.stable_id else commit.short_hash
    return f"{config.repo.branch_prefix}/{head_branch}/{suffix}"


def pr_body(commit: Commit) -> str:
    if commit.body:
        return f"{commit.title}\n\n{commit.body}"
    return commit.title


def derive_pr_specs(config: ZtkConfig, stack: Stack) -> List[PRSpec]:
    """One PRSpec per non-WIP commit; each spec is based on the one below it."""
    specs: List[PRSpec] = []
    base = stack.base_branch
    for commit in stack.non_wip_commits():
        branch = branch_name_for(config, stack.head_branch, commit)
        specs.append(PRSpec(
            commit=commit,
            branch_name=branch,
            base_ref=base,
            title=commit.title,
            body=pr_body(commit),
        ))
        base = branch
    return specs
