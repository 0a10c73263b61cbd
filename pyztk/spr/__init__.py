"""Stacked PR implementation."""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import click

from ..absorb import AbsorbPlan, AbsorbResult, execute_absorb, plan_staged
from ..config.models import ZtkConfig
from ..git import (
    abort_rebase, current_branch, delete_branch, delete_remote_branch, ensure_branch_at, fetch,
    list_branches, push, rebase,
)
from ..github import GitHubClient
from ..pretty import plural, print_header, render_absorb_plan, render_merge_report, render_stack
from ..stack import PRSpec, Stack, derive_pr_specs, read_stack
from ..stack.identity import ensure_stable_ids
from ..typing import ForgeError, GitError, GitInterface, NoMergeablePRError, SyncRebaseError, ZtkError
from .merge import (
    MergePRInfo, MergeResult, compute_mergeable_prefix, execute_merge, gather_merge_infos,
)

logger = logging.getLogger(__name__)

# Picks how many PRs of the mergeable prefix to merge; 0 cancels
PrefixChooser = Callable[[List[MergePRInfo], int], int]


@dataclass
class UpdateResult:
    created: List[PRSpec] = field(default_factory=list)
    updated: List[PRSpec] = field(default_factory=list)
    failed: List[Tuple[PRSpec, str]] = field(default_factory=list)
    rewritten: bool = False


@dataclass
class SyncResult:
    deleted: List[str] = field(default_factory=list)
    kept: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)


class StackedPR:
    """StackedPR implementation."""

    def __init__(self, config: ZtkConfig, github: GitHubClient, git_cmd: GitInterface):
        """Initialize with config, GitHub and git clients."""
        self.config = config
        self.github = github
        self.git_cmd = git_cmd

    def read_stack(self) -> Stack:
        return read_stack(self.config, self.git_cmd)

    def status(self, with_prs: bool = False) -> Stack:
        """Print the stack graph, optionally with open PR numbers."""
        stack = self.read_stack()
        pr_numbers: Dict[str, int] = {}
        if with_prs:
            for spec in derive_pr_specs(self.config, stack):
                pr = self.github.find_pr(spec.branch_name)
                if pr:
                    pr_numbers[spec.sha] = pr.number
        click.echo(render_stack(stack, pr_numbers))
        return stack

    def update_pull_requests(self, count: Optional[int] = None) -> UpdateResult:
        """Push every non-WIP commit to its branch and create or update its PR."""
        result = UpdateResult()
        stack = self.read_stack()
        if stack.is_empty():
            click.echo(f"No commits ahead of {stack.base_branch}")
            return result

        # Fail fast on a missing token before touching history
        _ = self.github.repo

        if ensure_stable_ids(self.config, self.git_cmd, stack):
            result.rewritten = True
            stack = self.read_stack()

        specs = derive_pr_specs(self.config, stack)
        if count is not None:
            specs = specs[:count]
        if not specs:
            click.echo("Nothing to update: every commit is WIP")
            return result

        print_header("Updating Pull Requests", use_emoji=True)
        for spec in specs:
            try:
                ensure_branch_at(self.git_cmd, spec.branch_name, spec.sha)
                push(self.config, self.git_cmd, spec.branch_name, force=True)
                spec, created = self.github.create_or_update_pr(spec)
            except (GitError, ForgeError) as e:
                logger.error(f"Failed to update {spec.branch_name}: {e}")
                result.failed.append((spec, str(e)))
                click.echo(f"   ❌ {spec.commit.short_hash} {spec.title}: {e}")
                continue
            if created:
                result.created.append(spec)
            else:
                result.updated.append(spec)
            click.echo(f"   {'✅ created' if created else '⏳ updated'} #{spec.pr_number} {spec.title}")
            click.echo(f"      {self.github.pr_url(spec.pr_number or 0)}")

        click.echo(f"\n{plural(len(result.created), 'PR')} created, {len(result.updated)} updated, "
                   f"{len(result.failed)} failed")
        return result

    def plan_absorb(self) -> Tuple[Stack, AbsorbPlan]:
        stack = self.read_stack()
        plan = plan_staged(self.git_cmd, stack) if not stack.is_empty() else AbsorbPlan()
        return stack, plan

    def show_absorb_plan(self, plan: AbsorbPlan) -> None:
        click.echo(render_absorb_plan(plan))

    def absorb(self, stack: Stack, plan: AbsorbPlan) -> AbsorbResult:
        """Fold the planned hunks into their commits."""
        result = execute_absorb(self.config, self.git_cmd, stack, plan)
        if result.failed:
            click.echo(f"⚠️  Could not create fixups for: "
                       f"{', '.join(c.short_hash for c in result.failed)}")
        if result.rebased:
            click.echo(f"✅ Absorbed into {plural(result.fixups_created, 'commit')}")
        return result

    def merge_pull_requests(self, count: Optional[int] = None, force: bool = False,
                            no_review: bool = False, choose: Optional[PrefixChooser] = None) -> MergeResult:
        """Merge the mergeable bottom of the stack with one GitHub merge."""
        stack = self.read_stack()
        infos = gather_merge_infos(self.config, self.github, stack, force, no_review)
        if not infos:
            raise NoMergeablePRError("No pull requests in the stack")

        prefix = compute_mergeable_prefix(infos)
        print_header("Merge Status", use_emoji=True)
        click.echo(render_merge_report(infos, len(prefix)))
        click.echo("")

        if count is not None:
            prefix = prefix[:count]
        if not prefix:
            bottom = infos[0]
            raise NoMergeablePRError(
                "No mergeable pull requests at the bottom of the stack",
                hint=f"{bottom.title}: {bottom.reason}" if bottom.reason else None)
        if choose is not None:
            chosen = choose(infos, len(prefix))
            if chosen <= 0:
                click.echo("Merge cancelled")
                return MergeResult()
            prefix = prefix[:chosen]

        # WIP rows above the prefix have no PR to retarget
        above = next((i for i in infos[len(prefix):] if i.pr_number is not None), None)
        top = prefix[-1]
        click.echo(f"   Merging PR #{top.pr_number} to {self.config.repo.github_branch}")
        click.echo(f"   This will merge {plural(len(prefix), 'PR')}")
        result = execute_merge(self.config, self.github, prefix, above)

        click.echo(f"\n✅ Merged #{result.merged_pr}")
        for number in result.closed:
            click.echo(f"   closed #{number}")
        for number, error in result.failed:
            click.echo(f"   ❌ #{number}: {error}")
        click.echo("\nRun 'ztk sync' to rebase onto the updated trunk")
        return result

    def sync_stack(self) -> SyncResult:
        """Rebase onto the fetched trunk and delete branches of finished PRs."""
        remote = self.config.repo.github_remote
        trunk = self.config.repo.github_branch
        upstream = f"{remote}/{trunk}"

        fetch(self.git_cmd, remote, trunk)
        try:
            rebase(self.git_cmd, upstream, autostash=True)
        except GitError as e:
            abort_rebase(self.git_cmd)
            raise SyncRebaseError(
                f"Rebase onto {upstream} hit conflicts and was aborted",
                hint=f"Run 'git rebase {upstream}', resolve the conflicts, then run 'ztk sync' again") from e
        click.echo(f"✅ Rebased onto {upstream}")

        result = SyncResult()
        head = current_branch(self.git_cmd)
        branches = list_branches(self.git_cmd, f"{self.config.repo.branch_prefix}/{head}/*")
        if branches:
            _ = self.github.repo
        for branch in branches:
            try:
                if not self.github.is_branch_merged_or_closed(branch):
                    result.kept.append(branch)
                    continue
                delete_branch(self.git_cmd, branch)
            except ZtkError as e:
                logger.error(f"Failed to clean up {branch}: {e}")
                result.failed.append((branch, str(e)))
                continue
            try:
                delete_remote_branch(self.config, self.git_cmd, branch)
            except GitError as e:
                # Merging usually deleted it already
                logger.info(f"Remote branch {branch} not deleted: {e}")
            result.deleted.append(branch)
            click.echo(f"   deleted {branch}")

        click.echo(f"Branches: {len(result.deleted)} deleted, {len(result.kept)} kept, "
                   f"{len(result.failed)} failed")
        return result
