"""CLI entry point."""

import os
import functools
import click
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar, cast
from click import Context

from ... import setup_logging
from ...config import Config, default_config
from ...config.config_parser import config_exists, init_default, parse_config, CONFIG_FILE
from ...git import RealGit, current_branch, repo_root
from ...github import GitHubClient, find_github_token
from ...github.adapters import PyGithubAdapter
from ...pretty import print_error, print_success
from ...review import feedback_items, format_prompt, render_feedback_list
from ...spr import StackedPR
from ...spr.merge import MergePRInfo
from ...stack import derive_pr_specs
from ...typing import ForgeNotFoundError, ZtkError

# Get module logger
logger = logging.getLogger(__name__)

F = TypeVar('F', bound=Callable[..., Any])


class AliasedGroup(click.Group):
    """Command group with support for aliases."""

    def __init__(self, name: Optional[str] = None, commands: Optional[Dict[str, click.Command]] = None, **attrs: Any) -> None:
        """Initialize with aliases map."""
        super().__init__(name, commands, **attrs)
        self.aliases: Dict[str, str] = {}

    def add_alias(self, alias: str, command: str) -> None:
        """Add an alias for a command."""
        self.aliases[alias] = command

    def get_command(self, ctx: Context, cmd_name: str) -> Optional[click.Command]:
        """Get a command by name, supporting aliases."""
        # Check if cmd_name is a registered alias
        if cmd_name in self.aliases:
            cmd_name = self.aliases[cmd_name]
        return super().get_command(ctx, cmd_name)

    def invoke(self, ctx: Context) -> Any:
        """Run the subcommand, turning ZtkError into 'error: ...' and exit status 1."""
        try:
            return super().invoke(ctx)
        except ZtkError as e:
            logger.debug("Command failed", exc_info=True)
            print_error(str(e), e.hint)
            ctx.exit(1)


@click.group(cls=AliasedGroup)
@click.pass_context
def cli(ctx: Context) -> None:
    """ztk - Stacked Pull Requests on GitHub."""
    ctx.ensure_object(dict)


def common_options(f: F) -> F:
    """-C/--directory and -v/--verbose, shared by every command."""
    f = click.option('-v', '--verbose', count=True,
                     help="Increase verbosity (can be used multiple times for more verbosity)")(f)
    f = click.option('-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
                     help='Run as if ztk was started in DIRECTORY instead of the current working directory')(f)

    @functools.wraps(f)
    def wrapper(*args: Any, directory: Optional[str] = None, verbose: int = 0, **kwargs: Any) -> Any:
        setup_logging(verbose)
        if directory:
            os.chdir(directory)
        return f(*args, **kwargs)
    return cast(F, wrapper)


def setup_git() -> Tuple[Config, RealGit]:
    """Load config from the enclosing repository."""
    git_cmd = RealGit(default_config())
    root = repo_root(git_cmd)
    config = Config(parse_config(git_cmd, root))
    return config, RealGit(config)


def create_github_client(config: Config) -> GitHubClient:
    """GitHub client backed by PyGithub. Without a token, forge calls raise NoTokenError."""
    token = find_github_token(config.repo.github_host)
    if not token:
        logger.info("No GitHub token found")
        return GitHubClient(config, None)
    return GitHubClient(config, PyGithubAdapter.from_token(token, config.repo.github_host))


def setup_stacked_pr() -> StackedPR:
    config, git_cmd = setup_git()
    return StackedPR(config, create_github_client(config), git_cmd)


@cli.command(name="init", help="Initialize ztk in the current repository")
@click.option('--remote', default="origin", show_default=True, help="Remote that points at GitHub")
@click.option('--trunk', default="main", show_default=True, help="Trunk branch PRs merge into")
@common_options
def init(remote: str, trunk: str) -> None:
    git_cmd = RealGit(default_config())
    root = repo_root(git_cmd)
    if config_exists(root):
        click.echo("ztk is already initialized in this repository.")
        return
    repo = init_default(git_cmd, root, remote, trunk)
    print_success(f"Initialized ztk for {repo['github_repo_owner']}/{repo['github_repo_name']}")
    click.echo(f"  Created {CONFIG_FILE}")


@cli.command(name="status", help="Show the local commit stack")
@click.option('--prs', is_flag=True, help="Also look up the open PR of every commit")
@common_options
def status(prs: bool) -> None:
    setup_stacked_pr().status(with_prs=prs)


@cli.command(name="update", help="Create and update pull requests for the commit stack")
@click.option('-c', '--count', type=click.IntRange(min=1),
              help="Only update the bottom COUNT pull requests")
@common_options
def update(count: Optional[int]) -> None:
    result = setup_stacked_pr().update_pull_requests(count)
    if result.failed:
        raise click.exceptions.Exit(1)


@cli.command(name="absorb", help="Fold staged changes into the stack commits that own them")
@click.option('-y', '--yes', is_flag=True, help="Do not ask for confirmation")
@common_options
def absorb(yes: bool) -> None:
    stacked = setup_stacked_pr()
    stack, plan = stacked.plan_absorb()
    if plan.is_empty() and not plan.unabsorbable:
        click.echo("Nothing staged to absorb")
        return
    stacked.show_absorb_plan(plan)
    if plan.is_empty():
        click.echo("No staged hunk can be absorbed")
        return
    if not yes and not click.confirm("Absorb these changes?", default=True):
        click.echo("Aborted")
        return
    stacked.absorb(stack, plan)


def choose_prefix(infos: List[MergePRInfo], max_count: int) -> int:
    """Ask how many of the mergeable PRs to merge."""
    click.echo("Mergeable from the bottom:")
    for i, info in enumerate(infos[:max_count], 1):
        click.echo(f"  {i}. #{info.pr_number} {info.title}")
    return click.prompt("Merge how many PRs (0 to cancel)",
                        type=click.IntRange(0, max_count), default=max_count)


@cli.command(name="merge", help="Merge the mergeable bottom of the stack")
@click.option('-i', '--interactive', is_flag=True, help="Choose how many mergeable PRs to merge")
@click.option('-c', '--count', type=click.IntRange(min=1), help="Merge at most COUNT pull requests")
@click.option('--force', is_flag=True, help="Ignore failing checks and missing approval (never conflicts)")
@click.option('--no-review', is_flag=True, help="Ignore missing approval")
@common_options
def merge(interactive: bool, count: Optional[int], force: bool, no_review: bool) -> None:
    setup_stacked_pr().merge_pull_requests(
        count=count, force=force, no_review=no_review,
        choose=choose_prefix if interactive else None)


@cli.command(name="sync", help="Rebase onto the updated trunk and delete merged branches")
@common_options
def sync() -> None:
    setup_stacked_pr().sync_stack()


def find_review_pr(stacked: StackedPR) -> int:
    """PR of the current branch, else the topmost PR of the stack."""
    github = stacked.github
    pr = github.find_pr(current_branch(stacked.git_cmd))
    if pr is None:
        specs = derive_pr_specs(stacked.config, stacked.read_stack())
        if specs:
            pr = github.find_pr(specs[-1].branch_name)
    if pr is None:
        raise ForgeNotFoundError("No open pull request for the current branch",
                                 hint="Pass one with --pr NUMBER")
    return pr.number


@cli.command(name="review", help="Show review feedback for a pull request")
@click.option('--pr', 'pr_number', type=int, help="Pull request number (default: the current stack's)")
@click.option('--list', 'list_only', is_flag=True, help="List feedback (the default)")
@click.option('--prompt', 'prompt_index', type=click.IntRange(min=1),
              help="Print an LLM prompt for feedback item N")
@common_options
def review(pr_number: Optional[int], list_only: bool, prompt_index: Optional[int]) -> None:
    stacked = setup_stacked_pr()
    if pr_number is None:
        pr_number = find_review_pr(stacked)
    click.echo(f"\n  Fetching reviews for PR #{pr_number}...\n", err=True)
    summary = stacked.github.get_review_summary(pr_number)

    if prompt_index is None or list_only:
        click.echo(render_feedback_list(summary))
        if prompt_index is None:
            return

    items = feedback_items(summary)
    if prompt_index > len(items):
        raise ZtkError(f"PR #{pr_number} has {len(items)} feedback item(s), no item {prompt_index}")
    click.echo(format_prompt(items[prompt_index - 1], summary))


# Command aliases
cli.add_alias('s', 'status')
cli.add_alias('st', 'status')
cli.add_alias('u', 'update')
cli.add_alias('up', 'update')
cli.add_alias('ab', 'absorb')
cli.add_alias('r', 'review')
cli.add_alias('rv', 'review')
cli.add_alias('feedback', 'review')


def main() -> None:
    """Main entry point."""
    cli(obj={})

if __name__ == "__main__":
    main()
