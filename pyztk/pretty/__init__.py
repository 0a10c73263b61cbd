"""Pretty formatting utilities for CLI output."""

import shutil
import sys
from typing import IO, Dict, List, Optional, TYPE_CHECKING

import click

if TYPE_CHECKING:
    from ..absorb import AbsorbPlan
    from ..spr.merge import MergePRInfo
    from ..stack import Stack

CURRENT = "◉"
OTHER = "◯"
CHECK = "✓"
CROSS = "✗"
PENDING = "⏳"
WARNING = "⚠"
ARROW = "←"
PIPE = "│"

def get_term_width() -> int:
    """Get terminal width, default to 80 if can't detect."""
    try:
        return shutil.get_terminal_size().columns
    except (OSError, ValueError):
        return 80


def header(text: str, use_emoji: bool = True) -> str:
    """Create a header with optional emoji."""
    width = get_term_width()

    h_line = "─" * (width - 2)
    v_line = "│"
    emoji = "🎯 " if use_emoji else ""

    result = [
        f"┌{h_line}┐",
        f"{v_line} {emoji}{text}{' ' * max(width - len(text) - len(emoji) - 3, 0)}{v_line}",
        f"└{h_line}┘"
    ]

    return "\n".join(result)


def print_header(text: str, use_emoji: bool = True, file: Optional[IO[str]] = None) -> None:
    """Print a header to file (default stdout)."""
    if file is None:
        file = sys.stdout
    click.echo(header(text, use_emoji), file=file)


def dim(text: str) -> str:
    return click.style(text, dim=True)


def bold(text: str) -> str:
    return click.style(text, bold=True)


def plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def print_error(message: str, hint: Optional[str] = None) -> None:
    click.echo(f"{click.style('error:', fg='red')} {message}", err=True)
    if hint:
        click.echo(f"  {hint}", err=True)


def print_success(message: str) -> None:
    click.echo(f"{click.style(CHECK, fg='green')} {message}")


def render_stack(stack: "Stack", pr_numbers: Optional[Dict[str, int]] = None) -> str:
    """Stack graph, newest commit on top and trunk at the bottom."""
    if stack.is_empty():
        return f"No commits ahead of {stack.base_branch}"

    lines = [
        "",
        f"  {bold('Stack:')} {stack.head_branch}  "
        f"({plural(len(stack), 'commit')} ahead of {stack.base_branch})",
        "",
    ]
    last = len(stack.commits) - 1
    for i in range(last, -1, -1):
        commit = stack.commits[i]
        is_current = i == last
        icon = CURRENT if is_current else OTHER
        marker = dim(f" {ARROW} you are here") if is_current else ""
        pr = ""
        if pr_numbers and commit.commit_hash in pr_numbers:
            pr = f"  {click.style(f'#{pr_numbers[commit.commit_hash]}', fg='blue')}"
        if commit.wip:
            title = f"{click.style(icon, fg='yellow')} {commit.title}  {click.style('[WIP]', fg='yellow')}"
        else:
            title = f"{click.style(icon, bold=is_current)} {commit.title}"
        lines.append(f"  {title}{pr}{marker}")
        lines.append(f"  {PIPE}   {dim(commit.short_hash)}")
        lines.append(f"  {PIPE}")
    lines.append(f"  {dim(OTHER)} {stack.base_branch}")
    lines.append("")

    summary = f"  Summary: {plural(len(stack), 'commit')}"
    wip = stack.wip_count()
    if wip:
        summary += f", {click.style(f'{wip} WIP', fg='yellow')}"
    lines.append(summary)
    return "\n".join(lines)


def render_absorb_plan(plan: "AbsorbPlan") -> str:
    lines = []
    for target in plan.targets:
        commit = target.commit
        lines.append(f"  {click.style(commit.short_hash, fg='yellow')} {commit.title}  "
                     f"({plural(target.hunk_count, 'hunk')})")
        for path in target.files:
            lines.append(f"      {dim(path)}")
    if plan.unabsorbable:
        lines.append("")
        lines.append(f"  {click.style(WARNING, fg='yellow')} {plural(plan.unabsorbable_count, 'hunk')} left staged:")
        for item in plan.unabsorbable:
            hunk = item.hunk
            lines.append(f"      {hunk.file_path}:{hunk.old_start}  {dim(item.reason)}")
    lines.append("")
    lines.append(f"  {plural(plan.hunk_count, 'hunk')} into {plural(plan.commit_count, 'commit')}, "
                 f"{plan.unabsorbable_count} unabsorbable")
    return "\n".join(lines)


def render_merge_report(infos: List["MergePRInfo"], prefix_len: int) -> str:
    """Bottom-up mergeability table, newest on top like the stack graph."""
    lines = []
    for i in range(len(infos) - 1, -1, -1):
        info = infos[i]
        number = f"#{info.pr_number}" if info.pr_number is not None else "--"
        if i < prefix_len:
            icon = click.style(CHECK, fg='green')
        elif info.mergeable:
            # Mergeable on its own but sits above a blocked PR
            icon = dim(PENDING)
        else:
            icon = click.style(CROSS, fg='red')
        reason = dim(f"  ({info.reason})") if info.reason else ""
        lines.append(f"  {icon} {number:>6} {info.title}{reason}")
    return "\n".join(lines)
