"""Absorb staged changes into the stack commits that own the touched lines.

A hunk is attributed by blaming the lines it replaces. Only a hunk whose
old lines all come from a single commit of the current stack is absorbed;
everything else is left staged for the user.

Precondition: only one engine invocation may run against a given working
tree at a time.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Union

from .diff import Hunk, parse_hunks
from ..typing import Commit, GitInterface, AbsorbRebaseError, ZtkError
from ..config.models import ZtkConfig
from ..git import (
    BlameLine, blame_range, restore_index, stage_from_tree, staged_diff, stash, stash_pop, write_index_tree,
)
from ..stack import Stack, stack_merge_base

logger = logging.getLogger(__name__)

PURE_INSERTION = "pure insertion"
AMBIGUOUS = "ambiguous"
OUTSIDE_STACK = "outside stack"
FILE_SPLIT = "file split across commits"

Blamer = Callable[[str, int, int], List[BlameLine]]


@dataclass
class UnabsorbableHunk:
    hunk: Hunk
    reason: str


@dataclass
class AbsorbTarget:
    """A stack commit and the staged hunks it will absorb."""
    commit: Commit
    hunks: List[Hunk] = field(default_factory=list)
    files: List[str] = field(default_factory=list)

    @property
    def hunk_count(self) -> int:
        return len(self.hunks)

    @property
    def paths(self) -> List[str]:
        """Index paths the fixup commits, rename sources included."""
        paths = list(self.files)
        for hunk in self.hunks:
            if hunk.old_path not in paths:
                paths.append(hunk.old_path)
        return paths

    def add(self, hunk: Hunk) -> None:
        self.hunks.append(hunk)
        if hunk.file_path not in self.files:
            self.files.append(hunk.file_path)


@dataclass
class AbsorbPlan:
    targets: List[AbsorbTarget] = field(default_factory=list)
    unabsorbable: List[UnabsorbableHunk] = field(default_factory=list)

    @property
    def hunk_count(self) -> int:
        return sum(t.hunk_count for t in self.targets)

    @property
    def commit_count(self) -> int:
        return len(self.targets)

    @property
    def unabsorbable_count(self) -> int:
        return len(self.unabsorbable)

    def is_empty(self) -> bool:
        return not self.targets


@dataclass
class AbsorbResult:
    fixups_created: int = 0
    failed: List[Commit] = field(default_factory=list)
    rebased: bool = False


def attribute_hunk(hunk: Hunk, blame: List[BlameLine], stack: Stack) -> Union[Commit, str]:
    """The stack commit owning a hunk, or the reason it has none."""
    if hunk.is_pure_insertion:
        return PURE_INSERTION
    shas = {line.commit_hash for line in blame}
    if len(shas) != 1:
        return AMBIGUOUS
    commit = stack.find_commit(shas.pop())
    if commit is None:
        return OUTSIDE_STACK
    return commit


def plan_absorb(stack: Stack, hunks: List[Hunk], blame: Blamer) -> AbsorbPlan:
    """Group hunks by owning commit.

    Fixups stage whole files, so a file is absorbed only when every one of
    its hunks resolves to the same commit. Otherwise all of its hunks are
    reported unabsorbable.
    """
    by_file: Dict[str, List[Hunk]] = OrderedDict()
    for hunk in hunks:
        by_file.setdefault(hunk.file_path, []).append(hunk)

    targets: Dict[str, AbsorbTarget] = {}
    plan = AbsorbPlan()
    for path, file_hunks in by_file.items():
        resolved = []
        for hunk in file_hunks:
            if hunk.is_pure_insertion:
                owner: Union[Commit, str] = PURE_INSERTION
            else:
                owner = attribute_hunk(hunk, blame(hunk.old_path, hunk.old_start, hunk.old_count), stack)
            resolved.append((hunk, owner))

        owners = {o.commit_hash if isinstance(o, Commit) else o for _, o in resolved}
        if len(owners) == 1 and isinstance(resolved[0][1], Commit):
            commit = resolved[0][1]
            target = targets.setdefault(commit.commit_hash, AbsorbTarget(commit))
            for hunk, _ in resolved:
                target.add(hunk)
            continue

        for hunk, owner in resolved:
            reason = owner if isinstance(owner, str) else FILE_SPLIT
            logger.debug(f"Unabsorbable hunk {path}:{hunk.old_start}: {reason}")
            plan.unabsorbable.append(UnabsorbableHunk(hunk, reason))

    plan.targets = [targets[c.commit_hash] for c in stack.commits if c.commit_hash in targets]
    return plan


def git_blamer(git_cmd: GitInterface, rev: str = "HEAD") -> Blamer:
    def blame(path: str, start: int, count: int) -> List[BlameLine]:
        return blame_range(git_cmd, path, start, count, rev)
    return blame


def plan_staged(git_cmd: GitInterface, stack: Stack) -> AbsorbPlan:
    """Plan absorption of everything currently staged."""
    hunks = parse_hunks(staged_diff(git_cmd))
    logger.info(f"Staged diff has {len(hunks)} hunk(s)")
    return plan_absorb(stack, hunks, git_blamer(git_cmd))


def execute_absorb(config: ZtkConfig, git_cmd: GitInterface, stack: Stack,
                   plan: AbsorbPlan) -> AbsorbResult:
    """Create one fixup per target, then autosquash them into place.

    Each fixup commits only the staged content of its target's files,
    taken from a snapshot of the index; the working tree is never read, so
    unstaged edits stay where they are. Unabsorbed files are staged again
    afterwards. A target whose fixup cannot be created is logged and
    skipped. A failed autosquash rebase raises AbsorbRebaseError and leaves
    the repository mid-rebase for the user to resolve.
    """
    result = AbsorbResult()
    if plan.is_empty():
        return result

    base = stack_merge_base(config, git_cmd)
    staged = write_index_tree(git_cmd)

    for target in plan.targets:
        commit = target.commit
        try:
            git_cmd.must_git("reset -q")
            stage_from_tree(git_cmd, staged, target.paths)
            git_cmd.must_git(["commit", f"--fixup={commit.commit_hash}"])
            result.fixups_created += 1
            logger.info(f"Created fixup for {commit.short_hash} ({target.hunk_count} hunk(s))")
        except ZtkError as e:
            logger.error(f"Failed to create fixup for {commit.short_hash}: {e}")
            result.failed.append(commit)

    # Absorbed files now match HEAD, so this only re-stages what is left
    restore_index(git_cmd, staged)

    if result.fixups_created == 0:
        return result

    stashed = stash(git_cmd)
    try:
        git_cmd.must_git(["rebase", "-i", "--autosquash", base],
                         env={"GIT_SEQUENCE_EDITOR": "true"})
    except ZtkError as e:
        hint = "Resolve conflicts, then run 'git rebase --continue'"
        if stashed:
            hint += ", then 'git stash pop --index' to restore your other changes"
        raise AbsorbRebaseError(f"Autosquash rebase failed: {e}", hint=hint) from e
    result.rebased = True

    if stashed:
        try:
            stash_pop(git_cmd, index=True)
        except ZtkError as e:
            raise ZtkError(f"Could not restore remaining changes: {e}",
                           hint="They are still stashed; run 'git stash pop --index'") from e
    return result
