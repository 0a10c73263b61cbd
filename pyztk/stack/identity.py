"""Stable id injection.

Every non-WIP commit needs a ``<trailer>: <uuid>`` line so its remote branch
name survives rebases. Commits missing one are rewritten in place, oldest
first, by replaying each onto the already rewritten base.

Precondition: only one engine invocation may run against a given working
tree at a time. Nothing here takes a lock.
"""

import re
import logging

from . import Stack, stack_merge_base
from ..typing import GitInterface, IdentityInjectionError, ZtkError
from ..config.models import ZtkConfig
from ..git import (
    abort_rebase, amend_commit_message, generate_stable_id, get_commit_message,
    rebase_onto, stash, stash_pop,
)

logger = logging.getLogger(__name__)

_trailer_line_re = re.compile(r'^[A-Za-z0-9][A-Za-z0-9-]*: ')


def add_trailer(message: str, key: str, token: str) -> str:
    """Append ``key: token`` to a commit message.

    Joins an existing trailer block when the last paragraph already is one.
    """
    message = message.rstrip()
    trailer = f"{key}: {token}"
    paragraphs = message.split("\n\n")
    if len(paragraphs) > 1:
        last = [line for line in paragraphs[-1].splitlines() if line.strip()]
        if last and all(_trailer_line_re.match(line) for line in last):
            return f"{message}\n{trailer}"
    return f"{message}\n\n{trailer}"


def _recover(git_cmd: GitInterface, head_branch: str, stashed: bool) -> None:
    abort_rebase(git_cmd)
    if git_cmd.run_cmd(["checkout", head_branch]) is None:
        logger.error(f"Could not return to {head_branch}")
    if stashed and git_cmd.run_cmd("stash pop") is None:
        logger.error("Could not restore stashed changes; run 'git stash pop' manually")


def ensure_stable_ids(config: ZtkConfig, git_cmd: GitInterface, stack: Stack) -> bool:
    """Give every non-WIP commit in the stack a stable id.

    Returns False when nothing needed to change. Returns True when history
    was rewritten, in which case every hash from the first rewritten commit
    upward is stale and the caller must re-read the stack.

    On any failure the head branch is checked out again, stashed changes are
    restored and IdentityInjectionError is raised.
    """
    missing = stack.missing_ids()
    if not missing:
        logger.debug("All commits carry stable ids")
        return False

    trailer = config.repo.id_trailer
    head = stack.head_branch
    logger.info(f"Adding stable ids to {len(missing)} commit(s) on {head}")

    stashed = False
    try:
        stashed = stash(git_cmd)
        new_base = stack_merge_base(config, git_cmd)
        parent = new_base
        rewriting = False

        for commit in stack.commits:
            needs_id = not commit.wip and not commit.stable_id
            if not rewriting and not needs_id:
                # Untouched prefix keeps its hashes
                parent = new_base = commit.commit_hash
                continue

            rebase_onto(git_cmd, new_base, parent, commit.commit_hash)
            if needs_id:
                token = generate_stable_id()
                message = get_commit_message(git_cmd, "HEAD")
                amend_commit_message(git_cmd, add_trailer(message, trailer, token))
                logger.info(f"  {commit.short_hash} '{commit.title}' -> {trailer}: {token}")
            rewriting = True
            parent = commit.commit_hash
            new_base = git_cmd.must_git("rev-parse HEAD").strip()

        git_cmd.must_git(["checkout", head])
        git_cmd.must_git(["reset", "--hard", new_base])
    except ZtkError as e:
        logger.error(f"Stable id injection failed: {e}")
        _recover(git_cmd, head, stashed)
        raise IdentityInjectionError(f"Failed to add stable ids: {e}",
                                     hint="The branch was restored; fix the problem and retry") from e

    if stashed:
        try:
            stash_pop(git_cmd)
        except ZtkError as e:
            raise IdentityInjectionError(
                f"Stable ids added but restoring local changes failed: {e}",
                hint="Your changes are still stashed; run 'git stash pop'") from e
    return True
