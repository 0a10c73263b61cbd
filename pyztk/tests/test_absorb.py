"""Tests for staged hunk attribution and fixup creation."""

from typing import Dict, List

import pytest

from pyztk.absorb import (
    AMBIGUOUS, FILE_SPLIT, OUTSIDE_STACK, PURE_INSERTION,
    attribute_hunk, execute_absorb, plan_absorb, plan_staged,
)
from pyztk.absorb.diff import Hunk, parse_hunks
from pyztk.git import BlameLine
from pyztk.stack import Stack
from pyztk.typing import AbsorbRebaseError, ZtkError
from pyztk.tests.utils import failed, make_commit, scripted_git, sha

C1 = make_commit('1', "Add main", stable_id="1111")
C2 = make_commit('2', "Add helpers", stable_id="2222")
STACK = Stack("main", "feature", [C1, C2])

FILE_GO_DIFF = """diff --git a/file.go b/file.go
index 1111111..2222222 100644
--- a/file.go
+++ b/file.go
@@ -10,3 +10,3 @@ func main() {
-a
-b
-c
+A
+B
+C
"""


def blamer(owners: Dict[str, List[str]]):
    """Blame every line of a path to owners[path], cycling through the list."""
    def blame(path: str, start: int, count: int) -> List[BlameLine]:
        shas = owners[path]
        return [BlameLine(shas[i % len(shas)], start + i) for i in range(count)]
    return blame


def hunk(path: str, old_start: int, old_count: int) -> Hunk:
    return Hunk(path, path, old_start, old_count, old_start, 1)


class TestParseHunks:
    def test_single_hunk(self) -> None:
        hunks = parse_hunks(FILE_GO_DIFF)
        assert len(hunks) == 1
        h = hunks[0]
        assert (h.file_path, h.old_start, h.old_count, h.new_start, h.new_count) == ("file.go", 10, 3, 10, 3)
        assert h.removed == ("a", "b", "c")
        assert h.added == ("A", "B", "C")

    def test_counts_default_to_one(self) -> None:
        hunks = parse_hunks("diff --git a/x b/x\n--- a/x\n+++ b/x\n@@ -5 +5 @@\n-old\n+new\n")
        assert (hunks[0].old_count, hunks[0].new_count) == (1, 1)

    def test_new_file_is_pure_insertion(self) -> None:
        diff = ("diff --git a/new.txt b/new.txt\nnew file mode 100644\n"
                "--- /dev/null\n+++ b/new.txt\n@@ -0,0 +1,2 @@\n+one\n+two\n")
        hunks = parse_hunks(diff)
        assert hunks[0].is_pure_insertion
        assert hunks[0].added == ("one", "two")

    def test_rename_keeps_old_path_for_blame(self) -> None:
        diff = ("diff --git a/old.py b/new.py\nsimilarity index 90%\nrename from old.py\n"
                "rename to new.py\n--- a/old.py\n+++ b/new.py\n@@ -5 +5 @@\n-x\n+y\n")
        h = parse_hunks(diff)[0]
        assert (h.file_path, h.old_path) == ("new.py", "old.py")

    def test_removed_line_that_looks_like_a_header(self) -> None:
        diff = "diff --git a/x b/x\n--- a/x\n+++ b/x\n@@ -1,2 +0,0 @@\n--- a/y\n-plain\n"
        assert parse_hunks(diff)[0].removed == ("-- a/y", "plain")

    def test_multiple_files_and_hunks(self) -> None:
        diff = (FILE_GO_DIFF
                + "@@ -40 +40,2 @@\n-x\n+y\n+z\n"
                + "diff --git a/b.go b/b.go\n--- a/b.go\n+++ b/b.go\n@@ -1 +1 @@\n-p\n+q\n"
                + "\\ No newline at end of file\n")
        hunks = parse_hunks(diff)
        assert [(h.file_path, h.old_start) for h in hunks] == [("file.go", 10), ("file.go", 40), ("b.go", 1)]
        assert hunks[2].added == ("q",)


class TestAttribute:
    def test_single_owner_in_stack(self) -> None:
        blame = [BlameLine(C1.commit_hash, 10), BlameLine(C1.commit_hash, 11)]
        assert attribute_hunk(hunk("f", 10, 2), blame, STACK) is C1

    def test_pure_insertion(self) -> None:
        assert attribute_hunk(hunk("f", 10, 0), [], STACK) == PURE_INSERTION

    def test_ambiguous(self) -> None:
        blame = [BlameLine(C1.commit_hash, 10), BlameLine(C2.commit_hash, 11)]
        assert attribute_hunk(hunk("f", 10, 2), blame, STACK) == AMBIGUOUS

    def test_outside_stack(self) -> None:
        assert attribute_hunk(hunk("f", 3, 1), [BlameLine(sha('9'), 3)], STACK) == OUTSIDE_STACK


class TestPlan:
    def test_one_hunk_owned_by_one_commit(self) -> None:
        plan = plan_absorb(STACK, parse_hunks(FILE_GO_DIFF), blamer({"file.go": [C1.commit_hash]}))

        assert len(plan.targets) == 1
        assert plan.targets[0].commit is C1
        assert plan.targets[0].hunk_count == 1
        assert plan.targets[0].files == ["file.go"]
        assert plan.unabsorbable == []

    def test_targets_follow_stack_order(self) -> None:
        hunks = [hunk("b.go", 1, 1), hunk("a.go", 1, 1), hunk("a.go", 9, 2)]
        blame = blamer({"a.go": [C1.commit_hash], "b.go": [C2.commit_hash]})

        plan = plan_absorb(STACK, hunks, blame)

        assert [t.commit for t in plan.targets] == [C1, C2]
        assert plan.hunk_count == 3
        assert plan.commit_count == 2

    def test_file_split_across_commits_is_not_absorbed(self) -> None:
        hunks = [hunk("a.go", 1, 1), hunk("a.go", 20, 1), hunk("b.go", 1, 1)]
        owners = {(1,): C1.commit_hash, (20,): C2.commit_hash}

        def blame(path: str, start: int, count: int) -> List[BlameLine]:
            owner = C2.commit_hash if path == "b.go" else owners[(start,)]
            return [BlameLine(owner, start)]

        plan = plan_absorb(STACK, hunks, blame)

        assert [t.commit for t in plan.targets] == [C2]
        assert [(u.hunk.old_start, u.reason) for u in plan.unabsorbable] == [(1, FILE_SPLIT), (20, FILE_SPLIT)]

    def test_insertion_keeps_its_file_staged(self) -> None:
        hunks = [hunk("a.go", 5, 0), hunk("a.go", 9, 1)]
        plan = plan_absorb(STACK, hunks, blamer({"a.go": [C1.commit_hash]}))

        assert plan.is_empty()
        assert [u.reason for u in plan.unabsorbable] == [PURE_INSERTION, FILE_SPLIT]

    def test_plan_staged_uses_cached_diff_and_blame(self) -> None:
        porcelain = "".join(f"{C1.commit_hash} {n} {n}\nfilename file.go\n\tline\n" for n in (10, 11, 12))
        git_cmd = scripted_git({"diff --cached": FILE_GO_DIFF, "blame": porcelain})

        plan = plan_staged(git_cmd, STACK)

        assert plan.targets[0].commit is C1
        assert "blame --line-porcelain -L 10,12 HEAD -- file.go" in git_cmd.commands


TREE = sha('e')


class TestExecute:
    @pytest.fixture(autouse=True)
    def always_stash(self, monkeypatch) -> None:
        monkeypatch.setattr("pyztk.absorb.stash", lambda git_cmd: True)

    def _plan(self):
        return plan_absorb(STACK, [hunk("a.go", 1, 1), hunk("b.go", 1, 1)],
                           blamer({"a.go": [C1.commit_hash], "b.go": [C2.commit_hash]}))

    def _git(self, **responses):
        return scripted_git({"merge-base": sha('0'), "write-tree": f"{TREE}\n", **responses})

    def test_fixups_stage_from_index_snapshot(self, config) -> None:
        git_cmd = self._git()

        result = execute_absorb(config, git_cmd, STACK, self._plan())

        assert result.fixups_created == 2
        assert result.rebased
        steps = [c for c in git_cmd.commands if c != "rev-parse --verify --quiet origin/main"]
        assert steps == [
            "merge-base origin/main HEAD",
            "write-tree",
            "reset -q", f"reset -q {TREE} -- a.go", f"commit --fixup={C1.commit_hash}",
            "reset -q", f"reset -q {TREE} -- b.go", f"commit --fixup={C2.commit_hash}",
            f"read-tree {TREE}",
            f"rebase -i --autosquash {sha('0')}",
            "stash pop --index",
        ]
        assert not any(c.startswith("add") for c in git_cmd.commands)
        args, kwargs = git_cmd.must_git.call_args_list[-2]
        assert args[0][:3] == ["rebase", "-i", "--autosquash"]
        assert kwargs["env"] == {"GIT_SEQUENCE_EDITOR": "true"}

    def test_failed_fixup_is_skipped(self, config) -> None:
        git_cmd = self._git(**{
            f"commit --fixup={C2.commit_hash}": failed("commit", "nothing to commit"),
        })

        result = execute_absorb(config, git_cmd, STACK, self._plan())

        assert result.fixups_created == 1
        assert result.failed == [C2]
        assert result.rebased
        assert git_cmd.commands.index(f"read-tree {TREE}") > git_cmd.commands.index(
            f"commit --fixup={C2.commit_hash}")

    def test_renamed_file_stages_both_paths(self, config) -> None:
        git_cmd = self._git()
        renamed = Hunk("new.go", "old.go", 3, 1, 3, 1)
        plan = plan_absorb(STACK, [renamed], blamer({"old.go": [C1.commit_hash]}))

        execute_absorb(config, git_cmd, STACK, plan)

        assert f"reset -q {TREE} -- new.go old.go" in git_cmd.commands

    def test_no_fixups_skips_rebase(self, config) -> None:
        git_cmd = self._git(commit=failed("commit"))

        result = execute_absorb(config, git_cmd, STACK, self._plan())

        assert result.fixups_created == 0
        assert not result.rebased
        assert git_cmd.commands[-1] == f"read-tree {TREE}"
        assert not any(c.startswith(("rebase", "stash")) for c in git_cmd.commands)

    def test_rebase_failure_raises(self, config) -> None:
        git_cmd = self._git(**{"rebase -i": failed("rebase -i", "CONFLICT")})

        with pytest.raises(AbsorbRebaseError) as exc_info:
            execute_absorb(config, git_cmd, STACK, self._plan())
        assert "rebase --continue" in exc_info.value.hint
        assert "git stash pop --index" in exc_info.value.hint
        assert "stash pop --index" not in git_cmd.commands

    def test_restore_failure_keeps_stash(self, config) -> None:
        git_cmd = self._git(**{"stash pop": failed("stash pop", "conflict")})

        with pytest.raises(ZtkError) as exc_info:
            execute_absorb(config, git_cmd, STACK, self._plan())
        assert "still stashed" in exc_info.value.hint

    def test_empty_plan_touches_nothing(self, config) -> None:
        git_cmd = scripted_git({})
        plan = plan_absorb(STACK, [], blamer({}))

        assert not execute_absorb(config, git_cmd, STACK, plan).rebased
        assert git_cmd.commands == []
