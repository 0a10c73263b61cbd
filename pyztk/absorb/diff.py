"""Hunk extraction from ``git diff --unified=0`` output."""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

_DIFF_HEADER_RE = re.compile(r"^diff --git a/(.*) b/(.*)$")
_HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
_RENAME_FROM_RE = re.compile(r"^rename from (.+)$")
_RENAME_TO_RE = re.compile(r"^rename to (.+)$")
_FILE_HEADER_RE = re.compile(r"^(?:--- (?:a/|/dev/null)|\+\+\+ (?:b/|/dev/null))")
_NO_NEWLINE = "\\ No newline at end of file"


@dataclass(frozen=True)
class Hunk:
    """One contiguous change region of a file.

    ``old_start``/``old_count`` address the file as it is in HEAD, which is
    the range blame is run over.
    """
    file_path: str
    old_path: str
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    added: Tuple[str, ...] = field(default=())
    removed: Tuple[str, ...] = field(default=())

    @property
    def is_pure_insertion(self) -> bool:
        return self.old_count == 0


class _HunkBuilder:
    def __init__(self, file_path: str, old_path: str, header: "re.Match[str]"):
        self.file_path = file_path
        self.old_path = old_path
        self.old_start = int(header.group(1))
        self.old_count = int(header.group(2)) if header.group(2) is not None else 1
        self.new_start = int(header.group(3))
        self.new_count = int(header.group(4)) if header.group(4) is not None else 1
        self.added: List[str] = []
        self.removed: List[str] = []

    def build(self) -> Hunk:
        return Hunk(self.file_path, self.old_path, self.old_start, self.old_count,
                    self.new_start, self.new_count, tuple(self.added), tuple(self.removed))


def parse_hunks(diff_text: str) -> List[Hunk]:
    """Split unified diff text into hunks, in diff order."""
    hunks: List[Hunk] = []
    current_file: Optional[str] = None
    old_file: Optional[str] = None
    current: Optional[_HunkBuilder] = None

    for line in diff_text.splitlines():
        m = _DIFF_HEADER_RE.match(line)
        if m:
            if current:
                hunks.append(current.build())
                current = None
            old_file, current_file = m.group(1), m.group(2)
            continue

        if current is None:
            # File sub-headers between "diff --git" and the first hunk
            rm = _RENAME_FROM_RE.match(line)
            if rm:
                old_file = rm.group(1)
                continue
            rt = _RENAME_TO_RE.match(line)
            if rt:
                current_file = rt.group(1)
                continue
            if _FILE_HEADER_RE.match(line):
                continue

        hm = _HUNK_HEADER_RE.match(line)
        if hm:
            if current:
                hunks.append(current.build())
            if current_file is None:
                current = None
                continue
            current = _HunkBuilder(current_file, old_file or current_file, hm)
            continue

        if current is None or line == _NO_NEWLINE:
            continue
        if line.startswith("+"):
            current.added.append(line[1:])
        elif line.startswith("-"):
            current.removed.append(line[1:])

    if current:
        hunks.append(current.build())
    return hunks
