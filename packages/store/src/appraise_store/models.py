"""Commit and diff data models.

Decoupled from appraise_core so a repository backend can be used (and
tested) without any knowledge of review records.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

_HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


@dataclass
class CommitDetails:
    author: str
    author_email: str
    tree: str
    time: str
    parents: list[str] = field(default_factory=list)
    summary: str = ""

    @property
    def author_time(self) -> str:
        return self.time


class DiffOp(Enum):
    """Line operation inside a diff fragment; the value is its marker character."""

    CONTEXT = " "
    ADD = "+"
    DELETE = "-"

    def __str__(self) -> str:
        return self.value


@dataclass
class DiffLine:
    op: DiffOp
    line: str


@dataclass
class DiffFragment:
    old_position: int
    old_lines: int
    new_position: int
    new_lines: int
    lines: list[DiffLine] = field(default_factory=list)


@dataclass
class FileDiff:
    old_name: str
    new_name: str
    fragments: list[DiffFragment] = field(default_factory=list)


def _strip_prefix(name: str) -> str:
    name = name.split("\t", 1)[0]
    if name == "/dev/null":
        return ""
    if name.startswith(("a/", "b/")):
        return name[2:]
    return name


def parse_diff(text: str) -> list[FileDiff]:
    """Parse `git diff` style unified output into per-file fragments.

    Hunk headers look like:
        @@ -<old_start>[,<old_count>] +<new_start>[,<new_count>] @@
    An omitted count means 1.
    """
    files: list[FileDiff] = []
    current: FileDiff | None = None
    fragment: DiffFragment | None = None

    for raw in text.splitlines(keepends=True):
        line = raw.rstrip("\n")
        if line.startswith("diff --git "):
            names = line[len("diff --git ") :].split(" ")
            old_name = _strip_prefix(names[0]) if names else ""
            new_name = _strip_prefix(names[-1]) if len(names) > 1 else old_name
            current = FileDiff(old_name=old_name, new_name=new_name)
            files.append(current)
            fragment = None
            continue
        if fragment is None and line.startswith("--- "):
            if current is None:
                current = FileDiff(old_name="", new_name="")
                files.append(current)
            current.old_name = _strip_prefix(line[4:])
            continue
        if fragment is None and line.startswith("+++ ") and current is not None:
            current.new_name = _strip_prefix(line[4:])
            continue

        match = _HUNK_HEADER.match(line)
        if match and current is not None:
            old_start, old_count, new_start, new_count = match.groups()
            fragment = DiffFragment(
                old_position=int(old_start),
                old_lines=int(old_count) if old_count is not None else 1,
                new_position=int(new_start),
                new_lines=int(new_count) if new_count is not None else 1,
            )
            current.fragments.append(fragment)
            continue

        if fragment is None:
            # Extended header lines (index, mode, rename, similarity).
            continue
        if line.startswith("\\"):
            # "\ No newline at end of file"
            continue
        op = {" ": DiffOp.CONTEXT, "+": DiffOp.ADD, "-": DiffOp.DELETE}.get(line[:1])
        if op is None:
            if line == "":
                op = DiffOp.CONTEXT
            else:
                fragment = None
                continue
        fragment.lines.append(DiffLine(op=op, line=raw[1:]))

    return files
