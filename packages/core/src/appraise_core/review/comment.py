"""Review comments, stored one JSON object per line under the discuss notes ref.

A comment never changes once written. Replies point at their parent by hash
(`parent`); an edit is a new comment pointing at the version it replaces
(`original`). Identity is the SHA-1 of the serialized record, so the
serialization below is part of the on-disk format.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Iterable

from appraise_core.errors import LocationError, ParseError
from appraise_core.review.encoding import get_int, get_optional_bool, get_str, load_object, marshal

if TYPE_CHECKING:
    from appraise_store.base import BaseRepo

logger = logging.getLogger(__name__)

REF = "refs/notes/devtools/discuss"

# Comments with any other version were written by a newer client and are
# skipped by parse_all_valid.
FORMAT_VERSION = 0

_TIMESTAMP_WIDTH = 10


def _parse_range_part(part: str) -> tuple[int, int]:
    pieces = part.split("+")
    if len(pieces) > 2:
        raise ValueError(f"Invalid line/column {part!r}: more than one '+'")
    if not all(piece.isdigit() for piece in pieces):
        raise ValueError(f"Invalid line/column {part!r}: not a number")
    line = int(pieces[0])
    column = int(pieces[1]) if len(pieces) == 2 else 0
    if line == 0 and column > 0:
        raise ValueError(f"Invalid line/column {part!r}: column given for line 0")
    return line, column


@dataclass
class Range:
    """Line/column span inside a file. Lines and columns are 1-based; 0 means unset."""

    start_line: int = 0
    start_column: int = 0
    end_line: int = 0
    end_column: int = 0

    @classmethod
    def parse(cls, text: str) -> Range:
        """Parse the command-line syntax: "L", "L+C", "L:L" or "L+C:L+C"."""
        if text == "":
            return cls()
        parts = text.split(":")
        if len(parts) > 2:
            raise ValueError(f"Invalid range {text!r}: more than one ':'")
        start_line, start_column = _parse_range_part(parts[0])
        end_line, end_column = _parse_range_part(parts[1]) if len(parts) == 2 else (0, 0)
        if end_line and (start_line, start_column) > (end_line, end_column or start_column):
            raise ValueError(f"Invalid range {text!r}: start is after end")
        return cls(start_line, start_column, end_line, end_column)

    def __str__(self) -> str:
        if self.start_line == 0:
            return ""
        text = str(self.start_line)
        if self.start_column:
            text += f"+{self.start_column}"
        if self.end_line:
            text += f":{self.end_line}"
            if self.end_column:
                text += f"+{self.end_column}"
        return text

    def to_dict(self) -> dict:
        data: dict = {"startLine": self.start_line}
        if self.start_column:
            data["startColumn"] = self.start_column
        if self.end_line:
            data["endLine"] = self.end_line
        if self.end_column:
            data["endColumn"] = self.end_column
        return data

    @classmethod
    def from_dict(cls, data: dict) -> Range:
        return cls(
            start_line=get_int(data, "startLine"),
            start_column=get_int(data, "startColumn"),
            end_line=get_int(data, "endLine"),
            end_column=get_int(data, "endColumn"),
        )


@dataclass
class Location:
    """Where a comment applies.

    No path means the commit message; no range means the whole file (or
    message).
    """

    commit: str = ""
    path: str = ""
    range: Range | None = None

    def check(self, repo: BaseRepo) -> None:
        """Raise LocationError if the range falls outside the file at commit.

        Repository errors (unknown commit, missing file) propagate unchanged.
        """
        if not self.path or self.range is None or self.range.start_line == 0:
            return
        contents = repo.show(self.commit or "HEAD", self.path)
        lines = contents.split("\n")
        r = self.range
        for line, column in ((r.start_line, r.start_column), (r.end_line, r.end_column)):
            if line > len(lines):
                raise LocationError(f"Line {line} is past the end of {self.path} ({len(lines)} lines)")
            if line and column > len(lines[line - 1]):
                raise LocationError(f"Column {column} is past the end of line {line} in {self.path}")

    def to_dict(self) -> dict:
        data: dict = {}
        if self.commit:
            data["commit"] = self.commit
        if self.path:
            data["path"] = self.path
        if self.range is not None:
            data["range"] = self.range.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> Location:
        raw_range = data.get("range")
        if raw_range is not None and not isinstance(raw_range, dict):
            raise ParseError("Field 'range' must be an object")
        return cls(
            commit=get_str(data, "commit"),
            path=get_str(data, "path"),
            range=Range.from_dict(raw_range) if raw_range is not None else None,
        )


@dataclass
class Comment:
    timestamp: str = ""
    author: str = ""
    original: str = ""
    parent: str = ""
    location: Location | None = None
    description: str = ""
    resolved: bool | None = None
    version: int = FORMAT_VERSION

    @classmethod
    def new(cls, author: str, description: str) -> Comment:
        """Return a fresh comment. The caller stamps the timestamp before writing."""
        return cls(author=author, description=description)

    def to_dict(self) -> dict:
        data: dict = {}
        if self.version:
            data["v"] = self.version
        if self.timestamp:
            data["timestamp"] = self.timestamp
        if self.author:
            data["author"] = self.author
        if self.original:
            data["original"] = self.original
        if self.parent:
            data["parent"] = self.parent
        if self.location is not None:
            data["location"] = self.location.to_dict()
        if self.description:
            data["description"] = self.description
        if self.resolved is not None:
            data["resolved"] = self.resolved
        return data

    def write(self) -> str:
        return marshal(self.to_dict())

    def hash(self) -> str:
        """SHA-1 of the serialized comment with its timestamp zero-padded.

        Padding makes "1" and "0000000001" the same comment.
        """
        padded = replace(self, timestamp=self.timestamp.rjust(_TIMESTAMP_WIDTH, "0"))
        return hashlib.sha1(padded.write().encode("utf-8")).hexdigest()


def parse(note: str) -> Comment:
    """Decode a single note line. Any schema version is accepted here."""
    data = load_object(note)
    raw_location = data.get("location")
    if raw_location is not None and not isinstance(raw_location, dict):
        raise ParseError("Field 'location' must be an object")
    return Comment(
        timestamp=get_str(data, "timestamp"),
        author=get_str(data, "author"),
        original=get_str(data, "original"),
        parent=get_str(data, "parent"),
        location=Location.from_dict(raw_location) if raw_location is not None else None,
        description=get_str(data, "description"),
        resolved=get_optional_bool(data, "resolved"),
        version=get_int(data, "v"),
    )


def parse_all_valid(notes: Iterable[str]) -> list[Comment]:
    """Decode every note that is a well-formed comment in the current format.

    Notes that fail to parse, or carry another schema version, are dropped.
    """
    comments = []
    for note in notes:
        try:
            comment = parse(note)
        except ParseError as e:
            logger.debug("Skipping unparseable comment note: %s", e)
            continue
        if comment.version != FORMAT_VERSION:
            logger.debug("Skipping comment with format version %d", comment.version)
            continue
        comments.append(comment)
    return comments
