"""Plain-text rendering of reviews, comment threads and annotated diffs.

Review text is user-supplied, so everything goes through Console.out: no
markup interpretation, no highlighting and no re-wrapping beyond our own
reflow of comment descriptions.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from rich.console import Console

from appraise_core.review.resolution import Resolution
from appraise_core.review.threads import get_comments_json
from appraise_core.utils.reflow import reflow
from appraise_store.models import DiffOp

if TYPE_CHECKING:
    from appraise_core.review.summary import Review, Summary
    from appraise_core.review.threads import CommentThread
    from appraise_store.base import BaseRepo

logger = logging.getLogger(__name__)

DEFAULT_REFLOW_WIDTH = 80
DEFAULT_CONTEXT_LINES = 5

_THREAD_STATUS = {
    Resolution.ACCEPTED: "lgtm",
    Resolution.REJECTED: "needs work",
    Resolution.UNDETERMINED: "fyi",
}


def get_status_string(summary: Summary) -> str:
    """One word combining a review's resolution with whether it was submitted."""
    resolved = summary.resolved
    if resolved is Resolution.UNDETERMINED:
        return "tbr" if summary.submitted else "pending"
    if resolved is Resolution.ACCEPTED:
        return "submitted" if summary.submitted else "accepted"
    if summary.submitted:
        return "danger"
    if summary.is_abandoned():
        return "abandon"
    return "rejected"


def reformat_timestamp(timestamp: str) -> str:
    """Turn "1234567890" into "Fri Feb 13 23:31:30 UTC 2009". Anything else is returned as is."""
    try:
        t = datetime.fromtimestamp(int(timestamp), tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return timestamp
    return f"{t:%a %b} {t.day:>2} {t:%H:%M:%S} UTC {t.year}"


def separate_comments(
    threads: list[CommentThread],
) -> tuple[dict[int, list[CommentThread]], dict[str, dict[int, list[CommentThread]]]]:
    """Bucket threads by the line they should be displayed under.

    Returns (commit_threads, line_threads): commit-message threads keyed by
    line, and file threads keyed by path then line. Line 0 means the whole
    message or file. A range is keyed by its last line so the comment shows
    directly below the quoted text.
    """
    commit_threads: dict[int, list[CommentThread]] = {}
    line_threads: dict[str, dict[int, list[CommentThread]]] = {}
    for thread in threads:
        location = thread.comment.location
        line = 0
        if location is not None and location.range is not None:
            line = max(location.range.start_line, location.range.end_line)
        if location is None or not location.path:
            commit_threads.setdefault(line, []).append(thread)
        else:
            line_threads.setdefault(location.path, {}).setdefault(line, []).append(thread)
    return commit_threads, line_threads


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


class ReviewPrinter:
    """Writes review output to a rich Console.

    The CLI uses the terminal console; the web front end hands in a console
    recording into a buffer.
    """

    def __init__(
        self,
        console: Console | None = None,
        reflow_width: int = DEFAULT_REFLOW_WIDTH,
        context_lines: int = DEFAULT_CONTEXT_LINES,
    ):
        self.console = console or Console()
        self.reflow_width = reflow_width
        self.context_lines = context_lines

    def _out(self, text: str = "") -> None:
        self.console.out(text, highlight=False)

    # ------------------------------------------------------------------
    # Review lists and details
    # ------------------------------------------------------------------

    def print_summary(self, summary: Summary) -> None:
        description = summary.request.description.replace("\n", "\n  ")
        self._out(f"[{get_status_string(summary)}] {summary.revision[:12]}\n  {description}")

    def print_summaries(self, summaries: list[Summary], list_all: bool) -> None:
        if list_all:
            self._out(f"Loaded {len(summaries)} reviews:")
        else:
            self._out(f"Loaded {len(summaries)} open reviews:")
        for summary in summaries:
            self.print_summary(summary)

    def print_summaries_json(self, summaries: list[Summary]) -> None:
        self._out(json.dumps([s.to_dict() for s in summaries], indent=2, ensure_ascii=False))

    def print_details(self, review: Review) -> None:
        """Summary line, refs, people, build and analysis status, then every thread."""
        request = review.request
        self.print_summary(review.summary)
        self._out(
            f"  {_quote(request.review_ref)} -> {_quote(request.target_ref)}\n"
            f"  reviewers: {_quote(', '.join(request.reviewers))}\n"
            f"  requester: {_quote(request.requester)}\n"
            f"  build status: {review.get_build_status_message()}"
        )
        self._out(f"  analyses: {review.get_analyses_message()}")
        self._out(f"  comments ({len(review.comments)} threads):")
        self._print_threads(review.repo, review.comments, "    ")

    def print_comments(self, repo: BaseRepo, threads: list[CommentThread]) -> None:
        self._out(f"Loaded {len(threads)} comment threads:")
        self._print_threads(repo, threads, "  ")

    def print_json(self, review: Review) -> None:
        self._out(review.get_json())

    def print_comments_json(self, threads: list[CommentThread]) -> None:
        self._out(get_comments_json(threads))

    def print_diff(self, review: Review, *diff_args: str) -> None:
        self._out(review.get_diff(*diff_args))

    # ------------------------------------------------------------------
    # Threads
    # ------------------------------------------------------------------

    def _print_threads(self, repo: BaseRepo, threads: list[CommentThread], indent: str) -> None:
        for thread in threads:
            self.show_thread(repo, thread, indent)

    def show_thread(self, repo: BaseRepo, thread: CommentThread, indent: str) -> None:
        """Print a thread, quoting the lines it refers to first.

        Raises LocationError when the comment points past the end of its
        file; repository errors propagate.
        """
        location = thread.comment.location
        if location is not None and location.path and location.range is not None and location.range.start_line > 0:
            contents = repo.show(location.commit or "HEAD", location.path)
            lines = contents.split("\n")
            location.check(repo)
            first = location.range.start_line
            if first <= len(lines):
                last = location.range.end_line or first
                last = min(last, len(lines))
                first = min(first, last)
                if first == last:
                    first = max(1, last - self.context_lines)
                self._out(f"{indent}{_quote(location.path)}@{location.commit[:12]}")
                self._out(indent + "|" + ("\n" + indent + "|").join(lines[first - 1 : last]))
        self.show_sub_thread(thread, indent)

    def show_sub_thread(self, thread: CommentThread, indent: str) -> None:
        comment = thread.comment
        header = (
            f"{indent}comment: {thread.hash}\n"
            f"author: {comment.author}\n"
            f"time:   {reformat_timestamp(comment.timestamp)}\n"
            f"status: {_THREAD_STATUS[thread.resolved]}"
        )
        indent += "  "
        self._out(header.replace("\n", "\n" + indent))
        self._out(reflow(comment.description, indent, self.reflow_width))
        for child in thread.children:
            self.show_sub_thread(child, indent)

    # ------------------------------------------------------------------
    # Inline diff
    # ------------------------------------------------------------------

    def print_inline_comments(self, review: Review, *diff_args: str) -> None:
        """Print the reviewed commit's message and diff with threads under the lines they discuss.

        All lookups happen before the first line is written, so a failing
        repository call leaves no partial output.
        """
        repo = review.repo
        head_commit = repo.get_commit_hash(review.revision)
        details = repo.get_commit_details(head_commit)
        message = repo.get_commit_message(head_commit)
        files = repo.parsed_diff1(head_commit, *diff_args)

        commit_threads, line_threads = separate_comments(review.comments)

        self._out(f"commit: {head_commit}\nauthor: {details.author}\ntime:   {details.author_time}")
        for thread in commit_threads.get(0, []):
            self.show_sub_thread(thread, "")
        for number, line in enumerate(message.split("\n"), start=1):
            self._out(line)
            for thread in commit_threads.get(number, []):
                self.show_sub_thread(thread, "")

        for file in files:
            file_threads = line_threads.get(file.new_name, {})
            self._out(f"{_quote(file.new_name)}@{head_commit[:12]}")
            for thread in file_threads.get(0, []):
                self.show_sub_thread(thread, "| ")
            prev_line = 1
            for fragment in file.fragments:
                lhs = fragment.old_position
                rhs = fragment.new_position
                digits = len(str(max(lhs + fragment.old_lines, rhs + fragment.new_lines)))
                if rhs != prev_line:
                    self._out("...")
                for diff_line in fragment.lines:
                    if diff_line.op is DiffOp.CONTEXT:
                        columns = f"{lhs:0{digits}d} {rhs:0{digits}d}"
                        lhs += 1
                        rhs += 1
                    elif diff_line.op is DiffOp.ADD:
                        columns = f"{'':{digits}} {rhs:0{digits}d}"
                        rhs += 1
                    else:
                        columns = f"{lhs:0{digits}d} {'':{digits}}"
                        lhs += 1
                    text = diff_line.line.strip("\n")
                    self._out(f"{columns}{diff_line.op}{text}")
                    if diff_line.op is not DiffOp.DELETE:
                        thread_indent = " " * (2 * digits + 1) + "| "
                        for thread in file_threads.get(rhs - 1, []):
                            self.show_sub_thread(thread, thread_indent)
                    prev_line = rhs
