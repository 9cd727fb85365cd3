"""Reviews as read from the notes refs.

A Summary is everything needed to list a review: the request history,
threaded comments and the derived resolution and submission state. A Review
adds the CI and analysis reports for the reviewed head. Both are rebuilt from
the notes on every call; nothing here is cached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from appraise_core.errors import AmbiguousReview, ParseError, ReviewNotFound
from appraise_core.review import analyses, ci, comment, request, revision
from appraise_core.review.encoding import pretty
from appraise_core.review.resolution import Resolution, update_threads_status
from appraise_core.review.threads import CommentThread, build_comment_threads

if TYPE_CHECKING:
    from appraise_store.base import BaseRepo

logger = logging.getLogger(__name__)

_TIMESTAMP_WIDTH = 10


def _request_time(r: request.Request) -> str:
    return r.timestamp.rjust(_TIMESTAMP_WIDTH, "0")


@dataclass
class Summary:
    repo: BaseRepo
    revision: str
    # Latest amendment.
    request: request.Request
    # Full amendment history, oldest first.
    all_requests: list[request.Request] = field(default_factory=list)
    comments: list[CommentThread] = field(default_factory=list)
    resolved: Resolution = Resolution.UNDETERMINED
    submitted: bool = False

    def is_abandoned(self) -> bool:
        return self.request.target_ref == ""

    def is_open(self) -> bool:
        return not self.submitted and not self.is_abandoned()

    def starting_commit(self) -> str:
        """The anchor commit, or the commit it was rebased to."""
        return self.request.alias or self.revision

    def details(self) -> Review:
        """Load the CI and analysis reports for the reviewed head."""
        head = revision.get_head_commit(self)
        return Review(
            summary=self,
            reports=ci.parse_all_valid(self.repo.get_notes(ci.REF, head)),
            analyses=analyses.parse_all_valid(self.repo.get_notes(analyses.REF, head)),
        )

    def to_dict(self) -> dict:
        data: dict = {"revision": self.revision, "request": self.request.to_dict()}
        if self.comments:
            data["comments"] = [thread.to_dict() for thread in self.comments]
        if self.resolved.resolved is not None:
            data["resolved"] = self.resolved.resolved
        data["submitted"] = self.submitted
        return data

    def get_json(self) -> str:
        return pretty(self.to_dict())


@dataclass
class Review:
    summary: Summary
    reports: list[ci.Report] = field(default_factory=list)
    analyses: list[analyses.Report] = field(default_factory=list)

    @property
    def repo(self) -> BaseRepo:
        return self.summary.repo

    @property
    def revision(self) -> str:
        return self.summary.revision

    @property
    def request(self) -> request.Request:
        return self.summary.request

    @property
    def comments(self) -> list[CommentThread]:
        return self.summary.comments

    def get_build_status_message(self) -> str:
        try:
            latest = ci.get_latest_ci_report(self.reports)
        except ParseError as e:
            return f"unknown: {e}"
        if latest is None:
            return "unknown"
        return f'{latest.status} ("{latest.url}")'

    def get_analyses_message(self) -> str:
        try:
            latest = analyses.get_latest_analyses_report(self.analyses)
        except ParseError as e:
            return str(e)
        if latest is None:
            return "No analyses available"
        if latest.status in (analyses.STATUS_LOOKS_GOOD_TO_ME, analyses.STATUS_FOR_YOUR_INFORMATION):
            return latest.status
        return f'{latest.status or "unknown"} ("{latest.url}")'

    def to_dict(self) -> dict:
        data = self.summary.to_dict()
        if self.reports:
            data["reports"] = [r.to_dict() for r in self.reports]
        if self.analyses:
            data["analyses"] = [a.to_dict() for a in self.analyses]
        return data

    def get_json(self) -> str:
        return pretty(self.to_dict())

    def add_comment(self, c: comment.Comment) -> None:
        self.repo.append_note(comment.REF, self.revision, c.write())

    def get_head_commit(self) -> str:
        return revision.get_head_commit(self.summary)

    def get_base_commit(self) -> str:
        return revision.get_base_commit(self.summary)

    def list_commits(self) -> list[str]:
        return revision.list_commits(self.summary)

    def rebase(self, archive_previous: bool = True) -> None:
        revision.rebase(self.summary, archive_previous)

    def get_diff(self, *diff_args: str) -> str:
        return self.repo.diff(self.get_base_commit(), self.get_head_commit(), *diff_args)


def _threads_from_notes(notes: list[str]) -> list[CommentThread]:
    comments_by_hash = {}
    for c in comment.parse_all_valid(notes):
        comments_by_hash.setdefault(c.hash(), c)
    return build_comment_threads(comments_by_hash)


def _build_summary(repo: BaseRepo, rev: str, requests: list[request.Request], threads: list[CommentThread]) -> Summary:
    all_requests = sorted(requests, key=_request_time)
    summary = Summary(
        repo=repo,
        revision=rev,
        request=all_requests[-1],
        all_requests=all_requests,
        comments=threads,
        resolved=update_threads_status(threads),
    )
    if not summary.is_abandoned():
        summary.submitted = repo.is_ancestor(summary.starting_commit(), summary.request.target_ref)
    return summary


def get_comments(repo: BaseRepo, rev: str) -> list[CommentThread]:
    """Return the comment threads attached to a commit."""
    return _threads_from_notes(repo.get_notes(comment.REF, rev))


def get_summary_via_refs(repo: BaseRepo, requests_ref: str, comments_ref: str, rev: str) -> Summary:
    repo.verify_commit(rev)
    requests = request.parse_all_valid(repo.get_notes(requests_ref, rev))
    if not requests:
        raise ReviewNotFound(f"No review requests found for {rev}")
    threads = _threads_from_notes(repo.get_notes(comments_ref, rev))
    return _build_summary(repo, rev, requests, threads)


def get_summary(repo: BaseRepo, rev: str) -> Summary:
    return get_summary_via_refs(repo, request.REF, comment.REF, rev)


def get(repo: BaseRepo, rev: str) -> Review:
    """Return the full review anchored at rev (a commit hash or anything that resolves to one)."""
    return get_summary(repo, repo.get_commit_hash(rev)).details()


def list_all(repo: BaseRepo) -> list[Summary]:
    """Return every review in the repository, newest request first.

    Revisions whose request notes are all unparseable are skipped.
    """
    all_comments = repo.get_all_notes(comment.REF)
    summaries = []
    for rev, notes in repo.get_all_notes(request.REF).items():
        requests = request.parse_all_valid(notes)
        if not requests:
            logger.debug("Skipping %s: no valid review requests", rev)
            continue
        threads = _threads_from_notes(all_comments.get(rev, []))
        summaries.append(_build_summary(repo, rev, requests, threads))
    summaries.sort(key=lambda s: _request_time(s.request), reverse=True)
    return summaries


def list_open(repo: BaseRepo) -> list[Summary]:
    return [s for s in list_all(repo) if s.is_open()]


def get_current(repo: BaseRepo) -> Review | None:
    """Return the open review for the checked-out ref, if there is exactly one."""
    head_ref = repo.get_head_ref()
    matches = [s for s in list_open(repo) if s.request.review_ref == head_ref]
    if not matches:
        return None
    if len(matches) > 1:
        raise AmbiguousReview(f"There are {len(matches)} open reviews for the ref {head_ref}")
    return matches[0].details()
