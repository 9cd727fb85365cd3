"""Work out which commits a review covers, and move a review onto a new base.

A review is anchored on the commit its request note is attached to, but the
change keeps moving: authors push follow-up commits to the review ref, rebase
it, and eventually it is merged. The head is traced forward from the anchor;
the base is where the change leaves the target branch.

Any repository failure while resolving a ref or an ancestry question aborts
the call. The one exception is the comment-location scan in
find_last_commit, where a commit that cannot be looked up is only a hint that
did not pan out.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import TYPE_CHECKING, Iterable

from appraise_core.errors import ReviewStateError
from appraise_core.review import request
from appraise_store.base import RepoError

if TYPE_CHECKING:
    from appraise_core.review.summary import Summary
    from appraise_core.review.threads import CommentThread
    from appraise_store.base import BaseRepo

logger = logging.getLogger(__name__)

# Superseded review heads are kept reachable from here after a rebase.
ARCHIVE_REF = "refs/devtools/archives/reviews"

# What push and pull share with a remote.
NOTES_REF_PATTERN = "refs/notes/devtools/*"
ARCHIVE_REF_PATTERN = "refs/devtools/archives/*"


def _is_later(repo: BaseRepo, starting: str, latest: str, candidate: str) -> bool:
    """Whether candidate should replace latest as the newest commit in the review."""
    try:
        repo.verify_commit(candidate)
        if repo.is_ancestor(latest, candidate):
            return True
        if not repo.is_ancestor(starting, candidate):
            return False
        if repo.is_ancestor(candidate, latest):
            return False
        candidate_time = int(repo.get_commit_time(candidate))
    except (RepoError, ValueError) as e:
        logger.debug("Ignoring comment location %s: %s", candidate, e)
        return False
    try:
        latest_time = int(repo.get_commit_time(latest))
    except (RepoError, ValueError):
        return True
    return candidate_time > latest_time


def find_last_commit(repo: BaseRepo, starting: str, latest: str, threads: Iterable[CommentThread]) -> str:
    """Return the newest commit referenced by any comment location, or latest.

    Only commits descended from starting are considered.
    """
    for thread in threads:
        location = thread.comment.location
        if location is not None and location.commit and _is_later(repo, starting, latest, location.commit):
            latest = location.commit
        latest = find_last_commit(repo, starting, latest, thread.children)
    return latest


def get_head_commit(summary: Summary) -> str:
    """Return the commit at the tip of the reviewed change.

    - No review ref: the anchor commit (or its rebased alias).
    - Submitted: the newest commit any comment was made against, since the
      review ref may since have moved on.
    - Open: the review ref, provided it still contains the anchor; otherwise
      the ref was reset and comment locations are the best evidence.
    """
    repo = summary.repo
    starting = summary.starting_commit()
    review_ref = summary.request.review_ref
    if not review_ref:
        return starting
    if summary.submitted:
        return find_last_commit(repo, starting, starting, summary.comments)
    review_head = repo.resolve_ref_commit(review_ref)
    if repo.is_ancestor(starting, review_head):
        return review_head
    return find_last_commit(repo, starting, starting, summary.comments)


def get_base_commit(summary: Summary) -> str:
    """Return the commit the reviewed change is applied on top of.

    Open reviews compare against the current target branch. Closed reviews
    (submitted or abandoned) use the newest base recorded in the request
    history, or else the anchor commit's last parent.
    """
    repo = summary.repo
    if not summary.is_open():
        for amendment in reversed(summary.all_requests):
            if amendment.base_commit:
                return amendment.base_commit
        return repo.get_last_parent(summary.revision)

    target_head = repo.resolve_ref_commit(summary.request.target_ref)
    return repo.merge_base(target_head, get_head_commit(summary))


def list_commits(summary: Summary) -> list[str]:
    """Return the commits in the review, oldest first."""
    return summary.repo.list_commits_between(get_base_commit(summary), get_head_commit(summary))


def rebase(summary: Summary, archive_previous: bool = True) -> None:
    """Rebase the review ref onto its target and record the new head as the alias.

    Everything that can be checked is checked before any ref moves. With
    archive_previous the old head is first recorded under ARCHIVE_REF so
    comments made against it stay reachable.
    """
    repo = summary.repo
    if summary.is_abandoned():
        raise ReviewStateError(f"Review {summary.revision} is abandoned and cannot be rebased")
    review_ref = summary.request.review_ref
    if not review_ref:
        raise ReviewStateError(f"Review {summary.revision} has no review ref to rebase")
    head = get_head_commit(summary)
    repo.resolve_ref_commit(summary.request.target_ref)

    if archive_previous:
        repo.archive_ref(head, ARCHIVE_REF)
    repo.switch_to_ref(review_ref)
    repo.rebase_ref(summary.request.target_ref)
    alias = repo.get_commit_hash("HEAD")

    amended = replace(
        summary.request,
        alias=alias,
        timestamp=str(int(time.time())),
        reviewers=list(summary.request.reviewers),
    )
    repo.append_note(request.REF, summary.revision, amended.write())
    logger.debug("Rebased review %s onto %s as %s", summary.revision, summary.request.target_ref, alias)
    summary.request = amended
    summary.all_requests.append(amended)
