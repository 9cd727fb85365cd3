"""Approval state of comment threads.

A comment's own `resolved` field is tri-state: true (lgtm), false (needs
work) or absent (fyi). The aggregate for a thread is derived from its own
comment and its replies with two rules:

- Siblings fold: any rejection wins, otherwise any acceptance, otherwise
  undetermined. Order never matters.
- A node combines its own state with the fold of its children using the
  table in `combine`. A reply's rejection always propagates upward; a reply's
  approval never upgrades a node that has no opinion, and turns an explicit
  rejection into undetermined rather than acceptance.

Aggregates are recomputed on every read and never persisted.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from appraise_core.review.threads import CommentThread


class Resolution(Enum):
    UNDETERMINED = None
    ACCEPTED = True
    REJECTED = False

    @classmethod
    def from_resolved(cls, resolved: bool | None) -> Resolution:
        return cls(resolved)

    @property
    def resolved(self) -> bool | None:
        """The persisted representation: True, False or None."""
        return self.value


_COMBINE = {
    (Resolution.UNDETERMINED, Resolution.UNDETERMINED): Resolution.UNDETERMINED,
    (Resolution.UNDETERMINED, Resolution.ACCEPTED): Resolution.UNDETERMINED,
    (Resolution.UNDETERMINED, Resolution.REJECTED): Resolution.REJECTED,
    (Resolution.ACCEPTED, Resolution.UNDETERMINED): Resolution.ACCEPTED,
    (Resolution.ACCEPTED, Resolution.ACCEPTED): Resolution.ACCEPTED,
    (Resolution.ACCEPTED, Resolution.REJECTED): Resolution.REJECTED,
    (Resolution.REJECTED, Resolution.UNDETERMINED): Resolution.REJECTED,
    (Resolution.REJECTED, Resolution.ACCEPTED): Resolution.UNDETERMINED,
    (Resolution.REJECTED, Resolution.REJECTED): Resolution.REJECTED,
}


def fold(statuses: Iterable[Resolution]) -> Resolution:
    result = Resolution.UNDETERMINED
    for status in statuses:
        if status is Resolution.REJECTED:
            return Resolution.REJECTED
        if status is Resolution.ACCEPTED:
            result = Resolution.ACCEPTED
    return result


def combine(own: Resolution, child: Resolution) -> Resolution:
    return _COMBINE[(own, child)]


def update_resolved_status(thread: CommentThread) -> Resolution:
    """Recompute `resolved` for thread and all of its descendants, post-order."""
    # A list, not a generator: fold stops early and every child must be updated.
    children = fold([update_resolved_status(child) for child in thread.children])
    thread.resolved = combine(Resolution.from_resolved(thread.comment.resolved), children)
    return thread.resolved


def update_threads_status(threads: Iterable[CommentThread]) -> Resolution:
    """Recompute every thread, then fold the independent threads together."""
    return fold([update_resolved_status(thread) for thread in threads])
