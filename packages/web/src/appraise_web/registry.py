"""In-memory snapshot of every repository served by the web front end.

Handlers only ever read a complete mapping: discover() builds a new one and
publishes it with a single attribute assignment. A RepoDetails is not
updated after it has been published.
"""

from __future__ import annotations

import logging
import os
import posixpath
import re
import signal
import threading
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

from appraise_core.review import summary as summaries
from appraise_core.review.summary import Summary
from appraise_store.base import BaseRepo, RepoError

logger = logging.getLogger(__name__)

DESCRIPTION_PATH = "README.md"

_DESCRIPTION_RE = re.compile(r"(# ([^\n]*)\n)?(## ([^\n]*)\n)?((?s:.*))")


def parse_description(text: str) -> tuple[str, str, str]:
    """Split a README into (title, subtitle, description).

    The title and subtitle are an optional leading "# " and "## " line.
    """
    match = _DESCRIPTION_RE.match(text)
    return match.group(2) or "", match.group(4) or "", match.group(5)


class ReviewType(Enum):
    OPEN = "open"
    CLOSED = "closed"
    ABANDONED = "abandoned"


@dataclass(frozen=True)
class ReviewIndex:
    """Where a review sits in a RepoDetails, for previous/next navigation."""

    type: ReviewType
    index: int
    # Index into RepoDetails.branches; unused for abandoned reviews.
    branch: int = 0

    def summaries(self, details: RepoDetails) -> list[Summary]:
        if self.type is ReviewType.ABANDONED:
            return details.abandoned_reviews
        branch = details.branches[self.branch]
        return branch.open_reviews if self.type is ReviewType.OPEN else branch.closed_reviews

    def summary(self, details: RepoDetails) -> Optional[Summary]:
        found = self.summaries(details)
        return found[self.index] if self.index < len(found) else None

    def branch_title(self, details: RepoDetails) -> str:
        if self.type is ReviewType.ABANDONED:
            return ""
        return details.branches[self.branch].title

    def previous(self, details: RepoDetails) -> Optional[ReviewIndex]:
        if self.index > 0:
            return ReviewIndex(self.type, self.index - 1, self.branch)
        if self.type is not ReviewType.ABANDONED and self.branch > 0:
            candidate = ReviewIndex(self.type, 0, self.branch - 1)
            return ReviewIndex(self.type, len(candidate.summaries(details)) - 1, self.branch - 1)
        return None

    def next(self, details: RepoDetails) -> Optional[ReviewIndex]:
        if self.index < len(self.summaries(details)) - 1:
            return ReviewIndex(self.type, self.index + 1, self.branch)
        if self.type is not ReviewType.ABANDONED and self.branch < len(details.branches) - 1:
            return ReviewIndex(self.type, 0, self.branch + 1)
        return None


@dataclass
class BranchDetails:
    ref: str
    title: str = ""
    subtitle: str = ""
    description: str = ""
    open_reviews: list[Summary] = field(default_factory=list)
    closed_reviews: list[Summary] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "ref": self.ref,
            "title": self.title,
            "subtitle": self.subtitle,
            "description": self.description,
            "open_reviews": [s.revision for s in self.open_reviews],
            "closed_reviews": [s.revision for s in self.closed_reviews],
        }


class RepoDetails:
    """Everything the web front end shows about one repository."""

    def __init__(self, repo: BaseRepo):
        self.repo = repo
        self.path = repo.get_path()
        self.repo_hash = ""
        self.title = ""
        self.subtitle = ""
        self.description = ""
        self.branches: list[BranchDetails] = []
        self.abandoned_reviews: list[Summary] = []
        self.review_map: dict[str, ReviewIndex] = {}
        self.update_description()

    def update_description(self) -> None:
        try:
            self.title, self.subtitle, self.description = parse_description(
                self.repo.show("HEAD", DESCRIPTION_PATH)
            )
        except RepoError:
            logger.debug("%s has no %s", self.path, DESCRIPTION_PATH)
        if not self.title:
            self.title = posixpath.basename(self.path.rstrip("/"))

    def branch_details(self, ref: str) -> BranchDetails:
        details = BranchDetails(ref=ref)
        try:
            details.title, details.subtitle, details.description = parse_description(
                self.repo.show(ref, DESCRIPTION_PATH)
            )
        except RepoError:
            pass
        if not details.title:
            details.title = ref.removeprefix("refs/heads/")
        return details

    def update(self) -> None:
        """Reload reviews if the repository changed since the last update."""
        state_hash = self.repo.get_repo_state_hash()
        if state_hash == self.repo_hash:
            return
        logger.info("Reloading reviews for %s", self.path)
        self.update_description()

        branches: dict[str, BranchDetails] = {}
        abandoned: list[Summary] = []
        # list_all is newest first; the pages read oldest to newest.
        for s in reversed(summaries.list_all(self.repo)):
            target = s.request.target_ref
            if not target:
                abandoned.append(s)
                continue
            if target not in branches:
                branches[target] = self.branch_details(target)
            if s.submitted:
                branches[target].closed_reviews.append(s)
            else:
                branches[target].open_reviews.append(s)

        ordered = [branches[ref] for ref in sorted(branches)]
        review_map = {s.revision: ReviewIndex(ReviewType.ABANDONED, i) for i, s in enumerate(abandoned)}
        for b, branch in enumerate(ordered):
            for i, s in enumerate(branch.open_reviews):
                review_map[s.revision] = ReviewIndex(ReviewType.OPEN, i, b)
            for i, s in enumerate(branch.closed_reviews):
                review_map[s.revision] = ReviewIndex(ReviewType.CLOSED, i, b)

        self.branches = ordered
        self.abandoned_reviews = abandoned
        self.review_map = review_map
        self.repo_hash = state_hash

    def find_review(self, revision: str) -> Optional[Summary]:
        index = self.review_map.get(revision)
        return index.summary(self) if index is not None else None

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "title": self.title,
            "subtitle": self.subtitle,
            "description": self.description,
            "open_reviews": sum(len(b.open_reviews) for b in self.branches),
            "closed_reviews": sum(len(b.closed_reviews) for b in self.branches),
            "abandoned_reviews": len(self.abandoned_reviews),
        }


def _open_repo(path: str) -> BaseRepo:
    from appraise_store.git import GitRepo

    return GitRepo(path, top_level_only=True)


class Registry:
    """Name → RepoDetails for every repository found under a root directory."""

    def __init__(self, repos: Optional[Mapping[str, RepoDetails]] = None):
        self._repos: Mapping[str, RepoDetails] = MappingProxyType(dict(repos or {}))

    def snapshot(self) -> Mapping[str, RepoDetails]:
        """The current mapping. It is never modified once returned."""
        return self._repos

    def publish(self, repos: Mapping[str, RepoDetails]) -> None:
        self._repos = MappingProxyType(dict(repos))

    def discover(self, root: str = ".") -> Mapping[str, RepoDetails]:
        """Rescan root and publish a fresh mapping keyed by path relative to root."""
        root = os.path.abspath(root)
        found: dict[str, RepoDetails] = {}
        for dirpath, dirnames, _ in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d != ".git")
            try:
                details = RepoDetails(_open_repo(dirpath))
                details.update()
            except RepoError as e:
                logger.debug("Skipping %s: %s", dirpath, e)
                continue
            name = os.path.relpath(dirpath, root)
            if name == ".":
                name = os.path.basename(root)
            found[name] = details
            # Nested repositories are not served separately.
            dirnames[:] = []

        logger.info("Discovered %d repositories under %s", len(found), root)
        self.publish(found)
        return self._repos

    def install_rescan_signal(self, root: str) -> None:
        """Rescan on SIGUSR1. A no-op on platforms without it.

        The handler runs on the server's event-loop thread, so the rescan
        itself runs on a daemon thread and requests keep being served from
        the previous snapshot until it is published.
        """
        sigusr1 = getattr(signal, "SIGUSR1", None)
        if sigusr1 is None:
            logger.warning("SIGUSR1 is not available; rescans are disabled")
            return

        def _rescan(signum, frame):
            logger.info("Received SIGUSR1, rescanning %s", root)
            threading.Thread(target=self.discover, args=(root,), name="appraise-rescan", daemon=True).start()

        signal.signal(sigusr1, _rescan)
