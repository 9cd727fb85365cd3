"""Review requests, stored under the reviews notes ref of the reviewed commit.

Every amendment (new description, abandonment, rebase) appends a complete new
request; the one with the latest timestamp wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from appraise_core.errors import ParseError
from appraise_core.review.encoding import get_int, get_str, get_str_list, load_object, marshal

logger = logging.getLogger(__name__)

REF = "refs/notes/devtools/reviews"

FORMAT_VERSION = 0


@dataclass
class Request:
    timestamp: str = ""
    review_ref: str = ""
    # Empty means the review was abandoned.
    target_ref: str = ""
    requester: str = ""
    reviewers: list[str] = field(default_factory=list)
    description: str = ""
    # Commit the review was based on, recorded once it is submitted or rebased.
    base_commit: str = ""
    # Current commit for the reviewed change after a rebase.
    alias: str = ""
    version: int = FORMAT_VERSION

    @classmethod
    def new(
        cls,
        requester: str,
        reviewers: list[str],
        review_ref: str,
        target_ref: str,
        description: str,
    ) -> Request:
        return cls(
            requester=requester,
            reviewers=list(reviewers),
            review_ref=review_ref,
            target_ref=target_ref,
            description=description,
        )

    def to_dict(self) -> dict:
        data: dict = {}
        if self.version:
            data["v"] = self.version
        if self.timestamp:
            data["timestamp"] = self.timestamp
        if self.review_ref:
            data["reviewRef"] = self.review_ref
        data["targetRef"] = self.target_ref
        if self.requester:
            data["requester"] = self.requester
        if self.reviewers:
            data["reviewers"] = list(self.reviewers)
        if self.description:
            data["description"] = self.description
        if self.base_commit:
            data["baseCommit"] = self.base_commit
        if self.alias:
            data["alias"] = self.alias
        return data

    def write(self) -> str:
        return marshal(self.to_dict())


def parse(note: str) -> Request:
    data = load_object(note)
    return Request(
        timestamp=get_str(data, "timestamp"),
        review_ref=get_str(data, "reviewRef"),
        target_ref=get_str(data, "targetRef"),
        requester=get_str(data, "requester"),
        reviewers=get_str_list(data, "reviewers"),
        description=get_str(data, "description"),
        base_commit=get_str(data, "baseCommit"),
        alias=get_str(data, "alias"),
        version=get_int(data, "v"),
    )


def parse_all_valid(notes: Iterable[str]) -> list[Request]:
    """Decode every note that is a well-formed request in the current format."""
    requests = []
    for note in notes:
        try:
            request = parse(note)
        except ParseError as e:
            logger.debug("Skipping unparseable request note: %s", e)
            continue
        if request.version != FORMAT_VERSION:
            logger.debug("Skipping request with format version %d", request.version)
            continue
        requests.append(request)
    return requests
