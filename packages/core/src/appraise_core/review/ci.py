"""Continuous-integration build reports attached to reviewed commits.

Reports are written by CI agents, which historically used capitalised keys
("Timestamp", "URL"), so keys are matched case-insensitively on read.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from appraise_core.errors import ParseError
from appraise_core.review.encoding import get_int, get_str, latest_by_timestamp, load_object, marshal

logger = logging.getLogger(__name__)

REF = "refs/notes/devtools/ci"

FORMAT_VERSION = 0

STATUS_SUCCESS = "success"
STATUS_FAILURE = "failure"


@dataclass
class Report:
    timestamp: str = ""
    url: str = ""
    status: str = ""
    agent: str = ""
    version: int = FORMAT_VERSION

    def to_dict(self) -> dict:
        data: dict = {}
        if self.timestamp:
            data["timestamp"] = self.timestamp
        if self.url:
            data["url"] = self.url
        if self.status:
            data["status"] = self.status
        if self.agent:
            data["agent"] = self.agent
        if self.version:
            data["v"] = self.version
        return data

    def write(self) -> str:
        return marshal(self.to_dict())


def parse(note: str) -> Report:
    data = {key.lower(): value for key, value in load_object(note).items()}
    return Report(
        timestamp=get_str(data, "timestamp"),
        url=get_str(data, "url"),
        status=get_str(data, "status"),
        agent=get_str(data, "agent"),
        version=get_int(data, "v"),
    )


def parse_all_valid(notes: Iterable[str]) -> list[Report]:
    reports = []
    for note in notes:
        try:
            report = parse(note)
        except ParseError as e:
            logger.debug("Skipping unparseable CI note: %s", e)
            continue
        if report.version == FORMAT_VERSION:
            reports.append(report)
    return reports


def get_latest_ci_report(reports: Iterable[Report]) -> Report | None:
    """Return the newest report with a recognised status, or None.

    Raises ParseError if a candidate report has a malformed timestamp.
    """
    valid = [r for r in reports if r.status in (STATUS_SUCCESS, STATUS_FAILURE)]
    return latest_by_timestamp(valid)
