"""Static analysis reports attached to reviewed commits."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from appraise_core.errors import ParseError
from appraise_core.review.encoding import get_int, get_str, latest_by_timestamp, load_object, marshal

logger = logging.getLogger(__name__)

REF = "refs/notes/devtools/analyses"

FORMAT_VERSION = 0

STATUS_LOOKS_GOOD_TO_ME = "lgtm"
STATUS_FOR_YOUR_INFORMATION = "fyi"
STATUS_NEEDS_MORE_WORK = "nmw"


@dataclass
class Report:
    timestamp: str = ""
    # Location of the full analysis results.
    url: str = ""
    status: str = ""
    version: int = FORMAT_VERSION

    def to_dict(self) -> dict:
        data: dict = {}
        if self.timestamp:
            data["timestamp"] = self.timestamp
        if self.url:
            data["url"] = self.url
        if self.status:
            data["status"] = self.status
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
        version=get_int(data, "v"),
    )


def parse_all_valid(notes: Iterable[str]) -> list[Report]:
    reports = []
    for note in notes:
        try:
            report = parse(note)
        except ParseError as e:
            logger.debug("Skipping unparseable analyses note: %s", e)
            continue
        if report.version == FORMAT_VERSION:
            reports.append(report)
    return reports


def get_latest_analyses_report(reports: Iterable[Report]) -> Report | None:
    return latest_by_timestamp(reports)
