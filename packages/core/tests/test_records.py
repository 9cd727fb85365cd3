"""Tests for the note record types: comments, requests and reports."""

from __future__ import annotations

import pytest

from appraise_core.errors import LocationError, ParseError
from appraise_core.review import analyses, ci, comment, request
from appraise_core.review.comment import Comment, Location, Range
from appraise_core.review.encoding import latest_by_timestamp, marshal
from appraise_core.review.request import Request
from appraise_store.base import RepoError
from appraise_store.memory import TEST_COMMIT_B, TEST_FILE, MemoryRepo

# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


class TestEncoding:
    def test_marshal_is_compact(self):
        assert marshal({"a": 1, "b": [True, None]}) == '{"a":1,"b":[true,null]}'

    def test_marshal_escapes_html_characters(self):
        assert marshal({"d": "<a & b>"}) == r'{"d":"\u003ca \u0026 b\u003e"}'

    def test_marshal_keeps_other_unicode(self):
        assert marshal({"d": "café"}) == '{"d":"café"}'

    def test_latest_by_timestamp_compares_numerically(self):
        records = [ci.Report(timestamp="9"), ci.Report(timestamp="10"), ci.Report(timestamp="0000000002")]
        assert latest_by_timestamp(records) is records[1]

    def test_latest_by_timestamp_first_wins_ties(self):
        records = [ci.Report(timestamp="3", url="first"), ci.Report(timestamp="0000000003", url="second")]
        assert latest_by_timestamp(records).url == "first"

    def test_latest_by_timestamp_empty(self):
        assert latest_by_timestamp([]) is None

    def test_latest_by_timestamp_rejects_bad_timestamp(self):
        with pytest.raises(ParseError):
            latest_by_timestamp([ci.Report(timestamp="1"), ci.Report(timestamp="yesterday")])


# ---------------------------------------------------------------------------
# Range and Location
# ---------------------------------------------------------------------------


class TestRange:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("", Range()),
            ("5", Range(5)),
            ("5+3", Range(5, 3)),
            ("5:7", Range(5, 0, 7)),
            ("5+3:7+2", Range(5, 3, 7, 2)),
        ],
    )
    def test_parse(self, text, expected):
        assert Range.parse(text) == expected

    @pytest.mark.parametrize("text", ["a", "1+2+3", "1:2:3", "0+4", "3:1", "-1"])
    def test_parse_rejects(self, text):
        with pytest.raises(ValueError):
            Range.parse(text)

    def test_str(self):
        assert str(Range(5, 3, 7, 2)) == "5+3:7+2"
        assert str(Range(5)) == "5"
        assert str(Range()) == ""

    def test_to_dict_omits_unset_fields(self):
        assert Range(5).to_dict() == {"startLine": 5}
        assert Range(5, 0, 7).to_dict() == {"startLine": 5, "endLine": 7}


class TestLocationCheck:
    def test_line_within_file(self):
        Location(commit=TEST_COMMIT_B, path=TEST_FILE, range=Range(1)).check(MemoryRepo.for_test())

    def test_column_within_line(self):
        # "B line 1" is eight characters long.
        Location(commit=TEST_COMMIT_B, path=TEST_FILE, range=Range(1, 8)).check(MemoryRepo.for_test())

    def test_line_past_end(self):
        with pytest.raises(LocationError):
            Location(commit=TEST_COMMIT_B, path=TEST_FILE, range=Range(9999)).check(MemoryRepo.for_test())

    def test_column_past_end(self):
        with pytest.raises(LocationError):
            Location(commit=TEST_COMMIT_B, path=TEST_FILE, range=Range(1, 100)).check(MemoryRepo.for_test())

    def test_missing_file_is_a_repo_error(self):
        with pytest.raises(RepoError):
            Location(commit=TEST_COMMIT_B, path="missing.txt", range=Range(1)).check(MemoryRepo.for_test())

    def test_no_range_is_not_checked(self):
        Location(commit=TEST_COMMIT_B, path="missing.txt").check(MemoryRepo.for_test())


# ---------------------------------------------------------------------------
# Comment
# ---------------------------------------------------------------------------


class TestComment:
    def test_write_matches_stored_format(self):
        c = Comment(timestamp="0000000001", author="ojarjur", location=Location(commit="B"), resolved=True)
        assert c.write() == '{"timestamp":"0000000001","author":"ojarjur","location":{"commit":"B"},"resolved":true}'

    def test_write_omits_empty_fields(self):
        assert Comment(description="hi").write() == '{"description":"hi"}'

    def test_write_keeps_explicit_false(self):
        assert Comment(resolved=False).write() == '{"resolved":false}'

    def test_hash_ignores_timestamp_padding(self):
        assert Comment(timestamp="1", description="x").hash() == Comment(timestamp="0000000001", description="x").hash()

    def test_hash_depends_on_content(self):
        a = Comment(timestamp="1", description="x")
        b = Comment(timestamp="1", description="y")
        assert a.hash() != b.hash()
        assert len(a.hash()) == 40

    def test_new_leaves_timestamp_unset(self):
        c = Comment.new("me@example.com", "Looks fine")
        assert c.timestamp == ""
        assert c.author == "me@example.com"
        assert c.resolved is None

    def test_parse_full_record(self):
        note = (
            '{"timestamp":"7","author":"a","original":"o","parent":"p",'
            '"location":{"commit":"c","path":"f.py","range":{"startLine":2,"endLine":4}},'
            '"description":"d","resolved":false}'
        )
        c = comment.parse(note)
        assert c.original == "o"
        assert c.parent == "p"
        assert c.location == Location(commit="c", path="f.py", range=Range(2, 0, 4, 0))
        assert c.resolved is False
        assert comment.parse(c.write()) == c

    @pytest.mark.parametrize(
        "note",
        [
            "not json",
            "[1, 2]",
            '{"resolved":"yes"}',
            '{"location":"here"}',
            '{"location":{"range":{"startLine":-1}}}',
        ],
    )
    def test_parse_rejects(self, note):
        with pytest.raises(ParseError):
            comment.parse(note)

    def test_parse_all_valid_skips_bad_and_future_notes(self):
        notes = ['{"description":"ok"}', "garbage", '{"v":1,"description":"future"}', '{"description":"also ok"}']
        assert [c.description for c in comment.parse_all_valid(notes)] == ["ok", "also ok"]


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


class TestRequest:
    def test_write_matches_stored_format(self):
        r = Request(
            timestamp="0000000001",
            target_ref="refs/heads/master",
            requester="ojarjur",
            reviewers=["ojarjur"],
            description="B",
        )
        assert r.write() == (
            '{"timestamp":"0000000001","targetRef":"refs/heads/master","requester":"ojarjur",'
            '"reviewers":["ojarjur"],"description":"B"}'
        )

    def test_abandoned_request_keeps_empty_target(self):
        assert Request(timestamp="2").write() == '{"timestamp":"2","targetRef":""}'

    def test_new(self):
        r = Request.new("me", ["a", "b"], "refs/heads/feature", "refs/heads/master", "Add feature")
        assert r.review_ref == "refs/heads/feature"
        assert r.reviewers == ["a", "b"]
        assert r.timestamp == ""

    def test_parse_base_commit_and_alias(self):
        r = request.parse('{"targetRef":"refs/heads/master","baseCommit":"abc","alias":"def"}')
        assert r.base_commit == "abc"
        assert r.alias == "def"

    def test_parse_rejects_bad_reviewers(self):
        with pytest.raises(ParseError):
            request.parse('{"reviewers":"ojarjur"}')

    def test_parse_all_valid(self):
        notes = ['{"targetRef":"a"}', '{"v":2,"targetRef":"b"}', "{", '{"targetRef":"c"}']
        assert [r.target_ref for r in request.parse_all_valid(notes)] == ["a", "c"]


# ---------------------------------------------------------------------------
# CI and analyses reports
# ---------------------------------------------------------------------------


class TestCIReports:
    def test_parse_is_case_insensitive(self):
        report = ci.parse('{"Timestamp":"5","URL":"http://ci/1","Status":"success","Agent":"bot"}')
        assert report == ci.Report(timestamp="5", url="http://ci/1", status="success", agent="bot")

    def test_latest_ignores_unknown_status(self):
        reports = [
            ci.Report(timestamp="1", url="u1", status="success"),
            ci.Report(timestamp="9", url="u9", status="pending"),
            ci.Report(timestamp="2", url="u2", status="failure"),
        ]
        assert ci.get_latest_ci_report(reports).url == "u2"

    def test_latest_none_without_valid_status(self):
        assert ci.get_latest_ci_report([ci.Report(timestamp="1", status="running")]) is None

    def test_parse_all_valid(self):
        notes = ['{"timestamp":"1","status":"success"}', "nope", '{"v":3,"status":"success"}']
        assert len(ci.parse_all_valid(notes)) == 1


class TestAnalysesReports:
    def test_parse(self):
        report = analyses.parse('{"Timestamp":"3","URL":"http://lint","Status":"fyi"}')
        assert report == analyses.Report(timestamp="3", url="http://lint", status="fyi")

    def test_latest(self):
        reports = [
            analyses.Report(timestamp="4", status=analyses.STATUS_NEEDS_MORE_WORK),
            analyses.Report(timestamp="3", status=analyses.STATUS_LOOKS_GOOD_TO_ME),
        ]
        assert analyses.get_latest_analyses_report(reports).status == analyses.STATUS_NEEDS_MORE_WORK
