"""Tests for the repository backends and the diff parser."""

from __future__ import annotations

import subprocess

import pytest

from appraise_store.base import RepoError
from appraise_store.git import GitRepo
from appraise_store.memory import (
    TEST_ALTERNATE_REVIEW_REF,
    TEST_COMMIT_A,
    TEST_COMMIT_B,
    TEST_COMMIT_C,
    TEST_COMMIT_D,
    TEST_COMMIT_E,
    TEST_COMMIT_F,
    TEST_COMMIT_G,
    TEST_COMMIT_H,
    TEST_COMMIT_I,
    TEST_COMMIT_J,
    TEST_FILE,
    TEST_REVIEW_REF,
    TEST_TARGET_REF,
    MemoryRepo,
)
from appraise_store.models import DiffOp, parse_diff

SAMPLE_DIFF = """\
diff --git a/src/app.py b/src/app.py
index 83db48f..bf269f4 100644
--- a/src/app.py
+++ b/src/app.py
@@ -1,4 +1,5 @@
 import os
+import sys

 def main():
-    pass
+    return 0
diff --git a/new.txt b/new.txt
new file mode 100644
--- /dev/null
+++ b/new.txt
@@ -0,0 +1 @@
+hello
\\ No newline at end of file
"""


def _completed(stdout="", returncode=0, stderr=""):
    # git runs without text=True, so both streams are bytes.
    if isinstance(stdout, str):
        stdout = stdout.encode("utf-8")
    return subprocess.CompletedProcess(args=["git"], returncode=returncode, stdout=stdout, stderr=stderr.encode("utf-8"))


# ---------------------------------------------------------------------------
# parse_diff
# ---------------------------------------------------------------------------


class TestParseDiff:
    def test_files_and_names(self):
        files = parse_diff(SAMPLE_DIFF)
        assert [(f.old_name, f.new_name) for f in files] == [("src/app.py", "src/app.py"), ("", "new.txt")]

    def test_fragment_positions(self):
        fragment = parse_diff(SAMPLE_DIFF)[0].fragments[0]
        assert (fragment.old_position, fragment.old_lines) == (1, 4)
        assert (fragment.new_position, fragment.new_lines) == (1, 5)

    def test_line_ops(self):
        lines = parse_diff(SAMPLE_DIFF)[0].fragments[0].lines
        assert [line.op for line in lines] == [
            DiffOp.CONTEXT,
            DiffOp.ADD,
            DiffOp.CONTEXT,
            DiffOp.CONTEXT,
            DiffOp.DELETE,
            DiffOp.ADD,
        ]
        assert lines[1].line == "import sys\n"

    def test_omitted_count_defaults_to_one(self):
        fragment = parse_diff(SAMPLE_DIFF)[1].fragments[0]
        assert (fragment.old_position, fragment.old_lines) == (0, 0)
        assert (fragment.new_position, fragment.new_lines) == (1, 1)

    def test_no_newline_marker_is_skipped(self):
        lines = parse_diff(SAMPLE_DIFF)[1].fragments[0].lines
        assert len(lines) == 1
        assert lines[0].op is DiffOp.ADD

    def test_empty_input(self):
        assert parse_diff("") == []


# ---------------------------------------------------------------------------
# MemoryRepo
# ---------------------------------------------------------------------------


class TestMemoryRepoQueries:
    def test_refs_resolve(self):
        repo = MemoryRepo.for_test()
        assert repo.get_commit_hash(TEST_TARGET_REF) == TEST_COMMIT_J
        assert repo.get_commit_hash(TEST_REVIEW_REF) == TEST_COMMIT_I
        assert repo.resolve_ref_commit(TEST_ALTERNATE_REVIEW_REF) == TEST_COMMIT_I
        assert repo.get_commit_hash("HEAD") == TEST_COMMIT_J

    def test_unknown_ref_raises(self):
        repo = MemoryRepo.for_test()
        with pytest.raises(RepoError):
            repo.get_commit_hash("refs/heads/missing")
        with pytest.raises(RepoError):
            repo.resolve_ref_commit("refs/heads/missing")

    def test_resolve_falls_back_to_origin(self):
        repo = MemoryRepo.for_test()
        repo.refs["refs/remotes/origin/release"] = TEST_COMMIT_F
        assert repo.resolve_ref_commit("refs/heads/release") == TEST_COMMIT_F

    def test_merge_base(self):
        repo = MemoryRepo.for_test()
        assert repo.merge_base(TEST_COMMIT_I, TEST_COMMIT_J) == TEST_COMMIT_F
        assert repo.merge_base(TEST_COMMIT_B, TEST_COMMIT_C) == TEST_COMMIT_A

    def test_is_ancestor(self):
        repo = MemoryRepo.for_test()
        assert repo.is_ancestor(TEST_COMMIT_G, TEST_COMMIT_I)
        assert repo.is_ancestor(TEST_COMMIT_I, TEST_COMMIT_I)
        assert not repo.is_ancestor(TEST_COMMIT_G, TEST_TARGET_REF)

    def test_last_parent(self):
        repo = MemoryRepo.for_test()
        assert repo.get_last_parent(TEST_COMMIT_D) == TEST_COMMIT_C
        assert repo.get_last_parent(TEST_COMMIT_H) == TEST_COMMIT_F
        with pytest.raises(RepoError):
            repo.get_last_parent(TEST_COMMIT_A)

    def test_list_commits_between_is_oldest_first(self):
        repo = MemoryRepo.for_test()
        assert repo.list_commits_between(TEST_TARGET_REF, TEST_REVIEW_REF) == [
            TEST_COMMIT_G,
            TEST_COMMIT_H,
            TEST_COMMIT_I,
        ]

    def test_list_commits_starts_at_root(self):
        repo = MemoryRepo.for_test()
        commits = repo.list_commits(TEST_COMMIT_E)
        assert commits[0] == TEST_COMMIT_A
        assert commits[-1] == TEST_COMMIT_E
        assert set(commits) == {TEST_COMMIT_A, TEST_COMMIT_B, TEST_COMMIT_C, TEST_COMMIT_D, TEST_COMMIT_E}

    def test_commit_details(self):
        details = MemoryRepo.for_test().get_commit_details(TEST_COMMIT_H)
        assert details.parents == [TEST_COMMIT_G, TEST_COMMIT_F]
        assert details.summary == "Commit H"
        assert details.author_time == "5"

    def test_show(self):
        repo = MemoryRepo.for_test()
        assert repo.show(TEST_COMMIT_B, TEST_FILE) == "B line 1\nline 2\nline 3\n"
        with pytest.raises(RepoError):
            repo.show(TEST_COMMIT_B, "missing.txt")

    def test_parsed_diff1(self):
        files = MemoryRepo.for_test().parsed_diff1(TEST_COMMIT_B)
        assert [f.new_name for f in files] == [TEST_FILE]
        ops = [(line.op, line.line) for line in files[0].fragments[0].lines]
        assert (DiffOp.DELETE, "A line 1\n") in ops
        assert (DiffOp.ADD, "B line 1\n") in ops

    def test_state_hash_tracks_notes(self):
        repo = MemoryRepo.for_test()
        before = repo.get_repo_state_hash()
        assert repo.get_repo_state_hash() == before
        repo.append_note("refs/notes/devtools/discuss", TEST_COMMIT_G, '{"description":"hi"}')
        assert repo.get_repo_state_hash() != before


class TestMemoryRepoMutations:
    def test_append_note_splits_lines(self):
        repo = MemoryRepo.for_test()
        repo.append_note("refs/notes/test", TEST_COMMIT_A, "one\n\ntwo\n")
        assert repo.get_notes("refs/notes/test", TEST_COMMIT_A) == ["one", "two"]
        assert repo.get_all_notes("refs/notes/test") == {TEST_COMMIT_A: ["one", "two"]}

    def test_fast_forward_merge(self):
        repo = MemoryRepo.for_test()
        repo.switch_to_ref(TEST_TARGET_REF)
        repo.refs[TEST_TARGET_REF] = TEST_COMMIT_F
        repo.merge_ref(TEST_COMMIT_J, True)
        assert repo.refs[TEST_TARGET_REF] == TEST_COMMIT_J

    def test_fast_forward_refused_when_diverged(self):
        repo = MemoryRepo.for_test()
        repo.switch_to_ref(TEST_TARGET_REF)
        with pytest.raises(RepoError):
            repo.merge_ref(TEST_REVIEW_REF, True)

    def test_merge_commit(self):
        repo = MemoryRepo.for_test()
        repo.switch_to_ref(TEST_TARGET_REF)
        repo.merge_ref(TEST_REVIEW_REF, False, "Merge it")
        merged = repo.refs[TEST_TARGET_REF]
        assert repo.get_commit_details(merged).parents == [TEST_COMMIT_J, TEST_COMMIT_I]
        assert repo.get_commit_message(merged) == "Merge it"

    def test_detached_switch(self):
        repo = MemoryRepo.for_test()
        repo.switch_to_ref(TEST_ALTERNATE_REVIEW_REF)
        assert repo.get_head_ref() == TEST_COMMIT_I

    def test_rebase_replays_onto_target(self):
        repo = MemoryRepo.for_test()
        repo.switch_to_ref(TEST_REVIEW_REF)
        repo.rebase_ref(TEST_TARGET_REF)
        new_head = repo.refs[TEST_REVIEW_REF]
        assert repo.is_ancestor(TEST_COMMIT_J, new_head)
        # G and I are replayed, the merge H is dropped.
        assert len(repo.list_commits_between(TEST_TARGET_REF, new_head)) == 2

    def test_archive_ref_is_idempotent(self):
        repo = MemoryRepo.for_test()
        archive = "refs/devtools/archives/reviews"
        repo.archive_ref(TEST_REVIEW_REF, archive)
        first = repo.refs[archive]
        assert repo.is_ancestor(TEST_COMMIT_I, first)
        repo.archive_ref(TEST_REVIEW_REF, archive)
        assert repo.refs[archive] == first


class TestMemoryRepoRemotes:
    NOTES = "refs/notes/devtools/*"
    ARCHIVES = "refs/devtools/archives/*"

    @pytest.fixture
    def pair(self):
        local = MemoryRepo.for_test()
        remote = MemoryRepo.for_test()
        local.remotes["origin"] = remote
        return local, remote

    def test_unknown_remote(self, pair):
        local, _ = pair
        with pytest.raises(RepoError, match="upstream"):
            local.push_notes_and_archive("upstream", self.NOTES, self.ARCHIVES)

    def test_push_merges_note_lines(self, pair):
        local, remote = pair
        local.append_note("refs/notes/devtools/discuss", TEST_COMMIT_G, '{"description":"local"}')
        remote.append_note("refs/notes/devtools/discuss", TEST_COMMIT_G, '{"description":"remote"}')
        local.push_notes_and_archive("origin", self.NOTES, self.ARCHIVES)
        assert remote.get_notes("refs/notes/devtools/discuss", TEST_COMMIT_G) == [
            '{"description":"local"}',
            '{"description":"remote"}',
        ]
        # The pushing side is untouched.
        assert local.get_notes("refs/notes/devtools/discuss", TEST_COMMIT_G) == ['{"description":"local"}']

    def test_push_ignores_refs_outside_patterns(self, pair):
        local, remote = pair
        local.append_note("refs/notes/commits", TEST_COMMIT_A, "unrelated")
        local.push_notes_and_archive("origin", self.NOTES, self.ARCHIVES)
        assert remote.get_notes("refs/notes/commits", TEST_COMMIT_A) == []

    def test_pull_copies_archive_and_its_commits(self, pair):
        local, remote = pair
        remote.archive_ref(TEST_REVIEW_REF, "refs/devtools/archives/reviews")
        archived = remote.refs["refs/devtools/archives/reviews"]
        local.pull_notes_and_archive("origin", self.NOTES, self.ARCHIVES)
        assert local.refs["refs/devtools/archives/reviews"] == archived
        assert local.is_ancestor(TEST_COMMIT_I, archived)

    def test_pull_merges_diverged_archives(self, pair):
        local, remote = pair
        archive = "refs/devtools/archives/reviews"
        local.archive_ref(TEST_COMMIT_F, archive)
        remote.archive_ref(TEST_COMMIT_G, archive)
        local.pull_notes_and_archive("origin", self.NOTES, self.ARCHIVES)
        merged = local.refs[archive]
        assert local.is_ancestor(TEST_COMMIT_F, merged)
        assert local.is_ancestor(TEST_COMMIT_G, merged)


# ---------------------------------------------------------------------------
# GitRepo (subprocess mocked)
# ---------------------------------------------------------------------------


class TestGitRepo:
    @pytest.fixture
    def run(self, mocker, tmp_path):
        run = mocker.patch("appraise_store.git.subprocess.run")
        run.return_value = _completed(stdout=f"{tmp_path}\n")
        return run

    def test_constructor_uses_toplevel(self, run, tmp_path):
        repo = GitRepo(str(tmp_path))
        assert repo.get_path() == str(tmp_path)
        args, kwargs = run.call_args
        assert args[0] == ["git", "rev-parse", "--show-toplevel"]
        assert kwargs["cwd"] == str(tmp_path)

    def test_constructor_outside_repository(self, run, tmp_path):
        run.return_value = _completed(returncode=128, stderr="fatal: not a git repository")
        with pytest.raises(RepoError, match="not a git repository"):
            GitRepo(str(tmp_path))

    def test_top_level_only_rejects_subdirectory(self, run, tmp_path):
        sub = tmp_path / "sub"
        sub.mkdir()
        with pytest.raises(RepoError, match="top level"):
            GitRepo(str(sub), top_level_only=True)

    def test_missing_git_binary(self, run, tmp_path):
        run.side_effect = FileNotFoundError("git")
        with pytest.raises(RepoError):
            GitRepo(str(tmp_path))

    def test_is_ancestor_exit_codes(self, run, tmp_path):
        repo = GitRepo(str(tmp_path))
        run.return_value = _completed(returncode=0)
        assert repo.is_ancestor("a", "b") is True
        run.return_value = _completed(returncode=1)
        assert repo.is_ancestor("a", "b") is False
        run.return_value = _completed(returncode=128, stderr="bad object")
        with pytest.raises(RepoError):
            repo.is_ancestor("a", "b")

    def test_get_notes_missing_is_empty(self, run, tmp_path):
        repo = GitRepo(str(tmp_path))
        run.return_value = _completed(returncode=1, stderr="error: no note found")
        assert repo.get_notes("refs/notes/devtools/reviews", "abc") == []

    def test_get_notes_drops_blank_lines(self, run, tmp_path):
        repo = GitRepo(str(tmp_path))
        run.return_value = _completed(stdout='{"a":1}\n\n{"b":2}\n')
        assert repo.get_notes("refs/notes/devtools/reviews", "abc") == ['{"a":1}', '{"b":2}']

    def test_get_all_notes(self, run, tmp_path):
        repo = GitRepo(str(tmp_path))
        run.side_effect = [
            _completed(stdout="n1 c1\nn2 c2\n"),
            _completed(stdout="one\n"),
            _completed(stdout="two\nthree\n"),
        ]
        assert repo.get_all_notes("refs/notes/devtools/reviews") == {"c1": ["one"], "c2": ["two", "three"]}

    def test_append_note(self, run, tmp_path):
        repo = GitRepo(str(tmp_path))
        repo.append_note("refs/notes/devtools/discuss", "abc", '{"v":0}')
        assert run.call_args[0][0] == ["git", "notes", "--ref", "refs/notes/devtools/discuss", "append", "-m", '{"v":0}', "abc"]

    def test_failed_command_raises_with_stderr(self, run, tmp_path):
        repo = GitRepo(str(tmp_path))
        run.return_value = _completed(returncode=128, stderr="fatal: bad revision")
        with pytest.raises(RepoError, match="bad revision"):
            repo.merge_base("a", "b")

    def test_switch_to_branch_and_detached(self, run, tmp_path):
        repo = GitRepo(str(tmp_path))
        repo.switch_to_ref("refs/heads/feature")
        assert run.call_args[0][0] == ["git", "checkout", "feature"]
        repo.switch_to_ref("refs/review/feature")
        assert run.call_args[0][0] == ["git", "checkout", "--detach", "refs/review/feature"]

    def test_get_notes_drops_undecodable_lines(self, run, tmp_path):
        repo = GitRepo(str(tmp_path))
        run.return_value = _completed(stdout=b'{"description":"caf\xe9"}\n{"timestamp":"1","description":"ok"}\n')
        assert repo.get_notes("refs/notes/devtools/discuss", "abc") == ['{"timestamp":"1","description":"ok"}']

    def test_get_all_notes_drops_undecodable_lines(self, run, tmp_path):
        repo = GitRepo(str(tmp_path))
        run.side_effect = [
            _completed(stdout="n1 c1\n"),
            _completed(stdout=b"\xff\xfe\ngood\n"),
        ]
        assert repo.get_all_notes("refs/notes/devtools/discuss") == {"c1": ["good"]}

    def test_show_non_utf8_file(self, run, tmp_path):
        repo = GitRepo(str(tmp_path))
        run.return_value = _completed(stdout=b"caf\xe9\n")
        assert repo.show("HEAD", "latin1.txt") == "caf\ufffd"

    def test_push_notes_and_archive(self, run, tmp_path):
        repo = GitRepo(str(tmp_path))
        repo.push_notes_and_archive("origin", "refs/notes/devtools/*", "refs/devtools/archives/*")
        assert run.call_args[0][0] == [
            "git",
            "push",
            "origin",
            "refs/notes/devtools/*:refs/notes/devtools/*",
            "refs/devtools/archives/*:refs/devtools/archives/*",
        ]

    def test_push_failure_names_remote(self, run, tmp_path):
        repo = GitRepo(str(tmp_path))
        run.return_value = _completed(returncode=1, stderr="! [rejected] (fetch first)")
        with pytest.raises(RepoError, match="'origin'.*fetch first"):
            repo.push_notes_and_archive("origin", "refs/notes/devtools/*", "refs/devtools/archives/*")

    def test_pull_fetches_then_merges(self, run, tmp_path):
        repo = GitRepo(str(tmp_path))
        run.side_effect = [
            _completed(),  # fetch
            _completed(stdout="refs/remoteDevtools/origin/archives/reviews\n"),
            _completed(stdout="r1\n"),  # remote archive head
            _completed(returncode=1),  # no local archive yet
            _completed(),  # update-ref
            _completed(stdout="refs/notes/remotes/origin/devtools/reviews\n"),
            _completed(),  # notes merge
        ]
        repo.pull_notes_and_archive("origin", "refs/notes/devtools/*", "refs/devtools/archives/*")
        commands = [c.args[0][1:] for c in run.call_args_list[1:]]
        assert commands[0] == [
            "fetch",
            "origin",
            "+refs/notes/devtools/*:refs/notes/remotes/origin/devtools/*",
            "+refs/devtools/*:refs/remoteDevtools/origin/*",
        ]
        assert commands[1] == ["for-each-ref", "--format=%(refname)", "refs/remoteDevtools/origin/archives"]
        assert ["update-ref", "refs/devtools/archives/reviews", "r1"] in commands
        assert commands[-1] == [
            "notes",
            "--ref",
            "refs/notes/devtools/reviews",
            "merge",
            "-s",
            "cat_sort_uniq",
            "refs/notes/remotes/origin/devtools/reviews",
        ]
