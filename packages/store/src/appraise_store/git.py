"""GitRepo — BaseRepo backed by the git command line.

Each operation shells out to `git` in the repository directory, so
the user's own git configuration (hooks, signing, credentials) applies.
A non-zero exit raises RepoError carrying git's stderr.
"""

from __future__ import annotations

import hashlib
import logging
import os
import subprocess

from appraise_store.base import BaseRepo, RepoError
from appraise_store.models import CommitDetails, FileDiff, parse_diff

logger = logging.getLogger(__name__)

_BRANCH_PREFIX = "refs/heads/"
_REMOTE_PREFIX = "refs/remotes/origin/"
_NOTES_PREFIX = "refs/notes/"
_DEVTOOLS_PREFIX = "refs/devtools/"
_REMOTE_DEVTOOLS_PREFIX = "refs/remoteDevtools/"


def _decode(data: bytes) -> str:
    # File contents and commit messages need not be UTF-8.
    return data.decode("utf-8", errors="replace")


def _note_lines(data: bytes, notes_ref: str, revision: str) -> list[str]:
    """Split a note blob into lines, dropping any line that is not UTF-8."""
    lines = []
    for raw in data.splitlines():
        try:
            line = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            logger.debug("Skipping undecodable line in %s note for %s: %s", notes_ref, revision, e)
            continue
        if line:
            lines.append(line)
    return lines


def _remote_notes_ref(remote: str, notes_ref: str) -> str:
    # git only merges notes refs that live under refs/notes/.
    return f"{_NOTES_PREFIX}remotes/{remote}/{notes_ref[len(_NOTES_PREFIX):]}"


def _remote_devtools_ref(remote: str, ref: str) -> str:
    return f"{_REMOTE_DEVTOOLS_PREFIX}{remote}/{ref[len(_DEVTOOLS_PREFIX):]}"


def _ref_prefix(pattern: str) -> str:
    """Turn "refs/x/*" into the for-each-ref prefix "refs/x"."""
    return pattern.rstrip("*").rstrip("/")


class GitRepo(BaseRepo):
    """A git repository on the local filesystem.

    The constructor fails with RepoError when path is not inside a git work
    tree. With top_level_only it also fails for subdirectories of a work
    tree, which is what repository discovery needs.
    """

    def __init__(self, path: str = ".", top_level_only: bool = False):
        self._path = os.path.abspath(path)
        try:
            top = self._run("rev-parse", "--show-toplevel")
        except RepoError:
            raise RepoError(f"{path} is not a git repository") from None
        if top_level_only and os.path.realpath(top) != os.path.realpath(self._path):
            raise RepoError(f"{path} is not the top level of a git repository")
        self._path = top

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _exec(self, *args: str) -> subprocess.CompletedProcess:
        """Run git and return the raw result; stdout and stderr are bytes."""
        try:
            return subprocess.run(
                ["git", *args],
                cwd=self._path,
                capture_output=True,
            )
        except FileNotFoundError as e:
            raise RepoError("git executable not found") from e

    def _run_bytes(self, *args: str) -> bytes:
        result = self._exec(*args)
        if result.returncode != 0:
            raise RepoError(f"git {' '.join(args)} failed: {_decode(result.stderr).strip()}")
        return result.stdout

    def _run(self, *args: str) -> str:
        return _decode(self._run_bytes(*args)).rstrip("\n")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_path(self) -> str:
        return self._path

    def get_repo_state_hash(self) -> str:
        result = self._exec("show-ref")
        # show-ref exits 1 for a repository with no refs at all.
        if result.returncode not in (0, 1):
            raise RepoError(f"git show-ref failed: {_decode(result.stderr).strip()}")
        return hashlib.sha1(result.stdout).hexdigest()

    def get_user_email(self) -> str:
        return self._run("config", "user.email")

    def verify_commit(self, hash: str) -> None:
        result = self._exec("cat-file", "-t", hash)
        if result.returncode != 0 or result.stdout.strip() != b"commit":
            raise RepoError(f"{hash!r} does not name a commit")

    def get_head_ref(self) -> str:
        result = self._exec("symbolic-ref", "-q", "HEAD")
        if result.returncode == 0:
            return _decode(result.stdout).strip()
        return self._run("rev-parse", "HEAD")

    def get_commit_hash(self, ref: str) -> str:
        return self._run("show", "-s", "--format=%H", ref, "--")

    def resolve_ref_commit(self, ref: str) -> str:
        if self._exec("show-ref", "--verify", "--quiet", ref).returncode == 0:
            return self.get_commit_hash(ref)
        if ref.startswith(_BRANCH_PREFIX):
            remote = _REMOTE_PREFIX + ref[len(_BRANCH_PREFIX) :]
            if self._exec("show-ref", "--verify", "--quiet", remote).returncode == 0:
                logger.debug("Resolved %s via %s", ref, remote)
                return self.get_commit_hash(remote)
        raise RepoError(f"Unknown ref {ref!r}")

    def get_commit_message(self, ref: str) -> str:
        return self._run("show", "-s", "--format=%B", ref, "--")

    def get_commit_time(self, ref: str) -> str:
        return self._run("show", "-s", "--format=%ct", ref, "--")

    def get_last_parent(self, ref: str) -> str:
        parents = self._run("show", "-s", "--format=%P", ref, "--").split()
        if not parents:
            raise RepoError(f"{ref!r} has no parents")
        return parents[-1]

    def get_commit_details(self, ref: str) -> CommitDetails:
        out = self._run("show", "-s", "--format=%an%x00%ae%x00%T%x00%at%x00%P%x00%s", ref, "--")
        author, email, tree, time, parents, summary = out.split("\x00", 5)
        return CommitDetails(
            author=author,
            author_email=email,
            tree=tree,
            time=time,
            parents=parents.split(),
            summary=summary,
        )

    def merge_base(self, a: str, b: str) -> str:
        return self._run("merge-base", a, b)

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        result = self._exec("merge-base", "--is-ancestor", ancestor, descendant)
        if result.returncode == 0:
            return True
        if result.returncode == 1:
            return False
        raise RepoError(f"Unable to compare {ancestor!r} and {descendant!r}: {_decode(result.stderr).strip()}")

    def diff(self, left: str, right: str, *diff_args: str) -> str:
        return self._run("diff", "--no-color", *diff_args, left, right)

    def diff1(self, commit: str, *diff_args: str) -> str:
        return self._run("show", "--no-color", "--format=", *diff_args, commit)

    def parsed_diff1(self, commit: str, *diff_args: str) -> list[FileDiff]:
        return parse_diff(self.diff1(commit, *diff_args))

    def show(self, commit: str, path: str) -> str:
        return self._run("show", f"{commit}:{path}")

    def list_commits(self, ref: str) -> list[str]:
        out = self._run("rev-list", "--reverse", ref)
        return out.split() if out else []

    def list_commits_between(self, start: str, end: str) -> list[str]:
        out = self._run("rev-list", "--reverse", f"{start}..{end}")
        return out.split() if out else []

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def switch_to_ref(self, ref: str) -> None:
        if ref.startswith(_BRANCH_PREFIX):
            self._run("checkout", ref[len(_BRANCH_PREFIX) :])
        else:
            self._run("checkout", "--detach", ref)

    def archive_ref(self, ref: str, archive: str) -> None:
        ref_commit = self.get_commit_hash(ref)
        args = ["commit-tree", "-m", f"Archive {ref_commit}"]
        archive_head = self._exec("rev-parse", "--verify", "--quiet", archive)
        if archive_head.returncode == 0:
            previous = _decode(archive_head.stdout).strip()
            if self.is_ancestor(ref_commit, previous):
                logger.debug("%s is already archived under %s", ref_commit, archive)
                return
            args += ["-p", previous]
        args += ["-p", ref_commit, f"{ref_commit}^{{tree}}"]
        new_commit = self._run(*args)
        self._run("update-ref", archive, new_commit)

    def merge_ref(self, ref: str, fast_forward: bool, *messages: str) -> None:
        if fast_forward:
            self._run("merge", "--ff-only", ref)
            return
        args = ["merge", "--no-ff"]
        for message in messages:
            args += ["-m", message]
        self._run(*args, ref)

    def rebase_ref(self, ref: str) -> None:
        self._run("rebase", ref)

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def get_notes(self, notes_ref: str, revision: str) -> list[str]:
        result = self._exec("notes", "--ref", notes_ref, "show", revision)
        if result.returncode != 0:
            # git reports a missing note as a failure.
            logger.debug("No notes under %s for %s", notes_ref, revision)
            return []
        return _note_lines(result.stdout, notes_ref, revision)

    def get_all_notes(self, notes_ref: str) -> dict[str, list[str]]:
        result = self._exec("notes", "--ref", notes_ref, "list")
        if result.returncode != 0:
            logger.debug("Notes ref %s does not exist", notes_ref)
            return {}
        notes: dict[str, list[str]] = {}
        for entry in _decode(result.stdout).splitlines():
            parts = entry.split()
            if len(parts) != 2:
                continue
            note_object, revision = parts
            contents = self._run_bytes("cat-file", "blob", note_object)
            notes[revision] = _note_lines(contents, notes_ref, revision)
        return notes

    def append_note(self, notes_ref: str, revision: str, note: str) -> None:
        self._run("notes", "--ref", notes_ref, "append", "-m", note, revision)

    # ------------------------------------------------------------------
    # Remotes
    # ------------------------------------------------------------------

    def _refs_under(self, pattern: str) -> list[str]:
        out = self._run("for-each-ref", "--format=%(refname)", _ref_prefix(pattern))
        return out.split() if out else []

    def push_notes_and_archive(self, remote: str, notes_ref_pattern: str, archive_ref_pattern: str) -> None:
        try:
            self._run(
                "push",
                remote,
                f"{notes_ref_pattern}:{notes_ref_pattern}",
                f"{archive_ref_pattern}:{archive_ref_pattern}",
            )
        except RepoError as e:
            raise RepoError(f"Failed to push the review data to {remote!r}: {e}") from e

    def pull_notes_and_archive(self, remote: str, notes_ref_pattern: str, archive_ref_pattern: str) -> None:
        """Fetch the remote's notes and archives, then merge them into the local refs.

        Notes merge with git's cat_sort_uniq strategy, which suits the
        one-record-per-line note format. Archives only keep commits
        reachable, so a local and remote archive that diverged are joined
        by a merge commit.
        """
        try:
            self._run(
                "fetch",
                remote,
                f"+{notes_ref_pattern}:{_remote_notes_ref(remote, notes_ref_pattern)}",
                f"+{_DEVTOOLS_PREFIX}*:{_REMOTE_DEVTOOLS_PREFIX}{remote}/*",
            )
        except RepoError as e:
            raise RepoError(f"Failed to fetch the review data from {remote!r}: {e}") from e

        remote_archives = _REMOTE_DEVTOOLS_PREFIX + remote + "/"
        for remote_ref in self._refs_under(_remote_devtools_ref(remote, archive_ref_pattern)):
            self._merge_archive(_DEVTOOLS_PREFIX + remote_ref[len(remote_archives) :], remote_ref)

        remote_notes = f"{_NOTES_PREFIX}remotes/{remote}/"
        for remote_ref in self._refs_under(_remote_notes_ref(remote, notes_ref_pattern)):
            local_ref = _NOTES_PREFIX + remote_ref[len(remote_notes) :]
            self._run("notes", "--ref", local_ref, "merge", "-s", "cat_sort_uniq", remote_ref)

    def _merge_archive(self, archive: str, remote_archive: str) -> None:
        remote_hash = self.get_commit_hash(remote_archive)
        local = self._exec("rev-parse", "--verify", "--quiet", archive)
        if local.returncode != 0:
            self._run("update-ref", archive, remote_hash)
            return
        local_hash = _decode(local.stdout).strip()
        if self.is_ancestor(remote_hash, local_hash):
            return
        if self.is_ancestor(local_hash, remote_hash):
            self._run("update-ref", archive, remote_hash, local_hash)
            return
        merged = self._run(
            "commit-tree",
            "-m",
            "Merge local and remote archives",
            "-p",
            remote_hash,
            "-p",
            local_hash,
            f"{remote_hash}^{{tree}}",
        )
        self._run("update-ref", archive, merged, local_hash)
