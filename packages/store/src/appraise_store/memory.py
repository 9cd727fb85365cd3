"""MemoryRepo — an in-memory BaseRepo.

Holds a small commit graph, refs, notes and file trees entirely in dicts.
Used as the fixture repository throughout the test suites, and handy for
dry runs where touching a real work tree is not wanted.
Commit ids in the fixture history are single letters.
"""

from __future__ import annotations

import difflib
import fnmatch
import hashlib
import logging
from dataclasses import dataclass, field

from appraise_store.base import BaseRepo, RepoError
from appraise_store.models import CommitDetails, FileDiff, parse_diff

logger = logging.getLogger(__name__)

TEST_COMMIT_A = "A"
TEST_COMMIT_B = "B"
TEST_COMMIT_C = "C"
TEST_COMMIT_D = "D"
TEST_COMMIT_E = "E"
TEST_COMMIT_F = "F"
TEST_COMMIT_G = "G"
TEST_COMMIT_H = "H"
TEST_COMMIT_I = "I"
TEST_COMMIT_J = "J"

TEST_TARGET_REF = "refs/heads/master"
TEST_REVIEW_REF = "refs/heads/ojarjur/mychange"
TEST_ALTERNATE_REVIEW_REF = "refs/review/mychange"

TEST_FILE = "file.txt"

_REQUESTS_REF = "refs/notes/devtools/reviews"
_COMMENTS_REF = "refs/notes/devtools/discuss"

_TEST_REQUEST_B = (
    '{"timestamp":"0000000001","targetRef":"refs/heads/master","requester":"ojarjur",'
    '"reviewers":["ojarjur"],"description":"B"}'
)
_TEST_REQUEST_D = (
    '{"timestamp":"0000000002","reviewRef":"refs/heads/ojarjur/mychange","targetRef":"refs/heads/master",'
    '"requester":"ojarjur","reviewers":["ojarjur"],"description":"D"}'
)
_TEST_REQUESTS_G = [
    '{"timestamp":"0000000004","reviewRef":"refs/heads/ojarjur/mychange","targetRef":"refs/heads/master",'
    '"requester":"ojarjur","reviewers":["ojarjur"],"description":"G"}',
    '{"timestamp":"0000000005","reviewRef":"refs/heads/ojarjur/mychange","targetRef":"refs/heads/master",'
    '"requester":"ojarjur","reviewers":["ojarjur"],"description":"Updated description of G"}',
    '{"timestamp":"0000000005","reviewRef":"refs/heads/ojarjur/mychange","targetRef":"refs/heads/master",'
    '"requester":"ojarjur","reviewers":["ojarjur"],"description":"Final description of G"}',
]
_TEST_COMMENT_B = '{"timestamp":"0000000001","author":"ojarjur","location":{"commit":"B"},"resolved":true}'
_TEST_COMMENT_D = '{"timestamp":"0000000002","author":"ojarjur","location":{"commit":"E"},"resolved":true}'


@dataclass
class MemoryCommit:
    message: str
    time: str
    parents: list[str] = field(default_factory=list)
    files: dict[str, str] = field(default_factory=dict)
    author: str = "ojarjur"
    author_email: str = "ojarjur@example.com"


def _lines(contents: str | None) -> list[str]:
    if contents is None:
        return []
    return [line if line.endswith("\n") else line + "\n" for line in contents.splitlines(keepends=True)]


def _diff_trees(old: dict[str, str], new: dict[str, str]) -> str:
    out: list[str] = []
    for path in sorted(set(old) | set(new)):
        before = old.get(path)
        after = new.get(path)
        if before == after:
            continue
        out.append(f"diff --git a/{path} b/{path}\n")
        out.extend(
            difflib.unified_diff(
                _lines(before),
                _lines(after),
                fromfile=f"a/{path}" if before is not None else "/dev/null",
                tofile=f"b/{path}" if after is not None else "/dev/null",
            )
        )
    return "".join(out)


class MemoryRepo(BaseRepo):
    def __init__(
        self,
        commits: dict[str, MemoryCommit] | None = None,
        refs: dict[str, str] | None = None,
        head: str = TEST_TARGET_REF,
        path: str = "/memory/repo",
        user_email: str = "user@example.com",
    ):
        self.commits: dict[str, MemoryCommit] = dict(commits or {})
        self.refs: dict[str, str] = dict(refs or {})
        self.head = head
        self.notes: dict[str, dict[str, list[str]]] = {}
        # Named remotes for push and pull.
        self.remotes: dict[str, MemoryRepo] = {}
        self._path = path
        self._user_email = user_email

    @classmethod
    def for_test(cls) -> MemoryRepo:
        """Build the canonical review history used across the test suites.

        A is the root. B and C both follow A and are merged as D; E follows
        D; F and G both follow E; H merges G with F; I follows H and J
        follows F. refs/heads/master points at J and the review branch
        refs/heads/ojarjur/mychange (and refs/review/mychange) at I.

        B and D are reviewed and submitted; G is an open review with three
        request amendments.
        """

        def commit(name: str, time: int, *parents: str) -> MemoryCommit:
            return MemoryCommit(
                message=f"Commit {name}\n\nMessage body for commit {name}.\n",
                time=str(time),
                parents=list(parents),
                files={TEST_FILE: f"{name} line 1\nline 2\nline 3\n"},
            )

        commits = {
            TEST_COMMIT_A: commit(TEST_COMMIT_A, 0),
            TEST_COMMIT_B: commit(TEST_COMMIT_B, 1, TEST_COMMIT_A),
            TEST_COMMIT_C: commit(TEST_COMMIT_C, 1, TEST_COMMIT_A),
            TEST_COMMIT_D: commit(TEST_COMMIT_D, 2, TEST_COMMIT_B, TEST_COMMIT_C),
            TEST_COMMIT_E: commit(TEST_COMMIT_E, 3, TEST_COMMIT_D),
            TEST_COMMIT_F: commit(TEST_COMMIT_F, 4, TEST_COMMIT_E),
            TEST_COMMIT_G: commit(TEST_COMMIT_G, 4, TEST_COMMIT_E),
            TEST_COMMIT_H: commit(TEST_COMMIT_H, 5, TEST_COMMIT_G, TEST_COMMIT_F),
            TEST_COMMIT_I: commit(TEST_COMMIT_I, 6, TEST_COMMIT_H),
            TEST_COMMIT_J: commit(TEST_COMMIT_J, 6, TEST_COMMIT_F),
        }
        refs = {
            TEST_TARGET_REF: TEST_COMMIT_J,
            TEST_REVIEW_REF: TEST_COMMIT_I,
            TEST_ALTERNATE_REVIEW_REF: TEST_COMMIT_I,
        }
        repo = cls(commits=commits, refs=refs, head=TEST_TARGET_REF)
        repo.notes = {
            _REQUESTS_REF: {
                TEST_COMMIT_B: [_TEST_REQUEST_B],
                TEST_COMMIT_D: [_TEST_REQUEST_D],
                TEST_COMMIT_G: list(_TEST_REQUESTS_G),
            },
            _COMMENTS_REF: {
                TEST_COMMIT_B: [_TEST_COMMENT_B],
                TEST_COMMIT_D: [_TEST_COMMENT_D],
            },
        }
        return repo

    # ------------------------------------------------------------------
    # Graph helpers
    # ------------------------------------------------------------------

    def _resolve(self, ref: str) -> str | None:
        if ref == "HEAD":
            return self.refs.get(self.head, self.head if self.head in self.commits else None)
        if ref in self.refs:
            return self.refs[ref]
        if "refs/heads/" + ref in self.refs:
            return self.refs["refs/heads/" + ref]
        if ref in self.commits:
            return ref
        return None

    def _commit(self, ref: str) -> MemoryCommit:
        return self.commits[self.get_commit_hash(ref)]

    def _ancestors(self, hash: str) -> set[str]:
        seen: set[str] = set()
        stack = [hash]
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self.commits[current].parents)
        return seen

    def _topological(self, tip: str, included: set[str]) -> list[str]:
        ordered: list[str] = []
        visited: set[str] = set()

        def visit(hash: str) -> None:
            if hash in visited or hash not in included:
                return
            visited.add(hash)
            for parent in self.commits[hash].parents:
                visit(parent)
            ordered.append(hash)

        visit(tip)
        return ordered

    def _add_commit(self, message: str, parents: list[str], files: dict[str, str]) -> str:
        time = max((int(self.commits[p].time) for p in parents), default=0) + 1
        content = "\x00".join([message, " ".join(parents), str(time), repr(sorted(files.items()))])
        hash = hashlib.sha1(content.encode("utf-8")).hexdigest()
        self.commits[hash] = MemoryCommit(message=message, time=str(time), parents=list(parents), files=dict(files))
        return hash

    def _move_head(self, commit: str) -> None:
        if self.head in self.refs:
            self.refs[self.head] = commit
        else:
            self.head = commit

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_path(self) -> str:
        return self._path

    def get_repo_state_hash(self) -> str:
        state = repr((self.head, sorted(self.refs.items()), sorted((k, sorted(v.items())) for k, v in self.notes.items())))
        return hashlib.sha1(state.encode("utf-8")).hexdigest()

    def get_user_email(self) -> str:
        return self._user_email

    def verify_commit(self, hash: str) -> None:
        if hash not in self.commits:
            raise RepoError(f"{hash!r} does not name a commit")

    def get_head_ref(self) -> str:
        return self.head

    def get_commit_hash(self, ref: str) -> str:
        hash = self._resolve(ref)
        if hash is None:
            raise RepoError(f"Unknown revision {ref!r}")
        return hash

    def resolve_ref_commit(self, ref: str) -> str:
        if ref in self.refs:
            return self.refs[ref]
        if ref.startswith("refs/heads/"):
            remote = "refs/remotes/origin/" + ref[len("refs/heads/") :]
            if remote in self.refs:
                return self.refs[remote]
        raise RepoError(f"Unknown ref {ref!r}")

    def get_commit_message(self, ref: str) -> str:
        return self._commit(ref).message

    def get_commit_time(self, ref: str) -> str:
        return self._commit(ref).time

    def get_last_parent(self, ref: str) -> str:
        parents = self._commit(ref).parents
        if not parents:
            raise RepoError(f"{ref!r} has no parents")
        return parents[-1]

    def get_commit_details(self, ref: str) -> CommitDetails:
        commit = self._commit(ref)
        tree = hashlib.sha1(repr(sorted(commit.files.items())).encode("utf-8")).hexdigest()
        return CommitDetails(
            author=commit.author,
            author_email=commit.author_email,
            tree=tree,
            time=commit.time,
            parents=list(commit.parents),
            summary=commit.message.split("\n", 1)[0],
        )

    def merge_base(self, a: str, b: str) -> str:
        common = self._ancestors(self.get_commit_hash(a)) & self._ancestors(self.get_commit_hash(b))
        if not common:
            raise RepoError(f"{a!r} and {b!r} have no common ancestor")
        best = [c for c in common if not any(c != other and c in self._ancestors(other) for other in common)]
        return max(best, key=lambda c: (int(self.commits[c].time), c))

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        return self.get_commit_hash(ancestor) in self._ancestors(self.get_commit_hash(descendant))

    def diff(self, left: str, right: str, *diff_args: str) -> str:
        return _diff_trees(self._commit(left).files, self._commit(right).files)

    def diff1(self, commit: str, *diff_args: str) -> str:
        current = self._commit(commit)
        parent_files = self.commits[current.parents[0]].files if current.parents else {}
        return _diff_trees(parent_files, current.files)

    def parsed_diff1(self, commit: str, *diff_args: str) -> list[FileDiff]:
        return parse_diff(self.diff1(commit, *diff_args))

    def show(self, commit: str, path: str) -> str:
        files = self._commit(commit).files
        if path not in files:
            raise RepoError(f"{path!r} does not exist in {commit!r}")
        return files[path]

    def list_commits(self, ref: str) -> list[str]:
        tip = self.get_commit_hash(ref)
        return self._topological(tip, self._ancestors(tip))

    def list_commits_between(self, start: str, end: str) -> list[str]:
        tip = self.get_commit_hash(end)
        included = self._ancestors(tip) - self._ancestors(self.get_commit_hash(start))
        return self._topological(tip, included)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def switch_to_ref(self, ref: str) -> None:
        if ref.startswith("refs/heads/") and ref in self.refs:
            self.head = ref
            return
        self.head = self.get_commit_hash(ref)

    def archive_ref(self, ref: str, archive: str) -> None:
        ref_commit = self.get_commit_hash(ref)
        parents = []
        if archive in self.refs:
            previous = self.refs[archive]
            if ref_commit in self._ancestors(previous):
                logger.debug("%s is already archived under %s", ref_commit, archive)
                return
            parents.append(previous)
        parents.append(ref_commit)
        self.refs[archive] = self._add_commit(f"Archive {ref_commit}", parents, self.commits[ref_commit].files)

    def merge_ref(self, ref: str, fast_forward: bool, *messages: str) -> None:
        head_commit = self.get_commit_hash("HEAD")
        ref_commit = self.get_commit_hash(ref)
        if ref_commit in self._ancestors(head_commit):
            return
        if fast_forward:
            if head_commit not in self._ancestors(ref_commit):
                raise RepoError(f"Cannot fast-forward {self.head!r} to {ref!r}")
            self._move_head(ref_commit)
            return
        message = "\n\n".join(messages) or f"Merge {ref}"
        self._move_head(self._add_commit(message, [head_commit, ref_commit], self.commits[ref_commit].files))

    def rebase_ref(self, ref: str) -> None:
        onto = self.get_commit_hash(ref)
        head_commit = self.get_commit_hash("HEAD")
        tip = onto
        for hash in self.list_commits_between(self.merge_base(onto, head_commit), head_commit):
            commit = self.commits[hash]
            # Like git rebase, merge commits are dropped from the replay.
            if len(commit.parents) > 1:
                continue
            tip = self._add_commit(commit.message, [tip], commit.files)
        self._move_head(tip)

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def get_notes(self, notes_ref: str, revision: str) -> list[str]:
        return list(self.notes.get(notes_ref, {}).get(revision, []))

    def get_all_notes(self, notes_ref: str) -> dict[str, list[str]]:
        return {revision: list(lines) for revision, lines in self.notes.get(notes_ref, {}).items()}

    def append_note(self, notes_ref: str, revision: str, note: str) -> None:
        lines = self.notes.setdefault(notes_ref, {}).setdefault(revision, [])
        lines.extend(line for line in note.splitlines() if line)

    # ------------------------------------------------------------------
    # Remotes
    # ------------------------------------------------------------------

    def _remote(self, remote: str) -> MemoryRepo:
        if remote not in self.remotes:
            raise RepoError(f"Unknown remote {remote!r}")
        return self.remotes[remote]

    def push_notes_and_archive(self, remote: str, notes_ref_pattern: str, archive_ref_pattern: str) -> None:
        _copy_review_data(self, self._remote(remote), notes_ref_pattern, archive_ref_pattern)

    def pull_notes_and_archive(self, remote: str, notes_ref_pattern: str, archive_ref_pattern: str) -> None:
        _copy_review_data(self._remote(remote), self, notes_ref_pattern, archive_ref_pattern)


def _copy_review_data(source: MemoryRepo, dest: MemoryRepo, notes_ref_pattern: str, archive_ref_pattern: str) -> None:
    for hash, commit in source.commits.items():
        dest.commits.setdefault(hash, commit)

    for notes_ref, notes in source.notes.items():
        if not fnmatch.fnmatchcase(notes_ref, notes_ref_pattern):
            continue
        dest_notes = dest.notes.setdefault(notes_ref, {})
        for revision, lines in notes.items():
            existing = dest_notes.get(revision)
            if existing is None:
                dest_notes[revision] = list(lines)
            elif existing != lines:
                # Same result as git's cat_sort_uniq notes merge.
                dest_notes[revision] = sorted(set(existing) | set(lines))

    for ref, hash in source.refs.items():
        if not fnmatch.fnmatchcase(ref, archive_ref_pattern):
            continue
        current = dest.refs.get(ref)
        if current is None or current in dest._ancestors(hash):
            dest.refs[ref] = hash
        elif hash not in dest._ancestors(current):
            dest.refs[ref] = dest._add_commit(
                "Merge local and remote archives", [hash, current], dest.commits[hash].files
            )
