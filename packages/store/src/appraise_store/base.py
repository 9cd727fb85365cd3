"""Abstract repository interface.

Review metadata lives in a version-control note store and leans on the commit
graph for ancestry questions. Everything in appraise_core talks to BaseRepo,
not to a concrete backend, so the git subprocess backend and the in-memory
backend used by tests are interchangeable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from appraise_store.models import CommitDetails, FileDiff


class RepoError(Exception):
    """A repository operation failed (missing commit, bad ref, git error)."""


class BaseRepo(ABC):
    """Note store plus commit ancestry oracle.

    Every method raises RepoError on failure. Nothing here retries; callers
    decide whether a failure is fatal.
    """

    @abstractmethod
    def get_path(self) -> str:
        """Return the path of the repository."""

    @abstractmethod
    def get_repo_state_hash(self) -> str:
        """Return a hash that changes whenever any ref (including notes refs) moves."""

    @abstractmethod
    def get_user_email(self) -> str:
        """Return the email address of the configured user."""

    @abstractmethod
    def verify_commit(self, hash: str) -> None:
        """Raise RepoError unless the given hash names a commit."""

    @abstractmethod
    def get_head_ref(self) -> str:
        """Return the checked-out ref, or the commit hash when HEAD is detached."""

    @abstractmethod
    def get_commit_hash(self, ref: str) -> str:
        """Resolve a ref, revision or hash to a full commit hash."""

    @abstractmethod
    def resolve_ref_commit(self, ref: str) -> str:
        """Resolve a ref to a commit, falling back to the tracked remote branch."""

    @abstractmethod
    def get_commit_message(self, ref: str) -> str:
        ...

    @abstractmethod
    def get_commit_time(self, ref: str) -> str:
        """Return the commit time as decimal seconds since the epoch."""

    @abstractmethod
    def get_last_parent(self, ref: str) -> str:
        ...

    @abstractmethod
    def get_commit_details(self, ref: str) -> CommitDetails:
        ...

    @abstractmethod
    def merge_base(self, a: str, b: str) -> str:
        ...

    @abstractmethod
    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        ...

    @abstractmethod
    def diff(self, left: str, right: str, *diff_args: str) -> str:
        """Return the raw unified diff between two commits."""

    @abstractmethod
    def diff1(self, commit: str, *diff_args: str) -> str:
        """Return the raw unified diff introduced by a single commit."""

    @abstractmethod
    def parsed_diff1(self, commit: str, *diff_args: str) -> list[FileDiff]:
        ...

    @abstractmethod
    def show(self, commit: str, path: str) -> str:
        """Return the contents of a file as of the given commit."""

    @abstractmethod
    def switch_to_ref(self, ref: str) -> None:
        """Check out a ref. Refs outside refs/heads/ leave HEAD detached."""

    @abstractmethod
    def archive_ref(self, ref: str, archive: str) -> None:
        """Record ref as a parent of a new commit on the archive ref."""

    @abstractmethod
    def merge_ref(self, ref: str, fast_forward: bool, *messages: str) -> None:
        """Merge ref into the checked-out branch."""

    @abstractmethod
    def rebase_ref(self, ref: str) -> None:
        """Rebase the checked-out commit onto ref."""

    @abstractmethod
    def list_commits(self, ref: str) -> list[str]:
        """Return every commit reachable from ref, oldest first."""

    @abstractmethod
    def list_commits_between(self, start: str, end: str) -> list[str]:
        """Return the commits reachable from end but not from start, oldest first."""

    @abstractmethod
    def get_notes(self, notes_ref: str, revision: str) -> list[str]:
        """Return the note lines attached to revision. No notes is an empty list."""

    @abstractmethod
    def get_all_notes(self, notes_ref: str) -> dict[str, list[str]]:
        """Return every annotated revision under notes_ref with its note lines."""

    @abstractmethod
    def append_note(self, notes_ref: str, revision: str, note: str) -> None:
        ...

    @abstractmethod
    def push_notes_and_archive(self, remote: str, notes_ref_pattern: str, archive_ref_pattern: str) -> None:
        """Push every notes ref and archive ref matching the patterns to remote."""

    @abstractmethod
    def pull_notes_and_archive(self, remote: str, notes_ref_pattern: str, archive_ref_pattern: str) -> None:
        """Fetch the matching notes and archive refs from remote and merge them in.

        Notes are merged line by line (concatenate, sort, de-duplicate);
        archives are merged so that every commit either side kept stays
        reachable.
        """
