"""Exceptions raised by appraise_core.

Repository failures are appraise_store.base.RepoError and pass through core
code unchanged.
"""

from __future__ import annotations


class ParseError(ValueError):
    """A single persisted record could not be decoded."""


class LocationError(ValueError):
    """A comment location points outside the file it annotates."""


class ReviewNotFound(LookupError):
    """No valid review request is attached to the given revision."""


class AmbiguousReview(LookupError):
    """More than one open review matches where exactly one was expected."""


class ReviewStateError(ValueError):
    """The review is in the wrong state for the requested operation."""
