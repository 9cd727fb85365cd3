"""push and pull commands — share review data with a remote."""

from __future__ import annotations

import click

from appraise_cli.common import console, fail, get_repo
from appraise_core.review.revision import ARCHIVE_REF_PATTERN, NOTES_REF_PATTERN
from appraise_store.base import RepoError


def _remote(remotes: tuple[str, ...], verb: str) -> str:
    if len(remotes) > 1:
        raise click.UsageError(f"Only {verb} one remote at a time is supported.")
    return remotes[0] if remotes else "origin"


@click.command("push")
@click.argument("remote", nargs=-1)
@click.pass_context
def push_cmd(ctx, remote: tuple[str, ...]):
    """Push review notes and archives to REMOTE (default: origin)."""
    repo = get_repo(ctx)
    name = _remote(remote, "pushing to")
    try:
        repo.push_notes_and_archive(name, NOTES_REF_PATTERN, ARCHIVE_REF_PATTERN)
    except RepoError as e:
        raise fail(e) from e
    console.print(f"Pushed reviews to {name}.")


@click.command("pull")
@click.argument("remote", nargs=-1)
@click.pass_context
def pull_cmd(ctx, remote: tuple[str, ...]):
    """Fetch review notes and archives from REMOTE (default: origin) and merge them."""
    repo = get_repo(ctx)
    name = _remote(remote, "pulling from")
    try:
        repo.pull_notes_and_archive(name, NOTES_REF_PATTERN, ARCHIVE_REF_PATTERN)
    except RepoError as e:
        raise fail(e) from e
    console.print(f"Pulled reviews from {name}.")
