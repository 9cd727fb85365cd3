"""Helpers shared by the command modules."""

from __future__ import annotations

import shlex
import time

import click
from rich.console import Console

from appraise_core.errors import AmbiguousReview, LocationError, ParseError, ReviewNotFound, ReviewStateError
from appraise_core.output import ReviewPrinter
from appraise_core.review import summary
from appraise_store.base import BaseRepo, RepoError

console = Console()

# Failures that end a command with a message rather than a traceback.
REVIEW_ERRORS = (RepoError, ReviewNotFound, AmbiguousReview, ReviewStateError, LocationError, ParseError)


def get_repo(ctx: click.Context) -> BaseRepo:
    repo = ctx.obj.get("repo") if ctx.obj else None
    if repo is None:
        raise click.UsageError("Not inside a git repository.")
    return repo


def get_config(ctx: click.Context) -> dict:
    return ctx.obj.get("config", {}) if ctx.obj else {}


def get_printer(ctx: click.Context) -> ReviewPrinter:
    config = get_config(ctx)
    return ReviewPrinter(
        console,
        reflow_width=config.get("reflow_width", 80),
        context_lines=config.get("context_lines", 5),
    )


def get_author(ctx: click.Context, repo: BaseRepo) -> str:
    return get_config(ctx).get("user") or repo.get_user_email()


def get_diff_args(ctx: click.Context, diff_opts: str | None) -> list[str]:
    args = list(get_config(ctx).get("diff_opts") or [])
    if diff_opts:
        args += shlex.split(diff_opts)
    return args


def now() -> str:
    return str(int(time.time()))


def load_review(repo: BaseRepo, revision: str | None) -> summary.Review:
    """Load the review for revision, or the current branch's open review."""
    if revision:
        return summary.get(repo, revision)
    review = summary.get_current(repo)
    if review is None:
        raise click.UsageError("There is no current review; pass a revision.")
    return review


def fail(error: Exception) -> click.ClickException:
    return click.ClickException(str(error))
