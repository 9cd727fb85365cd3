"""request and abandon commands — open and close reviews."""

from __future__ import annotations

from dataclasses import replace

import click

from appraise_cli.common import REVIEW_ERRORS, console, fail, get_author, get_config, get_repo, load_review, now
from appraise_core.errors import ReviewStateError
from appraise_core.review import request
from appraise_core.review.comment import Comment, Location
from appraise_core.review.request import Request


@click.command("request")
@click.option("-r", "--reviewers", default="", help="Comma-separated list of reviewers.")
@click.option("--source", default=None, help="Ref holding the change. Defaults to the checked-out ref.")
@click.option("--target", default=None, help="Ref the change should be merged into.")
@click.option("-m", "--message", default=None, help="Review description. Defaults to the first commit's message.")
@click.pass_context
def request_cmd(ctx, reviewers: str, source: str | None, target: str | None, message: str | None):
    """Request a review of the commits in SOURCE that are not in TARGET."""
    repo = get_repo(ctx)
    target = target or get_config(ctx).get("target_ref", "refs/heads/master")
    try:
        source = source or repo.get_head_ref()
        if source == target:
            raise click.UsageError(f"The source and target of a review must differ (both are {source}).")
        commits = repo.list_commits_between(target, source)
        if not commits:
            raise click.UsageError(f"There are no commits in {source} that are not already in {target}.")
        review_commit = commits[0]

        r = Request.new(
            requester=get_author(ctx, repo),
            reviewers=[name.strip() for name in reviewers.split(",") if name.strip()],
            review_ref=source,
            target_ref=target,
            description=message if message is not None else repo.get_commit_message(review_commit),
        )
        r.timestamp = now()
        r.base_commit = repo.merge_base(target, source)
        repo.append_note(request.REF, review_commit, r.write())
    except REVIEW_ERRORS as e:
        raise fail(e) from e
    console.print(f"Review requested: [bold]{review_commit}[/bold]")


@click.command("abandon")
@click.argument("revision", required=False)
@click.option("-m", "--message", default="", help="Optional explanation, added as a comment.")
@click.pass_context
def abandon_cmd(ctx, revision: str | None, message: str):
    """Abandon an open review."""
    repo = get_repo(ctx)
    try:
        review = load_review(repo, revision)
        if not review.summary.is_open():
            raise ReviewStateError(f"Review {review.revision} is not open.")
        abandoned = replace(review.request, target_ref="", timestamp=now(), reviewers=list(review.request.reviewers))
        repo.append_note(request.REF, review.revision, abandoned.write())
        if message:
            c = Comment.new(get_author(ctx, repo), message)
            c.timestamp = now()
            c.location = Location(commit=review.get_head_commit())
            review.add_comment(c)
    except REVIEW_ERRORS as e:
        raise fail(e) from e
    console.print(f"Review {review.revision[:12]} abandoned.")
