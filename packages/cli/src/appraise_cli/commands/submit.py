"""rebase and submit commands — move a review onto its target branch."""

from __future__ import annotations

from dataclasses import replace

import click

from appraise_cli.common import REVIEW_ERRORS, console, fail, get_repo, load_review, now
from appraise_core.errors import ReviewStateError
from appraise_core.review import request
from appraise_core.review.resolution import Resolution


@click.command("rebase")
@click.argument("revision", required=False)
@click.option(
    "--archive/--no-archive",
    default=True,
    show_default=True,
    help="Keep the pre-rebase head reachable from the archive ref.",
)
@click.pass_context
def rebase_cmd(ctx, revision: str | None, archive: bool):
    """Rebase an open review onto the current head of its target."""
    repo = get_repo(ctx)
    try:
        review = load_review(repo, revision)
        if not review.summary.is_open():
            raise ReviewStateError(f"Review {review.revision} is not open.")
        review.rebase(archive_previous=archive)
    except REVIEW_ERRORS as e:
        raise fail(e) from e
    console.print(f"Review {review.revision[:12]} rebased onto {review.request.target_ref}.")


@click.command("submit")
@click.argument("revision", required=False)
@click.option("--merge", is_flag=True, help="Create a merge commit (default).")
@click.option("--rebase", is_flag=True, help="Rebase the review before merging.")
@click.option("--fast-forward", is_flag=True, help="Refuse to submit unless the target can be fast-forwarded.")
@click.option("--tbr", is_flag=True, help='"To be reviewed": submit even though the review is not accepted.')
@click.pass_context
def submit_cmd(ctx, revision: str | None, merge: bool, rebase: bool, fast_forward: bool, tbr: bool):
    """Merge an accepted review into its target ref."""
    if merge and rebase:
        raise click.UsageError("--merge and --rebase are mutually exclusive.")
    repo = get_repo(ctx)
    try:
        review = load_review(repo, revision)
        summary = review.summary
        if summary.submitted:
            raise ReviewStateError(f"Review {review.revision} has already been submitted.")
        if summary.is_abandoned():
            raise ReviewStateError(f"Review {review.revision} has been abandoned.")
        if not tbr and summary.resolved is not Resolution.ACCEPTED:
            raise ReviewStateError(f"Review {review.revision} has not been accepted; pass --tbr to submit anyway.")

        target = summary.request.target_ref
        if rebase:
            review.rebase(archive_previous=True)
        source = review.get_head_commit()
        target_head = repo.resolve_ref_commit(target)
        if fast_forward and not repo.is_ancestor(target_head, source):
            raise ReviewStateError(f"Refusing to submit a non-fast-forward review; rebase it onto {target} first.")

        repo.switch_to_ref(target)
        if fast_forward:
            repo.merge_ref(source, True)
        else:
            repo.merge_ref(
                source,
                False,
                f"Submitting review {review.revision[:12]}",
                summary.request.description,
            )

        amended = replace(
            summary.request,
            timestamp=now(),
            base_commit=target_head,
            reviewers=list(summary.request.reviewers),
        )
        repo.append_note(request.REF, review.revision, amended.write())
    except REVIEW_ERRORS as e:
        raise fail(e) from e
    console.print(f"[green]Review {review.revision[:12]} submitted to {target}.[/green]")
