"""comment, accept and reject commands — add a comment to a review."""

from __future__ import annotations

import click

from appraise_cli.common import REVIEW_ERRORS, console, fail, get_author, get_repo, load_review, now
from appraise_core.review import comment
from appraise_core.review.comment import Comment, Location, Range
from appraise_core.review.threads import CommentThread


def _previous_version(repo, revision: str, hash: str) -> Comment | None:
    notes = repo.get_notes(comment.REF, revision)
    return {c.hash(): c for c in comment.parse_all_valid(notes)}.get(hash)


def _has_comment(threads: list[CommentThread], hash: str) -> bool:
    """Whether hash names any version of any comment in threads, replies included."""
    for thread in threads:
        versions = [thread.comment, *thread.edits]
        if thread.original is not None:
            versions.append(thread.original)
        if thread.hash == hash or any(v.hash() == hash for v in versions):
            return True
        if _has_comment(thread.children, hash):
            return True
    return False


def _post_comment(
    ctx: click.Context,
    revision: str | None,
    message: str,
    parent: str | None = None,
    file: str | None = None,
    lines: str | None = None,
    resolved: bool | None = None,
    edit: str | None = None,
) -> Comment:
    repo = get_repo(ctx)
    try:
        line_range = Range.parse(lines or "")
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--lines") from e

    try:
        review = load_review(repo, revision)
        if parent and not _has_comment(review.comments, parent):
            raise click.UsageError(f"There is no comment {parent} on review {review.revision} to reply to.")
        c = Comment.new(get_author(ctx, repo), message)
        c.timestamp = now()
        c.resolved = resolved
        c.parent = parent or ""
        c.location = Location(commit=review.get_head_commit())

        if edit:
            previous = _previous_version(repo, review.revision, edit)
            if previous is None:
                raise click.UsageError(f"There is no comment {edit} on review {review.revision}.")
            c.original = edit
            c.parent = c.parent or previous.parent
            c.location = previous.location

        if file or lines:
            c.location = Location(
                commit=c.location.commit if c.location else review.get_head_commit(),
                path=file or "",
                range=line_range if line_range.start_line else None,
            )
            c.location.check(repo)

        review.add_comment(c)
    except REVIEW_ERRORS as e:
        raise fail(e) from e
    return c


@click.command("comment")
@click.argument("revision", required=False)
@click.option("-m", "--message", required=True, help="Text of the comment.")
@click.option("-p", "--parent", default=None, help="Hash of the comment being replied to.")
@click.option("-f", "--file", "file", default=None, help="File being commented on.")
@click.option("-l", "--lines", default=None, help='Lines being commented on: "L", "L+C", "L:L" or "L+C:L+C".')
@click.option("--lgtm", is_flag=True, help="Mark the comment as an approval.")
@click.option("--nmw", is_flag=True, help='Mark the comment as "needs more work".')
@click.option("--edit", default=None, help="Hash of an earlier comment this one replaces.")
@click.pass_context
def comment_cmd(ctx, revision, message, parent, file, lines, lgtm, nmw, edit):
    """Comment on the review anchored at REVISION, or on the current review."""
    if lgtm and nmw:
        raise click.UsageError("--lgtm and --nmw are mutually exclusive.")
    resolved = True if lgtm else False if nmw else None
    c = _post_comment(ctx, revision, message, parent=parent, file=file, lines=lines, resolved=resolved, edit=edit)
    console.print(f"Added comment [bold]{c.hash()}[/bold]")


@click.command("accept")
@click.argument("revision", required=False)
@click.option("-m", "--message", default="", help="Optional message to go with the approval.")
@click.pass_context
def accept_cmd(ctx, revision, message):
    """Mark a review as accepted."""
    _post_comment(ctx, revision, message, resolved=True)
    console.print("[green]Review accepted.[/green]")


@click.command("reject")
@click.argument("revision", required=False)
@click.option("-m", "--message", required=True, help="What needs to change.")
@click.pass_context
def reject_cmd(ctx, revision, message):
    """Mark a review as needing more work."""
    _post_comment(ctx, revision, message, resolved=False)
    console.print("[red]Review rejected.[/red]")
