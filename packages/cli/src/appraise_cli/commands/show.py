"""show command — details of a single review."""

from __future__ import annotations

import click

from appraise_cli.common import REVIEW_ERRORS, fail, get_diff_args, get_printer, get_repo, load_review


@click.command("show")
@click.argument("revision", required=False)
@click.option("--json", "as_json", is_flag=True, help="Print the review as JSON.")
@click.option("--diff", "show_diff", is_flag=True, help="Print the review's diff.")
@click.option("--inline", "inline", is_flag=True, help="Print the reviewed commit with comments inline.")
@click.option("--diff-opts", default=None, help='Extra arguments for the diff, e.g. "--stat".')
@click.pass_context
def show_cmd(ctx, revision: str | None, as_json: bool, show_diff: bool, inline: bool, diff_opts: str | None):
    """Show the review anchored at REVISION, or the current branch's review."""
    if sum([as_json, show_diff, inline]) > 1:
        raise click.UsageError("Only one of --json, --diff and --inline may be given.")

    repo = get_repo(ctx)
    printer = get_printer(ctx)
    diff_args = get_diff_args(ctx, diff_opts)
    try:
        review = load_review(repo, revision)
        if as_json:
            printer.print_json(review)
        elif show_diff:
            printer.print_diff(review, *diff_args)
        elif inline:
            printer.print_inline_comments(review, *diff_args)
        else:
            printer.print_details(review)
    except REVIEW_ERRORS as e:
        raise fail(e) from e
