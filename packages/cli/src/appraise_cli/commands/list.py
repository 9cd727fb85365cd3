"""list command — one line per review."""

from __future__ import annotations

import click

from appraise_cli.common import REVIEW_ERRORS, fail, get_printer, get_repo
from appraise_core.review import summary


@click.command("list")
@click.option("--all", "list_all", is_flag=True, help="Include submitted and abandoned reviews.")
@click.option("--json", "as_json", is_flag=True, help="Print the reviews as JSON.")
@click.pass_context
def list_cmd(ctx, list_all: bool, as_json: bool):
    """List open reviews, newest first."""
    repo = get_repo(ctx)
    try:
        summaries = summary.list_all(repo) if list_all else summary.list_open(repo)
    except REVIEW_ERRORS as e:
        raise fail(e) from e

    printer = get_printer(ctx)
    if as_json:
        printer.print_summaries_json(summaries)
    else:
        printer.print_summaries(summaries, list_all)
