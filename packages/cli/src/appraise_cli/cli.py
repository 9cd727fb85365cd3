"""CLI entry point for appraise.

Commands:
  list     — list open (or all) reviews
  show     — show a review: details, JSON, raw diff or inline comments
  comment  — comment on a review (accept / reject are shorthands)
  request  — request a review of the current branch
  abandon  — abandon an open review
  rebase   — rebase a review onto its target, archiving the old head
  submit   — merge an accepted review into its target
  push     — push review notes and archives to a remote
  pull     — fetch and merge review notes and archives from a remote
  web      — serve every repository under a directory over HTTP
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from appraise_cli.commands.comment import accept_cmd, comment_cmd, reject_cmd
from appraise_cli.commands.list import list_cmd
from appraise_cli.commands.request import abandon_cmd, request_cmd
from appraise_cli.commands.show import show_cmd
from appraise_cli.commands.submit import rebase_cmd, submit_cmd
from appraise_cli.commands.sync import pull_cmd, push_cmd
from appraise_cli.commands.web import web_cmd

console = Console()

# Commands that do not operate on the repository in the working directory.
_REPOLESS_COMMANDS = {"web"}


def _build_repo(repo_path: str):
    """Open the repository the review commands operate on.

    Lives in cli.py so tests can swap in an in-memory repository without
    touching the command modules.
    """
    from appraise_store.git import GitRepo

    return GitRepo(repo_path)


def _configure_logging(level: str) -> None:
    try:
        logging.basicConfig(
            level=level.upper(),
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )
    except ValueError:
        raise click.UsageError(f"Unknown log_level {level!r}.") from None


@click.group()
@click.version_option(
    version=importlib.metadata.version("appraise"),
    prog_name="appraise",
)
@click.option(
    "--config",
    "config_path",
    default=".appraise.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="APPRAISE_CONFIG",
)
@click.option("--repo-path", default=".", show_default=True, help="Path of the git repository to use.")
@click.pass_context
def main(ctx: click.Context, config_path: str, repo_path: str):
    """Distributed code review on top of git notes."""
    from appraise_core.config import load_config
    from appraise_store.base import RepoError

    ctx.ensure_object(dict)

    config = load_config(config_path)
    _configure_logging(str(config.get("log_level", "WARNING")))
    ctx.obj["config"] = config

    if ctx.invoked_subcommand not in _REPOLESS_COMMANDS:
        try:
            ctx.obj["repo"] = _build_repo(repo_path)
        except RepoError as e:
            raise click.UsageError(str(e)) from e


main.add_command(list_cmd)
main.add_command(show_cmd)
main.add_command(comment_cmd)
main.add_command(accept_cmd)
main.add_command(reject_cmd)
main.add_command(request_cmd)
main.add_command(abandon_cmd)
main.add_command(rebase_cmd)
main.add_command(submit_cmd)
main.add_command(push_cmd)
main.add_command(pull_cmd)
main.add_command(web_cmd)
