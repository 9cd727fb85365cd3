"""web command — serve the reviews of every repository under a directory."""

from __future__ import annotations

import click

from appraise_cli.common import get_config


@click.command("web")
@click.option("--host", default=None, help="Interface to bind. Defaults to web_host from the config.")
@click.option("--port", default=None, type=int, help="Port to listen on. Defaults to web_port from the config.")
@click.option("--root", default=None, help="Directory scanned for repositories. Defaults to scan_root.")
@click.pass_context
def web_cmd(ctx, host: str | None, port: int | None, root: str | None):
    """Serve reviews over HTTP. Send SIGUSR1 to rescan for repositories."""
    from appraise_web.app import serve

    config = get_config(ctx)
    serve(
        host=host or config.get("web_host", "127.0.0.1"),
        port=port if port is not None else int(config.get("web_port", 8080)),
        root=root or config.get("scan_root", "."),
        reflow_width=config.get("reflow_width", 80),
        context_lines=config.get("context_lines", 5),
    )
