"""HTTP front end over a Registry snapshot.

Every handler reads registry.snapshot() once and works from that mapping, so a
rescan that lands mid-request cannot change what the request sees.
"""

from __future__ import annotations

import io
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse
from rich.console import Console

from appraise_core.errors import ReviewNotFound
from appraise_core.output import ReviewPrinter
from appraise_store.base import RepoError
from appraise_web.registry import RepoDetails, Registry

logger = logging.getLogger(__name__)


def _repo_or_404(registry: Registry, name: str) -> RepoDetails:
    details = registry.snapshot().get(name)
    if details is None:
        raise HTTPException(status_code=404, detail=f"Repository {name} not found!")
    return details


def _review_or_404(details: RepoDetails, revision: str):
    found = details.find_review(revision)
    if found is None:
        raise HTTPException(status_code=404, detail=f"Review {revision} not found!")
    try:
        return found.details()
    except (RepoError, ReviewNotFound) as e:
        logger.warning("Failed to load review %s in %s: %s", revision, details.path, e)
        raise HTTPException(status_code=404, detail=str(e)) from e


def create_app(
    registry: Registry,
    root: str | None = None,
    reflow_width: int = 80,
    context_lines: int = 5,
) -> FastAPI:
    """Build the app. With root set, the registry is (re)discovered at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if root is not None:
            registry.discover(root)
        yield

    app = FastAPI(title="appraise", lifespan=lifespan)

    @app.get("/_ah/health", response_class=PlainTextResponse)
    def health():
        return "ok"

    @app.get("/repos")
    def list_repos():
        return {name: details.to_dict() for name, details in sorted(registry.snapshot().items())}

    @app.get("/{repo:path}/branches")
    def list_branches(repo: str):
        details = _repo_or_404(registry, repo)
        return {
            "branches": [branch.to_dict() for branch in details.branches],
            "abandoned_reviews": [s.revision for s in details.abandoned_reviews],
        }

    @app.get("/{repo:path}/reviews/{revision}")
    def show_review(repo: str, revision: str):
        details = _repo_or_404(registry, repo)
        review = _review_or_404(details, revision)
        index = details.review_map[revision]
        data = review.to_dict()
        previous, following = index.previous(details), index.next(details)
        data["branch"] = index.branch_title(details)
        data["previous"] = previous.summary(details).revision if previous else None
        data["next"] = following.summary(details).revision if following else None
        return data

    @app.get("/{repo:path}/reviews/{revision}/inline", response_class=PlainTextResponse)
    def show_inline(repo: str, revision: str):
        details = _repo_or_404(registry, repo)
        review = _review_or_404(details, revision)
        buffer = io.StringIO()
        printer = ReviewPrinter(
            Console(file=buffer, width=max(reflow_width, 80), color_system=None),
            reflow_width=reflow_width,
            context_lines=context_lines,
        )
        try:
            printer.print_inline_comments(review)
        except RepoError as e:
            raise HTTPException(status_code=500, detail=str(e)) from e
        return buffer.getvalue()

    return app


def serve(host: str, port: int, root: str, reflow_width: int = 80, context_lines: int = 5) -> None:
    """Discover repositories under root and serve them until interrupted."""
    import uvicorn

    registry = Registry()
    registry.install_rescan_signal(root)
    app = create_app(registry, root=root, reflow_width=reflow_width, context_lines=context_lines)
    logger.info("Serving repositories under %s on %s:%d", root, host, port)
    uvicorn.run(app, host=host, port=port)
