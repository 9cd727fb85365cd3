"""Rebuild conversation threads from the flat set of comments on a commit.

Comments are append-only, content-addressed records: a reply names its parent
by hash and an edit names the version it supersedes via `original`. The
thread forest is a derived index rebuilt on every read:

1. Edit chains collapse into one node whose `comment` is the newest version.
2. Nodes link to their parent through the hash the reply was written against,
   which may be any version of the parent.
3. Children and roots are ordered by the timestamp of their first version.
4. Resolution is recomputed bottom-up.

Missing parents make a root, a missing `original` makes an unedited comment,
and neither fails the build.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping

from appraise_core.review.comment import Comment
from appraise_core.review.encoding import pretty
from appraise_core.review.resolution import Resolution, update_resolved_status

logger = logging.getLogger(__name__)

_TIMESTAMP_WIDTH = 10


def _sort_key(timestamp: str) -> str:
    return timestamp.rjust(_TIMESTAMP_WIDTH, "0")


@dataclass
class CommentThread:
    hash: str
    comment: Comment
    # Earliest version of the comment; only set when it has been edited.
    original: Comment | None = None
    # Superseded versions, oldest first.
    edits: list[Comment] = field(default_factory=list)
    children: list[CommentThread] = field(default_factory=list)
    resolved: Resolution = Resolution.UNDETERMINED
    # True only when this node's own comment was edited; see has_edits().
    edited: bool = False

    def has_edits(self) -> bool:
        """Whether this comment or any reply below it carries edit history."""
        return self.edited or any(child.has_edits() for child in self.children)

    def to_dict(self) -> dict:
        data: dict = {"hash": self.hash, "comment": self.comment.to_dict()}
        if self.original is not None:
            data["original"] = self.original.to_dict()
        if self.edits:
            data["edits"] = [edit.to_dict() for edit in self.edits]
        if self.children:
            data["children"] = [child.to_dict() for child in self.children]
        if self.resolved.resolved is not None:
            data["resolved"] = self.resolved.resolved
        if self.edited:
            data["edited"] = True
        return data


def _chain_root(hash: str, comments_by_hash: Mapping[str, Comment]) -> tuple[str, int]:
    """Follow `original` links back to the first version present. Returns (root, depth)."""
    seen = {hash}
    current = hash
    depth = 0
    while True:
        original = comments_by_hash[current].original
        if not original or original not in comments_by_hash or original in seen:
            return current, depth
        seen.add(original)
        current = original
        depth += 1


def _collapse_edits(
    comments_by_hash: Mapping[str, Comment],
) -> tuple[dict[str, CommentThread], dict[str, str], dict[str, str], dict[str, str]]:
    """Group versions into one node per logical comment.

    Returns the nodes keyed by their node hash, a map from every version's
    hash to its node hash, each node's parent hash, and each node's first
    version timestamp.
    """
    order = {hash: position for position, hash in enumerate(comments_by_hash)}
    chains: dict[str, list[tuple[int, str]]] = {}
    for hash in comments_by_hash:
        root, depth = _chain_root(hash, comments_by_hash)
        chains.setdefault(root, []).append((depth, hash))

    nodes: dict[str, CommentThread] = {}
    version_to_node: dict[str, str] = {}
    parents: dict[str, str] = {}
    first_timestamps: dict[str, str] = {}
    for root, versions in chains.items():
        versions.sort(key=lambda v: (v[0], _sort_key(comments_by_hash[v[1]].timestamp), order[v[1]]))
        ordered = [hash for _, hash in versions]
        current = ordered[-1]
        edits = [comments_by_hash[hash] for hash in ordered[:-1]]
        node = CommentThread(
            hash=current,
            comment=comments_by_hash[current],
            original=comments_by_hash[root] if edits else None,
            edits=edits,
            edited=bool(edits),
        )
        nodes[current] = node
        for hash in ordered:
            version_to_node[hash] = current
        # Edits keep the logical position, so the first version's parent wins.
        parents[current] = next((comments_by_hash[h].parent for h in ordered if comments_by_hash[h].parent), "")
        first_timestamps[current] = comments_by_hash[root].timestamp
    return nodes, version_to_node, parents, first_timestamps


def _creates_cycle(node: str, parent_of: dict[str, str | None]) -> bool:
    seen = set()
    current = parent_of[node]
    while current is not None and current not in seen:
        if current == node:
            return True
        seen.add(current)
        current = parent_of[current]
    return False


def build_comment_threads(comments_by_hash: Mapping[str, Comment]) -> list[CommentThread]:
    """Build the ordered list of root threads for one commit's comments.

    Iteration order of comments_by_hash breaks timestamp ties.
    """
    nodes, version_to_node, parents, first_timestamps = _collapse_edits(comments_by_hash)

    parent_of: dict[str, str | None] = {}
    for hash in nodes:
        parent = version_to_node.get(parents[hash]) if parents[hash] else None
        if parents[hash] and parent is None:
            logger.debug("Comment %s replies to unknown comment %s; treating it as a root", hash, parents[hash])
        parent_of[hash] = parent if parent != hash else None

    roots: list[CommentThread] = []
    for hash, node in nodes.items():
        if parent_of[hash] is not None and _creates_cycle(hash, parent_of):
            logger.debug("Comment %s is part of a reply cycle; treating it as a root", hash)
            parent_of[hash] = None
        parent = parent_of[hash]
        if parent is None:
            roots.append(node)
        else:
            nodes[parent].children.append(node)

    def order(threads: list[CommentThread]) -> None:
        threads.sort(key=lambda t: _sort_key(first_timestamps[t.hash]))
        for thread in threads:
            order(thread.children)

    order(roots)
    for root in roots:
        update_resolved_status(root)
    return roots


def get_comments_json(threads: list[CommentThread]) -> str:
    return pretty([thread.to_dict() for thread in threads])
