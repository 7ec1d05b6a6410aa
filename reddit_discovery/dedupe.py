from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Iterable

from .post import NormalizedPost


def content_fingerprint(content: str | None, source_id: str) -> str:
    """
    SHA-256 of the body text followed by the source id.

    The id is part of the hash so link-only posts (empty body) stay distinct.
    """
    payload = f"{content or ''}{source_id}".encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def post_fingerprint(post: NormalizedPost) -> str:
    return content_fingerprint(post.content, post.id)


def dedupe_key(post: NormalizedPost) -> str:
    return f"reddit:{post.id}"


@dataclass
class SeenIds:
    ids: set[str] = field(default_factory=set)

    def add_post(self, post: NormalizedPost) -> bool:
        """Remember the post; return False if its id was already seen."""
        if post.id in self.ids:
            return False
        self.ids.add(post.id)
        return True

    def update(self, posts: Iterable[NormalizedPost]) -> None:
        for post in posts:
            self.add_post(post)
