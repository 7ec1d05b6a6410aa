from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Sequence

REMOVED_AUTHOR = "[removed]"


@dataclass(frozen=True)
class NormalizedPost:
    """An admitted post, attributed to exactly one community."""

    id: str
    community_id: str
    title: str
    content: str
    url: str
    author: str
    created_at: datetime
    matched_keywords: Sequence[str]

    score: int | None = None
    num_comments: int | None = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("id must be non-empty")
        if not self.community_id:
            raise ValueError("community_id must be non-empty")
        if f"/r/{self.community_id}/".casefold() not in self.url.casefold():
            raise ValueError("url must contain the community path")
        if not self.author:
            raise ValueError("author must be non-empty")
        if not self.matched_keywords:
            raise ValueError("matched_keywords must be non-empty")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "communityId": self.community_id,
            "title": self.title,
            "content": self.content,
            "url": self.url,
            "author": self.author,
            "createdAt": self.created_at.isoformat(),
            "matchedKeywords": list(self.matched_keywords),
            "score": self.score,
            "numComments": self.num_comments,
        }
