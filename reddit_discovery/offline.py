from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping
from urllib.parse import unquote, urlsplit


@dataclass(frozen=True)
class OfflineResponse:
    status_code: int
    payload: Any

    def json(self) -> Any:
        return self.payload


def _community_from_listing_url(url: str) -> str:
    segs = [s for s in urlsplit(url).path.split("/") if s]
    for i in range(len(segs) - 1):
        if segs[i] == "r":
            return unquote(segs[i + 1])
    return "offline"


def _sample_posts(community: str, *, now: datetime) -> list[dict[str, Any]]:
    base = now.astimezone(timezone.utc)

    def _ts(hours_ago: float) -> float:
        return (base - timedelta(hours=hours_ago)).timestamp()

    return [
        {
            "id": f"{community}_1",
            "title": f"Cursor and Claude AI workflow tips from r/{community}",
            "selftext": "Sharing what worked for me this week.",
            "permalink": f"/r/{community}/comments/{community}_1/cursor_and_claude_ai_workflow_tips/",
            "subreddit": community,
            "author": "offline_user",
            "created_utc": _ts(2),
            "score": 12,
            "num_comments": 3,
        },
        {
            "id": f"{community}_2",
            "title": "Link-only post about AI tooling",
            "selftext": "",
            "permalink": f"/r/{community}/comments/{community}_2/link_only_post/",
            "subreddit": community,
            "author": "[deleted]",
            "created_utc": _ts(30),
            "score": 4,
            "num_comments": 0,
        },
        {
            "id": f"{community}_3",
            "title": "Cross-posted AI thread",
            "selftext": "",
            "permalink": "/r/somewhereelse/comments/x3/cross_posted/",
            "subreddit": "somewhereelse",
            "author": "someone",
            "created_utc": _ts(5),
            "score": 1,
            "num_comments": 0,
        },
        {
            "id": f"{community}_4",
            "title": "[deleted]",
            "selftext": "[deleted]",
            "permalink": f"/r/{community}/comments/{community}_4/deleted/",
            "subreddit": community,
            "author": "[deleted]",
            "created_utc": _ts(1),
            "score": 0,
            "num_comments": 0,
        },
    ]


class OfflineRedditSession:
    """
    Stand-in for requests.Session that serves canned listings.

    Every community returns the same small set of posts: one clean match, one
    link-only post by a deleted author, one cross-post and one tombstone.
    """

    def __init__(self, *, now: datetime | None = None) -> None:
        self._now = now
        self.calls: list[str] = []

    def get(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> OfflineResponse:
        self.calls.append(url)
        community = _community_from_listing_url(url)
        now = self._now or datetime.now(timezone.utc)

        posts = _sample_posts(community, now=now)
        limit = int((params or {}).get("limit") or len(posts))
        children = [{"kind": "t3", "data": p} for p in posts[:limit]]
        return OfflineResponse(
            status_code=200,
            payload={"kind": "Listing", "data": {"children": children}},
        )


class OfflineClock:
    """Monotonic clock whose sleep only advances the reading."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)

    def __call__(self) -> float:
        return self._now

    def sleep(self, seconds: float) -> None:
        self._now += max(0.0, float(seconds))
