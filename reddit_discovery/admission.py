from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal, Mapping, Sequence
from urllib.parse import urlsplit

from .keywords import clean_community_name, match_keywords, normalize_community
from .post import REMOVED_AUTHOR, NormalizedPost
from .time_window import TimeWindow

PERMALINK_BASE = "https://reddit.com"
COMMUNITY_MARKER = "r"
TOMBSTONES = frozenset({"[deleted]", "[removed]"})

RejectReason = Literal[
    "malformed",
    "out_of_window",
    "deleted",
    "no_match",
    "unresolvable_community",
    "cross_community",
]


@dataclass(frozen=True)
class AdmissionResult:
    post: NormalizedPost | None = None
    reason: RejectReason | None = None

    def __post_init__(self) -> None:
        if (self.post is None) == (self.reason is None):
            raise ValueError("exactly one of post or reason must be set")

    @property
    def accepted(self) -> bool:
        return self.post is not None


def _reject(reason: RejectReason) -> AdmissionResult:
    return AdmissionResult(reason=reason)


def _coerce_str(value: Any) -> str | None:
    if isinstance(value, str):
        s = value.strip()
        return s if s else None
    return None


def _coerce_id(value: Any) -> str | None:
    if isinstance(value, str):
        v = value.strip()
        return v if v else None
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return None


def _coerce_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _coerce_timestamp(value: Any) -> datetime | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def permalink_path(permalink: str | None) -> str | None:
    """Return the path of a permalink, accepting both bare paths and full URLs."""
    value = (permalink or "").strip()
    if not value:
        return None
    if value.startswith(("http://", "https://")):
        path = urlsplit(value).path
    else:
        path = value.split("?", 1)[0].split("#", 1)[0]
    if not path.startswith("/"):
        path = "/" + path
    return path


def community_from_permalink(permalink: str | None) -> str | None:
    """
    Extract the community from the path segment right after "/r/".

    Returns the normalized (lowercased) name, or None when absent or when the
    segment carries characters that would not survive into the canonical URL.
    """
    path = permalink_path(permalink)
    if not path:
        return None

    segs = [s for s in path.split("/") if s]
    for i in range(len(segs) - 1):
        if segs[i].casefold() == COMMUNITY_MARKER:
            raw_name = segs[i + 1]
            if clean_community_name(raw_name) != raw_name:
                return None
            return normalize_community(raw_name) or None
    return None


def canonical_url(permalink: str) -> str:
    path = permalink_path(permalink) or "/"
    if not path.endswith("/"):
        path += "/"
    return f"{PERMALINK_BASE}{path}"


def resolve_author(value: Any) -> str:
    author = _coerce_str(value)
    if author is None or author in TOMBSTONES:
        return REMOVED_AUTHOR
    return author


def is_tombstoned(raw: Mapping[str, Any]) -> bool:
    title = _coerce_str(raw.get("title"))
    body = _coerce_str(raw.get("selftext"))
    if title in TOMBSTONES or body in TOMBSTONES:
        return True
    return bool(raw.get("removed_by_category"))


def admit_post(
    raw: Mapping[str, Any],
    *,
    requested_community: str,
    keywords: Sequence[str],
    window: TimeWindow,
) -> AdmissionResult:
    """
    Decide whether a raw listing post is kept, and normalize it if so.

    Checks run in a fixed order and the first failing one names the rejection.
    `keywords` must already be normalized (see keywords.normalize_keywords).
    """
    post_id = _coerce_id(raw.get("id"))
    if post_id is None:
        return _reject("malformed")

    created_at = _coerce_timestamp(raw.get("created_utc"))
    if created_at is None or not window.contains(created_at):
        return _reject("out_of_window")

    if is_tombstoned(raw):
        return _reject("deleted")

    title = _coerce_str(raw.get("title")) or ""
    matched = match_keywords(title, keywords)
    if not matched:
        return _reject("no_match")

    permalink = _coerce_str(raw.get("permalink"))
    community = community_from_permalink(permalink)
    if community is None or permalink is None:
        return _reject("unresolvable_community")

    claimed = _coerce_str(raw.get("subreddit"))
    if claimed is not None and normalize_community(claimed) != community:
        return _reject("cross_community")

    if normalize_community(requested_community) != community:
        return _reject("cross_community")

    try:
        post = NormalizedPost(
            id=post_id,
            community_id=community,
            title=title,
            content=_coerce_str(raw.get("selftext")) or "",
            url=canonical_url(permalink),
            author=resolve_author(raw.get("author")),
            created_at=created_at,
            matched_keywords=matched,
            score=_coerce_int(raw.get("score")),
            num_comments=_coerce_int(raw.get("num_comments")),
        )
    except ValueError:
        return _reject("malformed")
    return AdmissionResult(post=post)
