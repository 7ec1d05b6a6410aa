from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable

from .dedupe import dedupe_key, post_fingerprint
from .errors import StorageError
from .post import NormalizedPost
from .run_log import RunLogger
from .storage import ItemStore

UNKNOWN_PLACEHOLDERS = frozenset({"unknown", "[unknown]"})

_PERMALINK_RE = re.compile(
    r"^https?://(?:www\.|old\.)?reddit\.com/r/[^/]+/comments/[^/]+/",
    re.IGNORECASE,
)


@dataclass
class WriteResult:
    inserted: int = 0
    duplicates: int = 0
    failed: int = 0
    rejected: Counter[str] = field(default_factory=Counter)

    @property
    def rejected_total(self) -> int:
        return sum(self.rejected.values())


def validate_for_storage(post: NormalizedPost) -> str | None:
    """
    Last gate before a row is written, independent of admission.

    Returns a reason string, or None if the post may be stored.
    """
    author = (post.author or "").strip()
    if not author or author.casefold() in UNKNOWN_PLACEHOLDERS:
        return "unknown_author"

    url = (post.url or "").strip()
    if not url:
        return "missing_url"

    lowered = url.casefold()
    if "/r/unknown/" in lowered or lowered.endswith("/r/unknown"):
        return "unknown_community_url"

    if not _PERMALINK_RE.match(url):
        return "invalid_permalink"

    if f"/r/{post.community_id}/".casefold() not in lowered:
        return "url_community_mismatch"

    return None


def truncate_content(content: str, max_chars: int) -> str:
    text = content or ""
    if max_chars <= 0 or len(text) <= max_chars:
        return text
    return text[:max_chars]


def write_posts(
    store: ItemStore,
    run_id: str,
    posts: Iterable[NormalizedPost],
    *,
    content_max_chars: int = 10000,
    logger: RunLogger | None = None,
) -> WriteResult:
    """
    Persist admitted posts once per content fingerprint.

    A fingerprint collision counts as a duplicate. A failing insert is logged
    and skipped; the rest of the batch is still written.
    """
    log = logger or RunLogger.disabled()
    result = WriteResult()

    for post in posts:
        reason = validate_for_storage(post)
        if reason is not None:
            result.rejected[reason] += 1
            log.info("item_rejected_before_write", url=post.url, post_id=post.id, reason=reason)
            continue

        fingerprint = post_fingerprint(post)
        try:
            inserted = store.insert_item(
                run_id=run_id,
                post=post,
                content=truncate_content(post.content, content_max_chars),
                content_hash=fingerprint,
                dedup_key=dedupe_key(post),
            )
        except StorageError as e:
            result.failed += 1
            log.exception("item_insert_failed", exc=e, url=post.url, post_id=post.id)
            continue

        if inserted:
            result.inserted += 1
        else:
            result.duplicates += 1

    return result
