# tests/test_dedupe.py
from __future__ import annotations

import unittest
from datetime import datetime, timezone

from reddit_discovery.dedupe import SeenIds, content_fingerprint, dedupe_key, post_fingerprint
from reddit_discovery.post import NormalizedPost


def _post(post_id: str, content: str = "") -> NormalizedPost:
    return NormalizedPost(
        id=post_id,
        community_id="cursor",
        title="Cursor tips",
        content=content,
        url=f"https://reddit.com/r/cursor/comments/{post_id}/cursor_tips/",
        author="alice",
        created_at=datetime(2024, 1, 5, tzinfo=timezone.utc),
        matched_keywords=("cursor",),
    )


class TestDedupe(unittest.TestCase):
    def test_link_only_posts_get_distinct_fingerprints(self) -> None:
        self.assertNotEqual(content_fingerprint("", "a1"), content_fingerprint("", "b2"))
        self.assertNotEqual(post_fingerprint(_post("a1")), post_fingerprint(_post("b2")))

    def test_fingerprint_is_stable(self) -> None:
        self.assertEqual(content_fingerprint("hello", "a1"), content_fingerprint("hello", "a1"))
        self.assertEqual(content_fingerprint(None, "a1"), content_fingerprint("", "a1"))
        self.assertEqual(len(content_fingerprint("hello", "a1")), 64)

    def test_dedupe_key(self) -> None:
        self.assertEqual(dedupe_key(_post("abc")), "reddit:abc")

    def test_seen_ids(self) -> None:
        seen = SeenIds()
        self.assertTrue(seen.add_post(_post("a1")))
        self.assertFalse(seen.add_post(_post("a1", content="edited")))

        seen.update([_post("b2"), _post("c3")])
        self.assertEqual(seen.ids, {"a1", "b2", "c3"})


if __name__ == "__main__":
    unittest.main()
