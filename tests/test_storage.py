from __future__ import annotations

import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from reddit_discovery.errors import StorageError
from reddit_discovery.post import NormalizedPost
from reddit_discovery.storage import NullItemStore, SQLiteItemStore


def _post(post_id: str, *, content: str = "", day: int = 5, score: int | None = 7) -> NormalizedPost:
    return NormalizedPost(
        id=post_id,
        community_id="cursor",
        title=f"Cursor post {post_id}",
        content=content,
        url=f"https://reddit.com/r/cursor/comments/{post_id}/cursor_post/",
        author="alice",
        created_at=datetime(2024, 1, day, 12, 0, 0, tzinfo=timezone.utc),
        matched_keywords=("cursor",),
        score=score,
        num_comments=2,
    )


def _create_run(store: Any, run_id: str, *, started_at: str = "2024-01-08T00:00:00+00:00"):
    return store.create_run(
        source="manual",
        time_window="7d",
        start_at="2024-01-01T00:00:00+00:00",
        end_at="2024-01-07T23:59:59.999999+00:00",
        keywords=["cursor"],
        communities=["cursor"],
        config_hash="abc123",
        versions={"python": "3.x"},
        run_id=run_id,
        started_at=started_at,
    )


class TestSQLiteItemStore(unittest.TestCase):
    def test_creates_and_reads_run(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            with SQLiteItemStore.open(Path(td) / "state.sqlite") as store:
                run = _create_run(store, "run_test")

                self.assertEqual(run.run_id, "run_test")
                self.assertEqual(run.status, "running")
                self.assertEqual(run.keywords, ["cursor"])
                self.assertEqual(run.versions, {"python": "3.x"})
                self.assertIsNone(run.ended_at)

                store.complete_run("run_test", total_results=3, inserted_count=2)
                fetched = store.get_run("run_test")
                assert fetched is not None
                self.assertEqual(fetched.status, "completed")
                self.assertEqual(fetched.total_results, 3)
                self.assertEqual(fetched.inserted_count, 2)
                self.assertIsNotNone(fetched.ended_at)

                self.assertIsNone(store.get_run("nope"))

    def test_fail_run_keeps_message(self) -> None:
        with SQLiteItemStore.open(":memory:") as store:
            _create_run(store, "run_a")
            store.fail_run("run_a", error_message="An explicit list of communities is required")

            run = store.get_run("run_a")
            assert run is not None
            self.assertEqual(run.status, "failed")
            self.assertEqual(run.error_message, "An explicit list of communities is required")
            self.assertEqual(run.to_dict()["errorMessage"], run.error_message)

    def test_same_fingerprint_is_stored_once(self) -> None:
        with SQLiteItemStore.open(":memory:") as store:
            _create_run(store, "run_a")
            _create_run(store, "run_b")
            post = _post("p1", content="body")

            first = store.insert_item(
                run_id="run_a", post=post, content="body", content_hash="h1", dedup_key="reddit:p1"
            )
            second = store.insert_item(
                run_id="run_b", post=post, content="body", content_hash="h1", dedup_key="reddit:p1"
            )

            self.assertTrue(first)
            self.assertFalse(second)
            self.assertEqual(store.item_count(), 1)
            self.assertEqual(len(store.items_for_run("run_a")), 1)
            self.assertEqual(store.items_for_run("run_b"), [])

    def test_item_requires_existing_run(self) -> None:
        with SQLiteItemStore.open(":memory:") as store:
            with self.assertRaises(StorageError):
                store.insert_item(
                    run_id="missing",
                    post=_post("p1"),
                    content="",
                    content_hash="h1",
                    dedup_key="reddit:p1",
                )

    def test_items_round_trip_newest_first(self) -> None:
        with SQLiteItemStore.open(":memory:") as store:
            _create_run(store, "run_a")
            for post_id, day in (("old", 2), ("new", 6), ("mid", 4)):
                store.insert_item(
                    run_id="run_a",
                    post=_post(post_id, day=day),
                    content="",
                    content_hash=f"h-{post_id}",
                    dedup_key=f"reddit:{post_id}",
                )

            items = store.items_for_run("run_a")
            self.assertEqual([i.source_id for i in items], ["new", "mid", "old"])

            item = items[0]
            self.assertEqual(item.platform, "reddit")
            self.assertEqual(item.keywords, ["cursor"])
            self.assertEqual(item.metadata, {"subreddit": "cursor", "score": 7, "num_comments": 2})
            self.assertEqual(item.to_dict()["keywordsMatched"], ["cursor"])

            self.assertEqual(len(store.items_for_run("run_a", limit=2)), 2)

    def test_recent_runs_newest_first(self) -> None:
        with SQLiteItemStore.open(":memory:") as store:
            _create_run(store, "run_1", started_at="2024-01-08T00:00:00+00:00")
            _create_run(store, "run_2", started_at="2024-01-09T00:00:00+00:00")

            runs = store.recent_runs(limit=10)
            self.assertEqual([r.run_id for r in runs], ["run_2", "run_1"])
            self.assertEqual(store.recent_runs(limit=0), [])


class TestNullItemStore(unittest.TestCase):
    def test_issues_run_ids_and_keeps_nothing(self) -> None:
        store = NullItemStore()
        run = _create_run(store, "")

        self.assertTrue(run.run_id)
        self.assertFalse(
            store.insert_item(
                run_id=run.run_id, post=_post("p1"), content="", content_hash="h", dedup_key="k"
            )
        )
        store.complete_run(run.run_id, total_results=1, inserted_count=0)
        self.assertIsNone(store.get_run(run.run_id))
        self.assertEqual(store.item_count(), 0)


if __name__ == "__main__":
    unittest.main()
