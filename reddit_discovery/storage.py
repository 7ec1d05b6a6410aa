from __future__ import annotations

import json
import sqlite3
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Sequence

from .errors import StorageError
from .post import NormalizedPost
from .storage_schema import initialize_sqlite

RUN_STATUSES = ("running", "completed", "failed")


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _json_dumps(value: Any) -> str:
    return json.dumps(
        value,
        ensure_ascii=False,
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )


def _json_loads(raw: Any, default: Any) -> Any:
    text = (raw or "").strip() if isinstance(raw, str) else ""
    if not text:
        return default
    try:
        value = json.loads(text)
    except ValueError:
        return default
    if not isinstance(value, type(default)):
        return default
    return value


def _as_path(value: str | Path) -> str:
    return str(value)


def _require_id(value: str, name: str) -> str:
    v = (value or "").strip()
    if not v:
        raise ValueError(f"{name} must be non-empty")
    return v


@dataclass(frozen=True)
class RunRecord:
    run_id: str
    source: str
    schedule_id: str | None
    status: str
    time_window: str
    start_at: str
    end_at: str
    keywords: list[str]
    communities: list[str]
    total_results: int
    inserted_count: int
    error_message: str | None
    config_hash: str
    versions: dict[str, str]
    started_at: str
    ended_at: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "runId": self.run_id,
            "source": self.source,
            "scheduleId": self.schedule_id,
            "status": self.status,
            "timeWindow": self.time_window,
            "startAt": self.start_at,
            "endAt": self.end_at,
            "keywords": list(self.keywords),
            "communities": list(self.communities),
            "totalResults": self.total_results,
            "insertedCount": self.inserted_count,
            "errorMessage": self.error_message,
            "configHash": self.config_hash,
            "startedAt": self.started_at,
            "endedAt": self.ended_at,
        }


@dataclass(frozen=True)
class StoredItem:
    id: int
    run_id: str
    platform: str
    source_id: str
    title: str
    content: str
    author: str
    url: str
    created_at: str
    content_hash: str
    dedup_key: str
    keywords: list[str]
    metadata: dict[str, Any]
    inserted_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "runId": self.run_id,
            "platform": self.platform,
            "sourceId": self.source_id,
            "title": self.title,
            "content": self.content,
            "author": self.author,
            "url": self.url,
            "createdAt": self.created_at,
            "contentHash": self.content_hash,
            "dedupKey": self.dedup_key,
            "keywordsMatched": list(self.keywords),
            "metadata": dict(self.metadata),
            "insertedAt": self.inserted_at,
        }


class ItemStore(ABC):
    """Persistence capability injected into runs and the trigger server."""

    @abstractmethod
    def create_run(
        self,
        *,
        source: str,
        time_window: str,
        start_at: str,
        end_at: str,
        keywords: Sequence[str],
        communities: Sequence[str],
        config_hash: str,
        versions: Mapping[str, str] | None = None,
        schedule_id: str | None = None,
        run_id: str | None = None,
        started_at: str | None = None,
    ) -> RunRecord:
        """Create a run in status 'running'."""

    @abstractmethod
    def complete_run(
        self,
        run_id: str,
        *,
        total_results: int,
        inserted_count: int,
        ended_at: str | None = None,
    ) -> None:
        """Mark a run completed with its result counts."""

    @abstractmethod
    def fail_run(
        self,
        run_id: str,
        *,
        error_message: str,
        ended_at: str | None = None,
    ) -> None:
        """Mark a run failed with a descriptive message."""

    @abstractmethod
    def get_run(self, run_id: str) -> RunRecord | None:
        """Return the run, or None if unknown."""

    @abstractmethod
    def recent_runs(self, *, limit: int = 20) -> list[RunRecord]:
        """Return runs, newest first."""

    @abstractmethod
    def insert_item(
        self,
        *,
        run_id: str,
        post: NormalizedPost,
        content: str,
        content_hash: str,
        dedup_key: str,
        inserted_at: str | None = None,
    ) -> bool:
        """Insert unless the fingerprint exists; return True if a row was added."""

    @abstractmethod
    def items_for_run(self, run_id: str, *, limit: int | None = None) -> list[StoredItem]:
        """Return items inserted by a run, newest post first."""

    @abstractmethod
    def item_count(self) -> int:
        """Return the number of stored items."""

    def close(self) -> None:
        return None

    def __enter__(self) -> "ItemStore":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()


class SQLiteItemStore(ItemStore):
    """
    SQLite-backed store for runs and admitted items.

    Items are unique on content_hash; inserting a known fingerprint is a no-op.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._conn.row_factory = sqlite3.Row

    @classmethod
    def open(cls, path: str | Path) -> "SQLiteItemStore":
        db_path = _as_path(path)
        if db_path != ":memory:":
            p = Path(db_path)
            p.parent.mkdir(parents=True, exist_ok=True)

        try:
            conn = sqlite3.connect(db_path)
        except sqlite3.DatabaseError as e:
            raise StorageError(f"Failed to open sqlite database: {db_path}: {e}") from e

        try:
            initialize_sqlite(conn)
        except Exception as e:
            conn.close()
            raise StorageError(f"Failed to initialize sqlite schema: {e}") from e

        return cls(conn)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "SQLiteItemStore":
        return self

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    def create_run(
        self,
        *,
        source: str,
        time_window: str,
        start_at: str,
        end_at: str,
        keywords: Sequence[str],
        communities: Sequence[str],
        config_hash: str,
        versions: Mapping[str, str] | None = None,
        schedule_id: str | None = None,
        run_id: str | None = None,
        started_at: str | None = None,
    ) -> RunRecord:
        rid = _require_id(run_id or uuid.uuid4().hex, "run_id")
        src = _require_id(source, "source")
        cfg_hash = _require_id(config_hash, "config_hash")
        start = (started_at or _utc_now_iso()).strip()
        sched = (schedule_id or "").strip() or None

        try:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO runs(
                      run_id, source, schedule_id, status, time_window, start_at, end_at,
                      keywords_json, communities_json, config_hash, versions_json, started_at
                    ) VALUES (?, ?, ?, 'running', ?, ?, ?, ?, ?, ?, ?, ?)
                    """.strip(),
                    (
                        rid,
                        src,
                        sched,
                        time_window,
                        start_at,
                        end_at,
                        _json_dumps(list(keywords)),
                        _json_dumps(list(communities)),
                        cfg_hash,
                        _json_dumps(dict(versions or {})),
                        start,
                    ),
                )
        except sqlite3.DatabaseError as e:
            raise StorageError(f"Failed to create run record: {e}") from e

        record = self.get_run(rid)
        if record is None:
            raise StorageError("Failed to read run record after insert")
        return record

    def complete_run(
        self,
        run_id: str,
        *,
        total_results: int,
        inserted_count: int,
        ended_at: str | None = None,
    ) -> None:
        rid = _require_id(run_id, "run_id")
        end = (ended_at or _utc_now_iso()).strip()

        try:
            with self._conn:
                self._conn.execute(
                    """
                    UPDATE runs
                    SET status = 'completed', total_results = ?, inserted_count = ?, ended_at = ?
                    WHERE run_id = ?
                    """.strip(),
                    (int(total_results), int(inserted_count), end, rid),
                )
        except sqlite3.DatabaseError as e:
            raise StorageError(f"Failed to complete run: {e}") from e

    def fail_run(
        self,
        run_id: str,
        *,
        error_message: str,
        ended_at: str | None = None,
    ) -> None:
        rid = _require_id(run_id, "run_id")
        end = (ended_at or _utc_now_iso()).strip()

        try:
            with self._conn:
                self._conn.execute(
                    "UPDATE runs SET status = 'failed', error_message = ?, ended_at = ? WHERE run_id = ?",
                    (str(error_message or "").strip() or "failed", end, rid),
                )
        except sqlite3.DatabaseError as e:
            raise StorageError(f"Failed to mark run failed: {e}") from e

    def get_run(self, run_id: str) -> RunRecord | None:
        rid = _require_id(run_id, "run_id")

        row = self._conn.execute("SELECT * FROM runs WHERE run_id = ?", (rid,)).fetchone()
        if row is None:
            return None
        return self._run_from_row(row)

    def recent_runs(self, *, limit: int = 20) -> list[RunRecord]:
        if limit <= 0:
            return []

        rows = self._conn.execute(
            "SELECT * FROM runs ORDER BY started_at DESC, rowid DESC LIMIT ?",
            (int(limit),),
        ).fetchall()
        return [self._run_from_row(r) for r in rows]

    def insert_item(
        self,
        *,
        run_id: str,
        post: NormalizedPost,
        content: str,
        content_hash: str,
        dedup_key: str,
        inserted_at: str | None = None,
    ) -> bool:
        rid = _require_id(run_id, "run_id")
        fingerprint = _require_id(content_hash, "content_hash")
        key = _require_id(dedup_key, "dedup_key")
        ts = (inserted_at or _utc_now_iso()).strip()

        metadata = {
            "subreddit": post.community_id,
            "score": post.score,
            "num_comments": post.num_comments,
        }

        try:
            with self._conn:
                cur = self._conn.execute(
                    """
                    INSERT INTO normalized_items(
                      run_id, platform, source_id, title, content, author, url, created_at,
                      content_hash, dedup_key, keywords_json, metadata_json, inserted_at
                    ) VALUES (?, 'reddit', ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(content_hash) DO NOTHING
                    """.strip(),
                    (
                        rid,
                        post.id,
                        post.title,
                        content,
                        post.author,
                        post.url,
                        post.created_at.isoformat(),
                        fingerprint,
                        key,
                        _json_dumps(list(post.matched_keywords)),
                        _json_dumps(metadata),
                        ts,
                    ),
                )
        except sqlite3.IntegrityError as e:
            raise StorageError(f"Failed to insert item {post.id}; ensure the run exists: {e}") from e
        except sqlite3.DatabaseError as e:
            raise StorageError(f"Failed to insert item {post.id}: {e}") from e

        return cur.rowcount == 1

    def items_for_run(self, run_id: str, *, limit: int | None = None) -> list[StoredItem]:
        rid = _require_id(run_id, "run_id")
        if limit is not None and limit <= 0:
            return []

        sql = "SELECT * FROM normalized_items WHERE run_id = ? ORDER BY created_at DESC, id DESC"
        params: tuple[Any, ...] = (rid,)
        if limit is not None:
            sql += " LIMIT ?"
            params = (rid, int(limit))

        rows = self._conn.execute(sql, params).fetchall()
        return [self._item_from_row(r) for r in rows]

    def item_count(self) -> int:
        row = self._conn.execute("SELECT COUNT(1) AS n FROM normalized_items").fetchone()
        return int(row["n"]) if row is not None else 0

    @staticmethod
    def _run_from_row(row: sqlite3.Row) -> RunRecord:
        versions = _json_loads(row["versions_json"], {})
        return RunRecord(
            run_id=str(row["run_id"]),
            source=str(row["source"]),
            schedule_id=str(row["schedule_id"]) if row["schedule_id"] is not None else None,
            status=str(row["status"]),
            time_window=str(row["time_window"]),
            start_at=str(row["start_at"]),
            end_at=str(row["end_at"]),
            keywords=[str(k) for k in _json_loads(row["keywords_json"], [])],
            communities=[str(c) for c in _json_loads(row["communities_json"], [])],
            total_results=int(row["total_results"]),
            inserted_count=int(row["inserted_count"]),
            error_message=str(row["error_message"]) if row["error_message"] is not None else None,
            config_hash=str(row["config_hash"]),
            versions={str(k): str(v) for k, v in versions.items()},
            started_at=str(row["started_at"]),
            ended_at=str(row["ended_at"]) if row["ended_at"] is not None else None,
        )

    @staticmethod
    def _item_from_row(row: sqlite3.Row) -> StoredItem:
        return StoredItem(
            id=int(row["id"]),
            run_id=str(row["run_id"]),
            platform=str(row["platform"]),
            source_id=str(row["source_id"]),
            title=str(row["title"]),
            content=str(row["content"]),
            author=str(row["author"]),
            url=str(row["url"]),
            created_at=str(row["created_at"]),
            content_hash=str(row["content_hash"]),
            dedup_key=str(row["dedup_key"]),
            keywords=[str(k) for k in _json_loads(row["keywords_json"], [])],
            metadata=_json_loads(row["metadata_json"], {}),
            inserted_at=str(row["inserted_at"]),
        )


class NullItemStore(ItemStore):
    """
    Store used when persistence is disabled.

    Runs still get ids so callers can report them; nothing is kept.
    """

    def create_run(
        self,
        *,
        source: str,
        time_window: str,
        start_at: str,
        end_at: str,
        keywords: Sequence[str],
        communities: Sequence[str],
        config_hash: str,
        versions: Mapping[str, str] | None = None,
        schedule_id: str | None = None,
        run_id: str | None = None,
        started_at: str | None = None,
    ) -> RunRecord:
        return RunRecord(
            run_id=(run_id or "").strip() or uuid.uuid4().hex,
            source=source,
            schedule_id=schedule_id,
            status="running",
            time_window=time_window,
            start_at=start_at,
            end_at=end_at,
            keywords=list(keywords),
            communities=list(communities),
            total_results=0,
            inserted_count=0,
            error_message=None,
            config_hash=config_hash,
            versions=dict(versions or {}),
            started_at=(started_at or _utc_now_iso()),
            ended_at=None,
        )

    def complete_run(
        self,
        run_id: str,
        *,
        total_results: int,
        inserted_count: int,
        ended_at: str | None = None,
    ) -> None:
        return None

    def fail_run(
        self,
        run_id: str,
        *,
        error_message: str,
        ended_at: str | None = None,
    ) -> None:
        return None

    def get_run(self, run_id: str) -> RunRecord | None:
        return None

    def recent_runs(self, *, limit: int = 20) -> list[RunRecord]:
        return []

    def insert_item(
        self,
        *,
        run_id: str,
        post: NormalizedPost,
        content: str,
        content_hash: str,
        dedup_key: str,
        inserted_at: str | None = None,
    ) -> bool:
        return False

    def items_for_run(self, run_id: str, *, limit: int | None = None) -> list[StoredItem]:
        return []

    def item_count(self) -> int:
        return 0
