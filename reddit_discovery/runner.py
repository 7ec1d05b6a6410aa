from __future__ import annotations

import sys
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from importlib.metadata import PackageNotFoundError, version
from typing import Any, Literal

from .admission import admit_post
from .config import config_sha256
from .config_schema import AppConfig
from .dedupe import SeenIds
from .errors import StorageError
from .fetcher import RedditListingFetcher
from .keywords import normalize_communities, normalize_keywords
from .post import NormalizedPost
from .request_schema import DiscoveryRequest
from .run_log import RunLogger
from .storage import ItemStore
from .time_window import time_window_for
from .writer import write_posts

RunStatus = Literal["completed", "failed"]


@dataclass(frozen=True)
class DiscoveryResult:
    run_id: str | None
    status: RunStatus
    posts_found: int
    inserted: int = 0
    error: str | None = None
    rejections: dict[str, int] = field(default_factory=dict)
    posts: tuple[NormalizedPost, ...] = ()

    def by_community(self) -> dict[str, int]:
        counts: Counter[str] = Counter(p.community_id for p in self.posts)
        return dict(counts)

    def to_response(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "runId": self.run_id,
            "status": self.status,
            "postsFound": self.posts_found,
        }
        if self.error:
            payload["error"] = self.error
        return payload


class RunSetupError(ValueError):
    """A run cannot start with the inputs it was given."""


def _pkg_version(name: str) -> str:
    try:
        return version(name)
    except PackageNotFoundError:
        return "unknown"


def _versions() -> dict[str, str]:
    return {
        "python": sys.version.split()[0],
        "requests": _pkg_version("requests"),
        "pydantic": _pkg_version("pydantic"),
        "flask": _pkg_version("flask"),
    }


def run_discovery(
    request: DiscoveryRequest,
    *,
    config: AppConfig,
    fetcher: RedditListingFetcher,
    store: ItemStore,
    logger: RunLogger | None = None,
    now: datetime | None = None,
) -> DiscoveryResult:
    """
    Run one discovery pass over the requested communities.

    The run record is created first; if that fails the run is reported failed
    without an id. Setup problems (no keywords, no communities) fail the run
    before any fetch. Communities are processed one at a time; unexpected
    errors mark the run failed instead of propagating.
    """
    log = logger or RunLogger.disabled()
    started = time.monotonic()

    window = time_window_for(request.window, now=now)
    keywords = normalize_keywords(request.keywords)
    communities = normalize_communities(request.communities)

    try:
        run = store.create_run(
            source=request.source,
            schedule_id=request.schedule_id,
            time_window=request.window,
            start_at=window.start.isoformat(),
            end_at=window.end.isoformat(),
            keywords=keywords,
            communities=communities,
            config_hash=config_sha256(config),
            versions=_versions(),
        )
    except StorageError as e:
        log.exception("run_record_failed", exc=e)
        return DiscoveryResult(
            run_id=None,
            status="failed",
            posts_found=0,
            error=f"Could not record run: {e}",
        )

    run_id = run.run_id
    log.set_run_id(run_id)
    log.info(
        "discovery_started",
        source=request.source,
        schedule_id=request.schedule_id,
        keywords=keywords,
        communities=communities,
        window=request.window,
        start_at=run.start_at,
        end_at=run.end_at,
    )

    try:
        if not keywords:
            raise RunSetupError("At least one non-empty keyword is required")
        if not communities:
            raise RunSetupError("An explicit list of communities is required")

        fetcher.start_run()

        rejections: Counter[str] = Counter()
        seen = SeenIds()
        admitted: list[NormalizedPost] = []

        for index, community in enumerate(communities, start=1):
            raw_posts = fetcher.fetch_new(community, limit=request.limit or config.reddit.listing_limit)

            accepted_here = 0
            for raw in raw_posts:
                result = admit_post(
                    raw,
                    requested_community=community,
                    keywords=keywords,
                    window=window,
                )
                if result.post is None:
                    rejections[str(result.reason)] += 1
                    continue
                if not seen.add_post(result.post):
                    rejections["duplicate_id"] += 1
                    continue
                admitted.append(result.post)
                accepted_here += 1

            log.info(
                "community_processed",
                community=community,
                position=index,
                total=len(communities),
                fetched=len(raw_posts),
                admitted=accepted_here,
                blocked=fetcher.policy.is_blocked(community),
            )

        admitted.sort(key=lambda p: p.created_at, reverse=True)
        posts_found = len(admitted)

        written = write_posts(
            store,
            run_id,
            admitted,
            content_max_chars=config.store.content_max_chars,
            logger=log,
        )

        store.complete_run(run_id, total_results=posts_found, inserted_count=written.inserted)

        log.info(
            "discovery_completed",
            posts_found=posts_found,
            inserted=written.inserted,
            duplicates=written.duplicates,
            insert_failures=written.failed,
            rejected_before_write=dict(written.rejected),
            admission_rejections=dict(rejections),
            rate_policy=fetcher.policy.stats(),
            duration_ms=int((time.monotonic() - started) * 1000),
        )

        return DiscoveryResult(
            run_id=run_id,
            status="completed",
            posts_found=posts_found,
            inserted=written.inserted,
            rejections=dict(rejections),
            posts=tuple(admitted),
        )
    except RunSetupError as e:
        log.warning("discovery_setup_failed", error=str(e))
        return _failed(store, run_id, str(e), log)
    except Exception as e:
        log.exception("discovery_failed", exc=e)
        return _failed(store, run_id, str(e) or type(e).__name__, log)
    finally:
        log.set_run_id(None)


def _failed(store: ItemStore, run_id: str, message: str, log: RunLogger) -> DiscoveryResult:
    try:
        store.fail_run(run_id, error_message=message)
    except Exception as e:
        log.exception("run_status_update_failed", exc=e)

    return DiscoveryResult(
        run_id=run_id,
        status="failed",
        posts_found=0,
        error=message,
    )
