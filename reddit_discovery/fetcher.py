from __future__ import annotations

import time
from typing import Any, Callable, Mapping
from urllib.parse import quote

import requests

from .config_schema import RedditConfig
from .errors import FetchError
from .keywords import normalize_community
from .rate_policy import RatePolicy
from .run_log import RunLogger

SleepFn = Callable[[float], None]

_BASE_HEADERS = {
    "Accept": "application/json",
    "Accept-Language": "en-US,en;q=0.9",
    "Referer": "https://www.reddit.com",
}


def _listing_children(payload: Any) -> list[dict[str, Any]]:
    if not isinstance(payload, Mapping):
        return []
    data = payload.get("data")
    if not isinstance(data, Mapping):
        return []
    children = data.get("children")
    if not isinstance(children, list):
        return []

    out: list[dict[str, Any]] = []
    for child in children:
        if not isinstance(child, Mapping):
            continue
        post = child.get("data")
        if isinstance(post, Mapping):
            out.append(dict(post))
    return out


class RedditListingFetcher:
    """
    Thin wrapper around Reddit's public per-subreddit "new" listing.

    Every call goes through the RatePolicy. Transport failures and upstream
    rejections are logged and come back as an empty list; nothing here raises
    past the fetch boundary except misuse (an empty community name).
    """

    def __init__(
        self,
        reddit: RedditConfig | None = None,
        *,
        policy: RatePolicy | None = None,
        session: requests.Session | None = None,
        logger: RunLogger | None = None,
        sleep_fn: SleepFn | None = None,
    ) -> None:
        self._reddit = reddit or RedditConfig()
        self._policy = policy or RatePolicy()
        self._log = logger or RunLogger.disabled()
        self._sleep = sleep_fn or time.sleep

        if session is not None:
            self._session = session
        else:
            self._session = requests.Session()
            self._session.headers.update(_BASE_HEADERS)
            self._session.headers["User-Agent"] = self._reddit.user_agent

    @property
    def policy(self) -> RatePolicy:
        return self._policy

    def set_logger(self, logger: RunLogger) -> None:
        self._log = logger

    def start_run(self) -> None:
        self._policy.reset_run()
        self._log.info("rate_policy_reset")

    def listing_url(self, community: str) -> str:
        return f"{self._reddit.base_url}/r/{quote(community, safe='')}/new.json"

    def fetch_new(
        self,
        community: str,
        *,
        limit: int | None = None,
        keyword: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        Fetch the newest posts of one community as raw post mappings.

        `keyword` names the search term the call serves, if any, so that a
        keyword blocked on the policy skips the call.

        Returns [] when the policy aborts, the upstream rejects the call, or the
        call fails in transport.
        """
        name = normalize_community(community)
        if not name:
            raise FetchError("community must be a non-empty name")

        n = int(limit or self._reddit.listing_limit)
        url = self.listing_url(name)

        while True:
            decision = self._policy.admit(name, keyword=keyword)
            if decision.action == "proceed":
                break
            if decision.action == "abort":
                self._log.info(
                    "fetch_skipped",
                    url=url,
                    community=name,
                    keyword=keyword,
                    reason=decision.reason,
                )
                return []
            self._log.info(
                "fetch_waiting",
                url=url,
                community=name,
                reason=decision.reason,
                wait_seconds=round(decision.wait_seconds, 3),
            )
            self._sleep(decision.wait_seconds)

        self._policy.record_attempt()
        started = time.monotonic()

        try:
            resp = self._session.get(
                url,
                params={"limit": n},
                timeout=self._reddit.timeout_seconds,
            )
        except requests.RequestException as e:
            self._log.warning(
                "fetch_transport_error",
                url=url,
                community=name,
                error_type=type(e).__name__,
                error=str(e),
            )
            return []

        status = int(resp.status_code)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        if status == 403:
            self._policy.record_forbidden(name)
            self._log.warning("fetch_forbidden", url=url, community=name, status=status)
            return []

        if status == 429:
            backoff = self._policy.record_rate_limited()
            self._log.warning(
                "fetch_rate_limited",
                url=url,
                community=name,
                status=status,
                backoff_seconds=backoff,
            )
            return []

        if status < 200 or status >= 300:
            self._log.warning("fetch_http_error", url=url, community=name, status=status)
            return []

        self._policy.record_success()

        try:
            payload = resp.json()
        except ValueError as e:
            self._log.warning("fetch_bad_json", url=url, community=name, error=str(e))
            return []

        posts = _listing_children(payload)
        self._log.info(
            "fetch_completed",
            url=url,
            community=name,
            status=status,
            elapsed_ms=elapsed_ms,
            posts=len(posts),
        )
        return posts
