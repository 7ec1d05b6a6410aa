from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Literal

from .config_schema import RateLimitConfig

RateAction = Literal["proceed", "wait", "abort"]
ClockFn = Callable[[], float]


@dataclass(frozen=True)
class RateDecision:
    action: RateAction
    wait_seconds: float = 0.0
    reason: str | None = None

    @classmethod
    def proceed(cls) -> "RateDecision":
        return cls(action="proceed")

    @classmethod
    def wait(cls, seconds: float, reason: str) -> "RateDecision":
        return cls(action="wait", wait_seconds=max(0.001, float(seconds)), reason=reason)

    @classmethod
    def abort(cls, reason: str) -> "RateDecision":
        return cls(action="abort", reason=reason)


class RatePolicy:
    """
    Call-rate policy for the upstream listing endpoints.

    - A fixed window (default 60s) holds at most max_calls_per_window calls.
    - Consecutive calls are spaced by at least min_interval_seconds.
    - A run may make at most max_calls_per_run calls.
    - A 403 blocks the community until the next reset_run().
    - A 429 starts a backoff timer; each further 429 doubles the next backoff up
      to backoff_max_seconds, and any success brings it back to the base.
    - block_keyword() is a hook for callers that fetch per search term; a
      blocked keyword aborts admit() calls that name it until reset_run().
    """

    def __init__(self, config: RateLimitConfig | None = None, *, clock: ClockFn | None = None) -> None:
        self._cfg = config or RateLimitConfig()
        self._clock = clock or time.monotonic

        self._window_started_at: float | None = None
        self._window_calls = 0
        self._last_call_at: float | None = None

        self._run_calls = 0
        self._blocked_communities: set[str] = set()
        self._blocked_keywords: set[str] = set()

        self._backoff_until: float | None = None
        self._next_backoff_seconds = float(self._cfg.backoff_base_seconds)

    @property
    def config(self) -> RateLimitConfig:
        return self._cfg

    def reset_run(self) -> None:
        self._run_calls = 0
        self._blocked_communities.clear()
        self._blocked_keywords.clear()

    def admit(self, community: str | None = None, keyword: str | None = None) -> RateDecision:
        now = self._clock()
        community_key = (community or "").strip().casefold()
        keyword_key = (keyword or "").strip().casefold()

        if self._run_calls >= self._cfg.max_calls_per_run:
            return RateDecision.abort("run_budget_exhausted")

        if community_key and community_key in self._blocked_communities:
            return RateDecision.abort("community_blocked")

        if keyword_key and keyword_key in self._blocked_keywords:
            return RateDecision.abort("keyword_blocked")

        if self._backoff_until is not None and now < self._backoff_until:
            return RateDecision.wait(self._backoff_until - now, "rate_limit_backoff")

        self._roll_window(now)
        window_start = self._window_started_at
        if window_start is not None and self._window_calls >= self._cfg.max_calls_per_window:
            remaining = window_start + self._cfg.window_seconds - now
            return RateDecision.wait(remaining, "window_full")

        if self._last_call_at is not None:
            elapsed = now - self._last_call_at
            if elapsed < self._cfg.min_interval_seconds:
                return RateDecision.wait(self._cfg.min_interval_seconds - elapsed, "min_interval")

        return RateDecision.proceed()

    def record_attempt(self) -> None:
        now = self._clock()
        self._roll_window(now)
        if self._window_started_at is None:
            self._window_started_at = now
        self._window_calls += 1
        self._run_calls += 1
        self._last_call_at = now

    def record_success(self) -> None:
        self._next_backoff_seconds = float(self._cfg.backoff_base_seconds)

    def record_forbidden(self, community: str) -> None:
        key = (community or "").strip().casefold()
        if key:
            self._blocked_communities.add(key)

    def record_rate_limited(self) -> float:
        """Start the backoff timer and return its duration in seconds."""
        duration = self._next_backoff_seconds
        self._backoff_until = self._clock() + duration
        self._next_backoff_seconds = min(duration * 2, float(self._cfg.backoff_max_seconds))
        return duration

    def block_keyword(self, keyword: str) -> None:
        key = (keyword or "").strip().casefold()
        if key:
            self._blocked_keywords.add(key)

    def is_blocked(self, community: str) -> bool:
        return (community or "").strip().casefold() in self._blocked_communities

    def stats(self) -> dict[str, Any]:
        return {
            "run_calls": self._run_calls,
            "max_calls_per_run": self._cfg.max_calls_per_run,
            "window_calls": self._window_calls,
            "blocked_communities": sorted(self._blocked_communities),
            "blocked_keywords": sorted(self._blocked_keywords),
            "next_backoff_seconds": self._next_backoff_seconds,
        }

    def _roll_window(self, now: float) -> None:
        if self._window_started_at is None:
            return
        if now - self._window_started_at >= self._cfg.window_seconds:
            self._window_started_at = now
            self._window_calls = 0
