from __future__ import annotations

import re
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_WINDOW_RE = re.compile(r"^\d+[hdw]$")


def _normalize_term_list(values: list[str], *, allow_empty: bool) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()

    for item in values:
        term = (item or "").strip()
        if not term:
            continue
        key = term.casefold()
        if key in seen:
            continue
        seen.add(key)
        out.append(term)

    if not allow_empty and not out:
        raise ValueError("must contain at least one non-empty term")
    return out


PositiveInt = Annotated[int, Field(ge=1)]
PositiveFloat = Annotated[float, Field(gt=0)]
NonNegativeFloat = Annotated[float, Field(ge=0)]


class RedditConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    base_url: str = "https://www.reddit.com"
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    listing_limit: Annotated[int, Field(ge=1, le=100)] = 50
    timeout_seconds: PositiveFloat = 15.0

    @field_validator("base_url")
    @classmethod
    def _base_url_must_be_http(cls, v: str) -> str:
        url = (v or "").strip().rstrip("/")
        if not url.startswith(("http://", "https://")):
            raise ValueError("must be an http(s) URL")
        return url


class RateLimitConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    window_seconds: PositiveFloat = 60.0
    max_calls_per_window: PositiveInt = 30
    min_interval_seconds: NonNegativeFloat = 2.0
    max_calls_per_run: PositiveInt = 30
    backoff_base_seconds: PositiveFloat = 30.0
    backoff_max_seconds: PositiveFloat = 120.0

    @model_validator(mode="after")
    def _backoff_ceiling_covers_base(self) -> "RateLimitConfig":
        if self.backoff_max_seconds < self.backoff_base_seconds:
            raise ValueError("backoff_max_seconds must be >= backoff_base_seconds")
        return self


class StoreConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    enabled: bool = True
    filename: str = "state.sqlite"
    content_max_chars: PositiveInt = 10000


class ServerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    host: str = "127.0.0.1"
    port: Annotated[int, Field(ge=1, le=65535)] = 3001


class DiscoveryConfig(BaseModel):
    """Defaults for CLI runs. Empty lists mean the caller must supply them."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    keywords: list[str] = Field(default_factory=list)
    communities: list[str] = Field(default_factory=list)
    window: str = "7d"

    @field_validator("keywords", "communities")
    @classmethod
    def _normalize_terms(cls, v: list[str]) -> list[str]:
        return _normalize_term_list(v, allow_empty=True)

    @field_validator("window")
    @classmethod
    def _window_must_be_valid(cls, v: str) -> str:
        value = (v or "").strip()
        if not _WINDOW_RE.fullmatch(value):
            raise ValueError("must look like 24h, 7d or 2w")
        return value


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    reddit: RedditConfig = Field(default_factory=RedditConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
