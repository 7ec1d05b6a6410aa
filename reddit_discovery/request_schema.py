from __future__ import annotations

from typing import Annotated, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

ListingLimit = Annotated[int, Field(ge=1, le=100)]


class DiscoveryRequest(BaseModel):
    """
    Input of one discovery run, as posted to the trigger endpoint.

    Lists may be empty here; the runner turns that into a failed run. The window
    is kept verbatim and anything unparseable falls back to 7 days.
    """

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    keywords: list[str] = Field(default_factory=list)
    communities: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("communities", "subreddits"),
    )
    window: str = "7d"
    source: Literal["manual", "schedule"] = "manual"
    schedule_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("scheduleId", "schedule_id"),
    )
    limit: ListingLimit | None = None


class PreviewRequest(BaseModel):
    """Body of the non-persisting preview endpoints; the window is given in days."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    keywords: list[str] = Field(min_length=1)
    communities: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("communities", "subreddits"),
    )
    days: Annotated[int, Field(ge=1, le=365, strict=True)] = 7
    limit: ListingLimit | None = None

    def to_discovery_request(self) -> DiscoveryRequest:
        return DiscoveryRequest(
            keywords=list(self.keywords),
            communities=list(self.communities),
            window=f"{self.days}d",
            source="manual",
            limit=self.limit,
        )
