"""Post and scrape outcome models.

All models serialise with camelCase aliases, which is the shape API
consumers already depend on (``createdAt``, ``scrapedWith``, ...).
"""

from __future__ import annotations

import time
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel


class PostType(str, Enum):
    """Post classification."""

    FEED = "feed"
    CLIPS = "clips"
    CAROUSEL = "carousel"


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


class _ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class MediaItem(_ApiModel):
    """A single image or video attached to a post."""

    model_config = ConfigDict(frozen=True)

    url: str
    type: MediaType
    width: int | None = None
    height: int | None = None


class OriginalData(_ApiModel):
    """Raw Instagram classification fields, kept for reference."""

    model_config = ConfigDict(frozen=True)

    product_type: str | None = None
    media_type: int | None = None
    has_audio: bool = False


class Post(_ApiModel):
    """A normalized post extracted from one timeline node.

    Attributes:
        id: Instagram media id, the uniqueness key.
        shortcode: Code used in post URLs.
        created_at: Unix timestamp (seconds).
        type: feed / clips / carousel.
        username: Profile the post was scraped from.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    shortcode: str
    text: str = ""
    created_at: int = 0
    type: PostType
    username: str
    media: list[MediaItem] = Field(default_factory=list)
    likes: int = 0
    comments: int = 0
    permalink: str
    original_data: OriginalData = Field(default_factory=OriginalData)


def _now() -> int:
    return int(time.time())


class ScrapeOutcome(_ApiModel):
    """Result of scraping one profile.

    ``graphql_captured`` is ``False`` when no timeline payload was ever seen,
    which usually means the bot account is being restricted. That case is
    reported through ``warning``; it is not a failure.
    """

    success: bool
    username: str
    posts: list[Post] = Field(default_factory=list)
    scraped_with: str | None = None
    scraped_at: int = Field(default_factory=_now)
    error: str | None = None
    graphql_captured: bool | None = None
    warning: str | None = None

    @computed_field(alias="postsCount")
    @property
    def posts_count(self) -> int:
        return len(self.posts)


class BatchOutcome(_ApiModel):
    """Aggregated response for one or more profiles."""

    success: bool
    results: list[ScrapeOutcome] = Field(default_factory=list)
    error: str | None = None

    @computed_field(alias="totalProfiles")
    @property
    def total_profiles(self) -> int:
        return len(self.results)

    @computed_field(alias="successfulProfiles")
    @property
    def successful_profiles(self) -> int:
        return sum(1 for r in self.results if r.success)

    @computed_field(alias="failedProfiles")
    @property
    def failed_profiles(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @classmethod
    def from_results(cls, results: list[ScrapeOutcome]) -> BatchOutcome:
        """Build an aggregate; overall success only if every profile succeeded."""
        return cls(
            success=bool(results) and all(r.success for r in results),
            results=results,
        )
