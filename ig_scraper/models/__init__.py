from ig_scraper.models.account import Account, AccountHealth, RotationState
from ig_scraper.models.post import (
    BatchOutcome,
    MediaItem,
    MediaType,
    OriginalData,
    Post,
    PostType,
    ScrapeOutcome,
)

__all__ = [
    "Account",
    "AccountHealth",
    "BatchOutcome",
    "MediaItem",
    "MediaType",
    "OriginalData",
    "Post",
    "PostType",
    "RotationState",
    "ScrapeOutcome",
]
