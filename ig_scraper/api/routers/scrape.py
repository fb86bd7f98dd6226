"""Profile scrape endpoint.

Each target is served from the result cache when fresh. Only misses take an
admission slot and reach the executor. Fresh successful outcomes fetched
without a date filter are cached together with their post limit; date-filtered
requests are answered from those unfiltered entries by filtering on read, and
a larger ``maxPosts`` than a full cached list holds is a miss.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from ig_scraper.api.deps import (
    get_admission,
    get_app_settings,
    get_cache,
    get_executor,
    require_api_key,
)
from ig_scraper.config import Settings
from ig_scraper.models.post import BatchOutcome, ScrapeOutcome
from ig_scraper.platforms.instagram.executor import InstagramExecutor, normalize_username
from ig_scraper.services import AdmissionController, ResultCache

logger = logging.getLogger(__name__)

router = APIRouter(tags=["scraper"], dependencies=[Depends(require_api_key)])


class ScrapeRequest(BaseModel):
    """Request body: exactly one of ``username`` / ``usernames``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    username: str | None = Field(default=None, min_length=1)
    usernames: list[str] | None = Field(default=None, min_length=1)
    created_at: int | None = None
    created_at_map: dict[str, int] | None = None
    max_posts: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def exactly_one_target(self) -> ScrapeRequest:
        if (self.username is None) == (self.usernames is None):
            raise ValueError('Provide either "username" or "usernames", not both')
        return self

    @property
    def targets(self) -> list[str]:
        raw = [self.username] if self.username is not None else self.usernames or []
        return [normalize_username(u) for u in raw]

    def threshold_for(self, target: str) -> int | None:
        if self.created_at_map and target in self.created_at_map:
            return self.created_at_map[target]
        return self.created_at


def _from_cache(
    cached: ScrapeOutcome, threshold: int | None, limit: int,
) -> ScrapeOutcome:
    posts = cached.posts
    if threshold is not None:
        posts = [p for p in posts if p.created_at > threshold]
    return cached.model_copy(update={"posts": posts[:limit]})


def _cacheable(outcome: ScrapeOutcome) -> bool:
    # an empty capture points at a restricted bot account, not at the profile
    return outcome.success and outcome.graphql_captured is not False


@router.post("/instagram-post-scraper")
async def scrape_posts(
    body: ScrapeRequest,
    settings: Settings = Depends(get_app_settings),
    executor: InstagramExecutor = Depends(get_executor),
    admission: AdmissionController = Depends(get_admission),
    cache: ResultCache = Depends(get_cache),
) -> dict:
    """Scrape one or more profiles. Always answers with the batch shape."""
    targets = body.targets
    if len(targets) > settings.batch_max_targets:
        raise HTTPException(
            status_code=400,
            detail=f"At most {settings.batch_max_targets} usernames per request",
        )
    limit = body.max_posts or settings.max_posts_per_request

    results: dict[str, ScrapeOutcome] = {}
    misses: list[str] = []
    for target in targets:
        cached = cache.get(target, limit=limit)
        if cached is not None:
            logger.info("[%s] Served from cache", target)
            results[target] = _from_cache(cached, body.threshold_for(target), limit)
        elif target not in misses:
            misses.append(target)

    if misses:
        async with admission.slot():
            try:
                if body.username is not None:
                    fresh = [await executor.scrape_profile(misses[0], limit, body.created_at)]
                else:
                    batch = await executor.scrape_profiles(
                        misses, limit, body.created_at, body.created_at_map,
                    )
                    fresh = batch.results
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e)) from e

        for target, outcome in zip(misses, fresh):
            results[target] = outcome
            if _cacheable(outcome) and body.threshold_for(target) is None:
                cache.put(target, outcome, limit=limit)

    outcome = BatchOutcome.from_results([results[t] for t in targets])
    return outcome.model_dump(mode="json", by_alias=True)
