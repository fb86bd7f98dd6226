"""Post parser: normalises timeline GraphQL nodes into ``Post`` models.

Instagram's web client receives profile posts as
``data.xdt_api__v1__feed__user_timeline_graphql_connection.edges[].node``.
Nodes are validated loosely (unknown keys ignored) and then reduced to the
flat shape API consumers expect.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ig_scraper.models.post import MediaItem, MediaType, OriginalData, Post, PostType

from ..constants import PERMALINK_TEMPLATE, TIMELINE_CONNECTION_KEY

logger = logging.getLogger(__name__)

MEDIA_TYPE_VIDEO = 2
MEDIA_TYPE_CAROUSEL = 8


class _Node(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class MediaVersion(_Node):
    url: str
    width: int = 0
    height: int = 0


class ImageVersions(_Node):
    candidates: list[MediaVersion] = Field(default_factory=list)


class Caption(_Node):
    text: str | None = None
    created_at: int | None = None


class CarouselItem(_Node):
    media_type: int | None = None
    image_versions2: ImageVersions | None = None
    video_versions: list[MediaVersion] | None = None


class TimelineNode(CarouselItem):
    """One ``edges[].node`` entry from the user timeline connection."""

    id: str | None = None
    code: str | None = None
    caption: Caption | None = None
    taken_at: int | None = None
    product_type: str | None = None
    carousel_media: list[CarouselItem] | None = None
    like_count: int | None = None
    comment_count: int | None = None
    has_audio: bool | None = None


# ──────────────────────────────────────
# Classification & media extraction
# ──────────────────────────────────────

def classify_node(node: TimelineNode) -> PostType:
    """Derive the post type from ``product_type`` / ``media_type``."""
    if node.product_type == "clips" or node.media_type == MEDIA_TYPE_VIDEO:
        return PostType.CLIPS
    if node.media_type == MEDIA_TYPE_CAROUSEL:
        return PostType.CAROUSEL
    return PostType.FEED


def _best_video(versions: list[MediaVersion]) -> MediaItem:
    # Largest area wins; the first one is kept on ties.
    best = versions[0]
    for v in versions[1:]:
        if v.width * v.height > best.width * best.height:
            best = v
    return MediaItem(url=best.url, type=MediaType.VIDEO, width=best.width, height=best.height)


def _first_image(item: CarouselItem) -> MediaItem | None:
    if not item.image_versions2 or not item.image_versions2.candidates:
        return None
    img = item.image_versions2.candidates[0]
    return MediaItem(url=img.url, type=MediaType.IMAGE, width=img.width, height=img.height)


def _feed_media(node: TimelineNode) -> list[MediaItem]:
    image = _first_image(node)
    return [image] if image else []


def _clips_media(node: TimelineNode) -> list[MediaItem]:
    if not node.video_versions:
        return _feed_media(node)
    return [_best_video(node.video_versions)]


def _carousel_media(node: TimelineNode) -> list[MediaItem]:
    if not node.carousel_media:
        return _feed_media(node)

    media: list[MediaItem] = []
    for child in node.carousel_media:
        if child.media_type == MEDIA_TYPE_VIDEO and child.video_versions:
            media.append(_best_video(child.video_versions))
            continue
        image = _first_image(child)
        if image:
            media.append(image)
    return media


MEDIA_EXTRACTORS: dict[PostType, Callable[[TimelineNode], list[MediaItem]]] = {
    PostType.FEED: _feed_media,
    PostType.CLIPS: _clips_media,
    PostType.CAROUSEL: _carousel_media,
}


# ──────────────────────────────────────
# Public API
# ──────────────────────────────────────

def parse_node(raw: dict[str, Any], username: str) -> Post | None:
    """Normalise one raw timeline node.

    Returns None when the node is invalid or lacks ``id`` / ``code``.
    """
    try:
        node = TimelineNode.model_validate(raw)
    except ValidationError as e:
        logger.warning("Failed to parse timeline node: %s", e.errors()[:1])
        return None

    if not node.id or not node.code:
        logger.warning("Timeline node missing id or code, skipping")
        return None

    post_type = classify_node(node)
    caption = node.caption or Caption()

    return Post(
        id=node.id,
        shortcode=node.code,
        text=caption.text or "",
        created_at=node.taken_at or caption.created_at or 0,
        type=post_type,
        username=username,
        media=MEDIA_EXTRACTORS[post_type](node),
        likes=node.like_count or 0,
        comments=node.comment_count or 0,
        permalink=PERMALINK_TEMPLATE.format(code=node.code),
        original_data=OriginalData(
            product_type=node.product_type,
            media_type=node.media_type,
            has_audio=bool(node.has_audio),
        ),
    )


def extract_edges(payload: dict[str, Any]) -> list[dict[str, Any]]:
    """Return the timeline edges of a GraphQL payload ([] if absent)."""
    data = payload.get("data")
    if not isinstance(data, dict):
        return []
    connection = data.get(TIMELINE_CONNECTION_KEY)
    if not isinstance(connection, dict):
        return []
    edges = connection.get("edges")
    return edges if isinstance(edges, list) else []


def parse_timeline(
    payloads: list[dict[str, Any]], username: str,
) -> list[Post]:
    """Flatten captured payloads into unique posts, in capture order.

    An id is marked as seen only after its node parses successfully, so a
    later valid copy of a broken node is still picked up.
    """
    seen: set[str] = set()
    posts: list[Post] = []
    for payload in payloads:
        for edge in extract_edges(payload):
            raw = edge.get("node") if isinstance(edge, dict) else None
            if not isinstance(raw, dict):
                continue
            raw_id = raw.get("id")
            if not raw_id or str(raw_id) in seen:
                continue
            post = parse_node(raw, username)
            if post is None:
                continue
            seen.add(post.id)
            posts.append(post)
    return posts
