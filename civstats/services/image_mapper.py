"""Contract-safe mapping from Civitai image payloads to fresh observations."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from civstats.models.document import FreshImage
from civstats.models.snapshot import Counters, coerce_count, parse_timestamp

DISPLAY_NAME_MAX_CHARS = 100
IMAGE_PAGE_URL = "https://civitai.com/images/{image_id}"

# Counter field -> Civitai `stats` key.
STAT_KEYS: dict[str, str] = {
    "likes": "likeCount",
    "hearts": "heartCount",
    "laughs": "laughCount",
    "cries": "cryCount",
    "comments": "commentCount",
    "buzz": "tippedAmountCount",
    "collects": "collectedCount",
    "views": "viewCount",
}


def build_image_id(item: dict[str, Any]) -> str:
    raw_id = item.get("id")
    if raw_id is None or isinstance(raw_id, bool) or not str(raw_id).strip():
        raise ValueError("Image payload missing id")
    return str(raw_id).strip()


def map_stats_to_counters(item: dict[str, Any]) -> Counters:
    stats = item.get("stats") if isinstance(item.get("stats"), dict) else {}
    return Counters(**{name: coerce_count(stats.get(key)) for name, key in STAT_KEYS.items()})


def map_image_item(item: dict[str, Any], *, fallback_created_at: Optional[datetime] = None, source: str = "listing") -> FreshImage:
    """Map one `/images` item; raises `ValueError` when it has no usable id."""

    image_id = build_image_id(item)
    return FreshImage(
        id=image_id,
        counters=map_stats_to_counters(item),
        display_name=_display_name(item, image_id),
        url=IMAGE_PAGE_URL.format(image_id=image_id),
        thumbnail_ref=item.get("url") if isinstance(item.get("url"), str) else "",
        created_at=_pick_created_at(item.get("createdAt"), fallback_created_at),
        source=source,
    )


def _display_name(item: dict[str, Any], image_id: str) -> str:
    meta = item.get("meta") if isinstance(item.get("meta"), dict) else {}
    prompt = meta.get("prompt")
    if isinstance(prompt, str) and prompt.strip():
        return prompt[:DISPLAY_NAME_MAX_CHARS]
    return f"Image {image_id}"


def _pick_created_at(raw: Any, fallback: Optional[datetime]) -> Optional[datetime]:
    try:
        return parse_timestamp(raw)
    except (TypeError, ValueError, OverflowError):
        return fallback
