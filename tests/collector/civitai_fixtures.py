"""Payload builders shared by collector tests."""

from __future__ import annotations

from typing import Any


def image_item(image_id: int, *, likes: int = 0, hearts: int = 0, comments: int = 0, prompt: str | None = "a prompt") -> dict[str, Any]:
    return {
        "id": image_id,
        "url": f"https://image.civitai.com/{image_id}.jpeg",
        "createdAt": "2026-10-01T08:30:00.000Z",
        "meta": {"prompt": prompt} if prompt is not None else None,
        "stats": {
            "likeCount": likes,
            "heartCount": hearts,
            "laughCount": 0,
            "cryCount": 0,
            "commentCount": comments,
            "tippedAmountCount": 0,
            "collectedCount": 0,
            "viewCount": 0,
        },
    }
