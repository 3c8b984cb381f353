from __future__ import annotations

import logging
from typing import List

import requests

from magicaltsutsunlist import config
from magicaltsutsunlist.errors import StoreError

logger = logging.getLogger(__name__)

USER_AGENT = "MagicalTsutsunList/1.0"


def map_anime(anime: dict) -> dict:
    images = anime.get("images") or {}
    return {
        "title": anime.get("title"),
        "image_url": (images.get("jpg") or {}).get("image_url"),
        "genres": [genre.get("name") for genre in anime.get("genres") or [] if genre.get("name")],
    }


def fetch_seasonal_anime(url: str | None = None) -> List[dict]:
    url = url or config.SEASONAL_FEED_URL
    try:
        response = requests.get(url, headers={"User-Agent": USER_AGENT}, timeout=20)
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as exc:
        logger.error("Error retrieving the seasonal feed from %s: %s", url, exc)
        raise StoreError("Error retrieving the seasonal animes") from exc
    if not isinstance(data, dict):
        logger.error("Unexpected seasonal feed payload from %s: %r", url, type(data).__name__)
        raise StoreError("Error retrieving the seasonal animes")
    return [map_anime(anime) for anime in data.get("data") or []]
