# anitorrent/services/sources/rutracker.py

import asyncio
from datetime import datetime, timezone
from typing import Any

from ...config import logger
from ...models import EPOCH, Release, SourceId
from ...utils import (
    normalize_resolution,
    parse_size_to_bytes,
    parse_timestamp,
    safe_int,
)
from .base import SourceAdapter, SourceError

TORAPI_URL = "https://torapi.vercel.app/api/search"
ANIME_CATEGORIES = ("Аниме", "Онгоинги")
MAX_DETAIL_LOOKUPS = 10


class RuTrackerSource(SourceAdapter):
    """RuTracker search through the TorAPI proxy."""

    source_id = SourceId.RUTRACKER

    async def fetch_by_query(self, query: str) -> list[Release]:
        if not query.strip():
            return []
        hits = await self._get_json(
            f"{TORAPI_URL}/title/rutracker",
            params={"query": query.strip(), "page": 0},
        )
        if not isinstance(hits, list):
            raise SourceError(self.source_id, "unexpected search payload")

        anime_hits = [
            hit
            for hit in hits
            if isinstance(hit, dict)
            and any(cat in str(hit.get("Category") or "") for cat in ANIME_CATEGORIES)
        ][:MAX_DETAIL_LOOKUPS]

        releases = await asyncio.gather(
            *(self._with_details(hit) for hit in anime_hits)
        )
        return self._finalize(r for r in releases if r is not None)

    async def _with_details(self, hit: dict[str, Any]) -> Release | None:
        try:
            details = await self._get_json(
                f"{TORAPI_URL}/id/rutracker", params={"query": hit.get("Id")}
            )
        except SourceError as e:
            logger.warning(
                f"[SOURCE] RuTracker: Detail lookup for {hit.get('Id')} failed: {e}"
            )
            return None
        if not isinstance(details, list) or not details:
            return None
        if not isinstance(details[0], dict):
            return None
        magnet = str(details[0].get("Magnet") or "")
        if not magnet:
            return None

        name = str(hit.get("Name") or "").strip()
        published = parse_timestamp(hit.get("Date"))
        if published == EPOCH:
            published = datetime.now(timezone.utc)

        return Release(
            name=name,
            source_id=self.source_id,
            published_at=published,
            size_bytes=parse_size_to_bytes(str(hit.get("Size") or "")),
            seeders=safe_int(hit.get("Seeds"), 0),
            leechers=safe_int(hit.get("Peers"), 0),
            download_count=safe_int(hit.get("Download_Count"), 0),
            page_link=str(hit.get("Url") or ""),
            magnet_uri=magnet,
            info_hash=str(details[0].get("Hash") or ""),
            resolution=normalize_resolution(name),
            is_batch=True,
            release_group="RuTracker",
        )
