# anitorrent/services/sources/animetosho.py

from typing import Any

from ...config import logger
from ...models import Release, SourceId
from ...utils import parse_release_name, parse_timestamp, safe_int
from .base import SourceAdapter, SourceError


def format_quality(resolution: str) -> str:
    """AnimeTosho filters on ``1080`` rather than ``1080p``."""
    resolution = (resolution or "").strip()
    if resolution.lower().endswith("p"):
        return resolution[:-1]
    return resolution


class AnimeToshoSource(SourceAdapter):
    """JSON feed at feed.animetosho.org with AniDB id lookups."""

    source_id = SourceId.ANIMETOSHO
    supports_boolean_query = True
    anime_id_field = "anidb_aid"
    episode_id_field = "anidb_eid"

    @property
    def feed_url(self) -> str:
        return self.settings.animetosho_url

    async def fetch_by_query(self, query: str) -> list[Release]:
        return await self._fetch({"q": query})

    async def fetch_by_anime_id(
        self, anime_id: int, resolution: str = "", title: str = ""
    ) -> list[Release]:
        params = {"order": "size-d", "aid": anime_id, "q": format_quality(resolution)}
        return await self._fetch(params)

    async def fetch_by_episode_id(
        self, episode_id: int, resolution: str = ""
    ) -> list[Release]:
        return await self._fetch({"eid": episode_id, "q": format_quality(resolution)})

    async def _fetch(self, params: dict[str, Any]) -> list[Release]:
        logger.info(f"[SOURCE] AnimeTosho: Fetching {self.feed_url} with {params}")
        payload = await self._get_json(self.feed_url, params=params)
        if not isinstance(payload, list):
            raise SourceError(
                self.source_id, f"expected a list, got {type(payload).__name__}"
            )
        return self._finalize(
            self._to_release(item) for item in payload if isinstance(item, dict)
        )

    def _to_release(self, item: dict[str, Any]) -> Release:
        title = str(item.get("title") or "").strip()
        parsed = parse_release_name(title)
        is_batch = safe_int(item.get("num_files"), 0) > 1

        episode = -1
        if not is_batch and len(parsed["episodes"]) == 1:
            episode = parsed["episodes"][0]

        return Release(
            name=title,
            source_id=self.source_id,
            published_at=parse_timestamp(safe_int(item.get("timestamp"), 0)),
            size_bytes=safe_int(item.get("total_size"), 0),
            seeders=safe_int(item.get("seeders")),
            leechers=safe_int(item.get("leechers")),
            download_count=safe_int(item.get("torrent_download_count")),
            page_link=str(item.get("link") or ""),
            download_url=str(item.get("torrent_url") or ""),
            magnet_uri=str(item.get("magnet_uri") or ""),
            info_hash=str(item.get("info_hash") or ""),
            resolution=parsed["resolution"],
            is_batch=is_batch,
            episode_number=episode,
            release_group=parsed["release_group"],
        )
