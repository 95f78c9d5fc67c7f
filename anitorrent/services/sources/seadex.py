# anitorrent/services/sources/seadex.py

from typing import Any

from ...config import logger
from ...models import Release, SourceId
from ...utils import magnet_from_info_hash, parse_timestamp, safe_int
from .base import SourceAdapter, SourceError

SEADEX_URL = "https://releases.moe/api/collections/entries/records"


class SeaDexSource(SourceAdapter):
    """Curated "best release" database, looked up by AniList id."""

    source_id = SourceId.SEADEX
    curated = True
    anime_id_field = "anilist_id"

    async def fetch_by_query(self, query: str) -> list[Release]:
        # Entries are keyed by AniList id only.
        return []

    async def fetch_latest(self) -> list[Release]:
        return []

    async def fetch_by_anime_id(
        self, anime_id: int, resolution: str = "", title: str = ""
    ) -> list[Release]:
        params = {
            "page": 1,
            "perPage": 1,
            "filter": f"alID={anime_id}",
            "skipTotal": 1,
            "expand": "trs",
        }
        payload = await self._get_json(SEADEX_URL, params=params)
        if not isinstance(payload, dict):
            raise SourceError(self.source_id, "unexpected payload shape")

        items = payload.get("items") or []
        if not items or not isinstance(items[0], dict):
            logger.info(f"[SOURCE] SeaDex: No entry for AniList id {anime_id}.")
            return []

        record = items[0]
        title = title or str(record.get("title") or "").strip() or "Unknown Title"
        trs = (record.get("expand") or {}).get("trs") or []
        return self._finalize(
            release
            for release in (self._to_release(tr, title) for tr in trs)
            if release is not None
        )

    def _to_release(self, tr: Any, title: str) -> Release | None:
        if not isinstance(tr, dict):
            return None
        info_hash = str(tr.get("infoHash") or "").strip()
        url = str(tr.get("url") or "")
        if not info_hash or info_hash == "<redacted>":
            return None
        if tr.get("tracker") != "Nyaa" or "nyaa.si" not in url:
            return None

        group = str(tr.get("releaseGroup") or "").strip()
        files = tr.get("files") or []
        size = sum(
            max(safe_int(f.get("length"), 0), 0) for f in files if isinstance(f, dict)
        )
        name = f"[{group}] {title}" if group else title
        if tr.get("dualAudio"):
            name += " [Dual-Audio]"

        return Release(
            name=name,
            source_id=self.source_id,
            published_at=parse_timestamp(tr.get("created")),
            size_bytes=size,
            seeders=-1,
            leechers=0,
            download_count=0,
            page_link=url,
            magnet_uri=magnet_from_info_hash(info_hash),
            info_hash=info_hash,
            is_batch=True,
            release_group=group,
            is_best_release=True,
            confirmed=True,
        )
