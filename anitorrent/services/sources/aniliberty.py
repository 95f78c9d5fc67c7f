# anitorrent/services/sources/aniliberty.py

import asyncio
import re
from typing import Any

from ...config import logger
from ...models import Release, SourceId
from ...utils import magnet_from_info_hash, parse_timestamp, safe_int
from .base import SourceAdapter, SourceError

ANILIBERTY_API = "https://aniliberty.top/api/v1"
TORRENT_FIELDS = (
    "id",
    "hash",
    "size",
    "label",
    "magnet",
    "seeders",
    "leechers",
    "completed_times",
    "created_at",
    "description",
    "quality",
    "codec",
)
_HEADERS = {"accept": "application/json", "X-CSRF-TOKEN": "anitorrent"}
_BATCH_DESCRIPTION = re.compile(r"(?i)\d+\s*[-~]\s*\d+|batch|complete|ova")
_EPISODE_DESCRIPTION = re.compile(r"\b(\d{1,3})\b")


def is_batch_description(description: str) -> bool:
    return bool(_BATCH_DESCRIPTION.search(description or ""))


def episode_from_description(description: str) -> int:
    match = _EPISODE_DESCRIPTION.search(description or "")
    return int(match.group(1)) if match else -1


def _nested_text(value: Any, key: str) -> str:
    """Reads ``value[key]`` from an object field; anything else yields ``""``."""
    if not isinstance(value, dict):
        return ""
    return str(value.get(key) or "")


def is_best_torrent(torrent: dict[str, Any]) -> bool:
    """1080p, more than 50 seeders and not an XviD encode."""
    quality = _nested_text(torrent.get("quality"), "description")
    codec = _nested_text(torrent.get("codec"), "value")
    seeders = safe_int(torrent.get("seeders"), 0)
    return quality == "1080p" and seeders > 50 and codec != "xvid"


class AniLibertySource(SourceAdapter):
    """Release search on the AniLiberty API, then its torrents per release."""

    source_id = SourceId.ANILIBERTY

    async def fetch_by_query(self, query: str) -> list[Release]:
        if not query.strip():
            return []
        releases = await self._get_json(
            f"{ANILIBERTY_API}/app/search/releases",
            params={"query": query, "include": "id,name"},
            headers=_HEADERS,
        )
        if not isinstance(releases, list):
            raise SourceError(self.source_id, "unexpected search payload")

        candidates = [r for r in releases if isinstance(r, dict) and r.get("id")]
        batches = await asyncio.gather(*(self._fetch_torrents(r) for r in candidates))
        return self._finalize(release for batch in batches for release in batch)

    async def _fetch_torrents(self, entry: dict[str, Any]) -> list[Release]:
        url = f"{ANILIBERTY_API}/anime/torrents/release/{entry['id']}"
        try:
            torrents = await self._get_json(
                url, params={"include": ",".join(TORRENT_FIELDS)}, headers=_HEADERS
            )
        except SourceError as e:
            # One release's torrent list failing should not hide the others.
            logger.warning(f"[SOURCE] AniLiberty: Skipping release {entry['id']}: {e}")
            return []
        if not isinstance(torrents, list):
            return []

        names = entry.get("name")
        if isinstance(names, str):
            names = {"main": names}
        elif not isinstance(names, dict):
            names = {}
        return [
            self._to_release(torrent, names)
            for torrent in torrents
            if isinstance(torrent, dict)
        ]

    def _to_release(self, torrent: dict[str, Any], names: dict[str, Any]) -> Release:
        title = str(
            names.get("english")
            or names.get("main")
            or torrent.get("label")
            or "AniLiberty"
        ).strip()
        resolution = _nested_text(torrent.get("quality"), "description")
        description = str(torrent.get("description") or "")
        is_batch = is_batch_description(description)
        info_hash = str(torrent.get("hash") or "")
        magnet = str(torrent.get("magnet") or "") or magnet_from_info_hash(info_hash)

        return Release(
            name=f"{title} [{resolution}]" if resolution else title,
            source_id=self.source_id,
            published_at=parse_timestamp(torrent.get("created_at")),
            size_bytes=safe_int(torrent.get("size"), 0),
            seeders=safe_int(torrent.get("seeders")),
            leechers=safe_int(torrent.get("leechers")),
            download_count=safe_int(torrent.get("completed_times"), 0),
            magnet_uri=magnet,
            info_hash=info_hash,
            resolution=resolution,
            is_batch=is_batch,
            episode_number=-1 if is_batch else episode_from_description(description),
            release_group="AniLiberty",
            is_best_release=is_best_torrent(torrent),
            confirmed=True,
        )
