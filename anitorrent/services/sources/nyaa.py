# anitorrent/services/sources/nyaa.py

from bs4 import BeautifulSoup, Tag

from ...config import logger
from ...models import Release, SourceId
from ...utils import (
    infer_batch,
    magnet_from_info_hash,
    parse_release_name,
    parse_size_to_bytes,
    parse_timestamp,
    safe_int,
)
from .base import SourceAdapter

NYAA_URL = "https://nyaa.si"
ANIME_ENGLISH_CATEGORY = "1_2"


def _tag_text(item: Tag, name: str) -> str:
    """Reads ``nyaa:<name>`` or plain ``<name>`` from an RSS item."""
    node = item.find(f"nyaa:{name}") or item.find(name)
    return node.get_text(strip=True) if node is not None else ""


class NyaaSource(SourceAdapter):
    """RSS search on nyaa.si, sorted by seeders."""

    source_id = SourceId.NYAA
    supports_boolean_query = True

    def __init__(
        self,
        settings,
        base_url: str = NYAA_URL,
        category: str = ANIME_ENGLISH_CATEGORY,
    ) -> None:
        super().__init__(settings)
        self.base_url = base_url.rstrip("/")
        self.category = category

    async def fetch_by_query(self, query: str) -> list[Release]:
        params = {
            "page": "rss",
            "q": query,
            "c": self.category,
            "f": "0",
            "s": "seeders",
            "o": "desc",
        }
        response = await self._get(f"{self.base_url}/", params=params)
        releases = self._finalize(parse_rss(response.content))
        logger.info(f"[SOURCE] Nyaa: Parsed {len(releases)} items for '{query}'.")
        return releases


def parse_rss(rss: str | bytes) -> list[Release]:
    """Turns a Nyaa RSS document into raw (not yet normalized) releases."""
    soup = BeautifulSoup(rss, "xml")
    releases: list[Release] = []
    for item in soup.find_all("item"):
        name = _tag_text(item, "title")
        if not name:
            continue
        parsed = parse_release_name(name)
        episodes = parsed["episodes"]
        is_batch = infer_batch(name, episodes)
        info_hash = _tag_text(item, "infoHash")

        releases.append(
            Release(
                name=name,
                source_id=SourceId.NYAA,
                published_at=parse_timestamp(_tag_text(item, "pubDate")),
                size_bytes=parse_size_to_bytes(
                    _tag_text(item, "size"), si_decimal=True
                ),
                seeders=safe_int(_tag_text(item, "seeders")),
                leechers=safe_int(_tag_text(item, "leechers")),
                download_count=safe_int(_tag_text(item, "downloads")),
                page_link=_tag_text(item, "guid"),
                download_url=_tag_text(item, "link"),
                magnet_uri=magnet_from_info_hash(info_hash),
                info_hash=info_hash,
                resolution=parsed["resolution"],
                is_batch=is_batch,
                episode_number=-1 if is_batch or not episodes else episodes[0],
                release_group=parsed["release_group"],
            )
        )
    return releases
