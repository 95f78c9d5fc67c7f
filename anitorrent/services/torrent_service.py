# anitorrent/services/torrent_service.py

import asyncio
import urllib.parse
from collections.abc import Iterable

import httpx
import libtorrent as lt
from bs4 import BeautifulSoup, Tag

from ..config import SearchSettings, logger
from ..models import Release
from ..utils import magnet_from_info_hash
from .sources.base import DEFAULT_HEADERS

# Nyaa puts the magnet in the card footer; any magnet anchor is accepted.
MAGNET_SELECTOR = 'a.card-footer-item, a[href^="magnet:"]'


def first_magnet_link(nodes: Iterable[Tag]) -> str:
    """Returns the first ``magnet:`` href among ``nodes`` in document order."""
    for node in nodes:
        href = node.get("href")
        if isinstance(href, str) and href.startswith("magnet:"):
            return href
    return ""


def find_magnet_in_html(html: str) -> str:
    soup = BeautifulSoup(html, "lxml")
    return first_magnet_link(soup.select(MAGNET_SELECTOR))


def magnet_from_torrent_bytes(content: bytes) -> str:
    """
    Builds a magnet URI from ``.torrent`` file contents.

    Raises ``RuntimeError`` when ``content`` is not valid torrent metadata.
    """
    ti = lt.torrent_info(content)  # type: ignore
    return lt.make_magnet_uri(ti)  # type: ignore


class MagnetResolver:
    """
    Best-effort magnet lookup for releases that came without one.

    Tries the existing magnet, then the info-hash, then the ``.torrent`` file,
    then the first magnet link on a scrapeable release page. Failures are
    logged and yield an empty string.
    """

    def __init__(self, settings: SearchSettings) -> None:
        self.settings = settings

    def is_scrapeable_page(self, url: str) -> bool:
        if not url.startswith(("http://", "https://")):
            return False
        host = urllib.parse.urlparse(url).hostname or ""
        return any(
            host == allowed or host.endswith(f".{allowed}")
            for allowed in self.settings.scrapeable_page_hosts
        )

    async def resolve(self, release: Release) -> str:
        if release.magnet_uri:
            return release.magnet_uri
        if release.info_hash:
            return magnet_from_info_hash(release.info_hash)

        if release.download_url and not release.download_url.startswith("magnet:"):
            magnet = await self._from_torrent_file(release.download_url)
            if magnet:
                return magnet
        elif release.download_url.startswith("magnet:"):
            return release.download_url

        if release.page_link and self.is_scrapeable_page(release.page_link):
            return await self._from_page(release.page_link)
        return ""

    async def _fetch(self, url: str) -> httpx.Response:
        async with httpx.AsyncClient(
            timeout=self.settings.request_timeout,
            follow_redirects=True,
            headers=DEFAULT_HEADERS,
        ) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response

    async def _from_torrent_file(self, url: str) -> str:
        try:
            response = await self._fetch(url)
            return magnet_from_torrent_bytes(response.content)
        except httpx.HTTPError as e:
            logger.warning(f"[MAGNET] Failed to download torrent file {url}: {e}")
        except RuntimeError as e:
            logger.warning(f"[MAGNET] {url} is not a valid torrent file: {e}")
        return ""

    async def _from_page(self, url: str) -> str:
        try:
            response = await self._fetch(url)
        except httpx.HTTPError as e:
            logger.warning(f"[MAGNET] Failed to fetch release page {url}: {e}")
            return ""
        magnet = find_magnet_in_html(response.text)
        if not magnet:
            logger.debug(f"[MAGNET] No magnet link found on page: {url}")
        return magnet

    async def resolve_top_n(self, releases: list[Release], limit: int) -> int:
        """
        Fills ``magnet_uri`` on the first ``limit`` releases lacking one.

        ``releases`` should already be ranked. Returns how many were filled.
        """
        if limit <= 0:
            return 0
        candidates = [r for r in releases if not r.magnet_uri][:limit]
        if not candidates:
            return 0

        magnets = await asyncio.gather(*(self.resolve(r) for r in candidates))
        filled = 0
        for release, magnet in zip(candidates, magnets):
            if magnet and not release.magnet_uri:
                release.magnet_uri = magnet
                filled += 1
        logger.info(
            f"[MAGNET] Resolved {filled} of {len(candidates)} missing magnet links."
        )
        return filled
