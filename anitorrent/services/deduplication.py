# anitorrent/services/deduplication.py

from collections.abc import Iterable

from ..config import logger
from ..models import Release
from .ranking import ReleaseRanker


def dedupe_key(release: Release) -> str:
    """
    Identity of the physical release a record describes.

    The first non-empty of info-hash (case-insensitive), magnet, download URL
    and page link wins; the display name is the last resort.
    """
    if release.info_hash.strip():
        return "ih:" + release.info_hash.strip().lower()
    if release.magnet_uri:
        return "mag:" + release.magnet_uri
    if release.download_url:
        return "dl:" + release.download_url
    if release.page_link:
        return "ln:" + release.page_link
    return "nm:" + release.name


def dedupe(
    releases: Iterable[Release], ranker: ReleaseRanker | None = None
) -> list[Release]:
    """
    Collapses records sharing a key, keeping the one the ranker prefers.

    Survivors are returned in the order their key was first seen.
    """
    ranker = ranker or ReleaseRanker()
    kept: dict[str, Release] = {}
    total = 0
    for release in releases:
        total += 1
        key = dedupe_key(release)
        current = kept.get(key)
        kept[key] = release if current is None else ranker.better(current, release)

    if total != len(kept):
        logger.debug(f"[DEDUPE] Collapsed {total} records into {len(kept)}.")
    return list(kept.values())
