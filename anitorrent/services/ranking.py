# anitorrent/services/ranking.py

import re
from collections.abc import Iterable
from typing import Any

from ..config import TRUSTED_GROUPS, logger
from ..models import Release, SourceId
from ..utils import parse_resolution_height

# Ordered best-first; each tier lists the lower-cased substrings that select it.
QUALITY_TIERS: tuple[tuple[str, int, tuple[str, ...]], ...] = (
    ("BluRay REMUX", 9, ("remux",)),
    ("BluRay", 8, ("bluray", "blu-ray", "bdrip")),
    ("WEB-DL", 7, ("web-dl", "webdl")),
    ("WEBRip", 6, ("webrip", "web-rip")),
    ("HDRip", 5, ("hdrip",)),
    ("HC HD-Rip", 4, ("hc hd-rip",)),
    ("DVDRip", 3, ("dvdrip",)),
    ("HDTV", 2, ("hdtv",)),
)
UNKNOWN_QUALITY = ("Unknown", 1)

# Camera, telesync, telecine and screener copies are never returned.
_EXCLUDED_QUALITY = re.compile(
    r"(?i)(?<![a-z0-9])"
    r"(cam|camrip|hdcam|ts|hdts|telesync|tc|telecine|scr|screener|dvdscr)"
    r"(?![a-z0-9])"
)

SOURCE_PRIORITY: dict[SourceId, int] = {
    SourceId.SEADEX: 6,
    SourceId.ANIMETOSHO: 5,
    SourceId.ANILIBERTY: 4,
    SourceId.NYAA: 3,
    SourceId.ACGRIP: 2,
    SourceId.RUTRACKER: 1,
}


def extract_quality(name: str) -> tuple[str, int]:
    """Maps a release name to its encode-quality label and tier."""
    lower = name.lower()
    for label, tier, markers in QUALITY_TIERS:
        if any(marker in lower for marker in markers):
            return label, tier
    if re.search(r"(?<![a-z0-9])bd(?![a-z0-9])", lower):
        return "BluRay", 8
    return UNKNOWN_QUALITY


def is_excluded_quality(name: str) -> bool:
    return bool(_EXCLUDED_QUALITY.search(name or ""))


def filter_excluded(releases: Iterable[Release]) -> list[Release]:
    """Drops camera/telesync/screener releases before ranking."""
    kept: list[Release] = []
    for release in releases:
        if is_excluded_quality(release.name):
            logger.debug(f"[RANK] Excluding low-quality release '{release.name}'")
            continue
        kept.append(release)
    return kept


def trusted_group_score(
    name: str, trusted_groups: Iterable[str] = TRUSTED_GROUPS
) -> int:
    for group in trusted_groups:
        if group and group in name:
            return 1
    return 0


_TRI_STATE = {None: 0, False: 1, True: 2}


def link_richness(release: Release) -> int:
    return (1 if release.info_hash else 0) + (1 if release.magnet_uri else 0)


class ReleaseRanker:
    """
    Total order over releases, best first.

    The cascade is quality tier, resolution, trusted group, source priority,
    optionally the cache flag, then size, seeders, publish date, link
    richness and the name. Every remaining field follows the name, so only
    records that are equal field for field share a key.
    """

    def __init__(
        self,
        *,
        trusted_groups: Iterable[str] = TRUSTED_GROUPS,
        prefer_cached: bool = False,
    ) -> None:
        self.trusted_groups = tuple(trusted_groups)
        self.prefer_cached = prefer_cached

    def sort_key(self, release: Release) -> tuple[Any, ...]:
        _, tier = extract_quality(release.name)
        resolution = parse_resolution_height(release.resolution or release.name)
        key: list[Any] = [
            -tier,
            -resolution,
            -trusted_group_score(release.name, self.trusted_groups),
            -SOURCE_PRIORITY.get(release.source_id, 0),
        ]
        if self.prefer_cached:
            key.append(0 if release.cached else 1)
        key.extend(
            [
                -release.size_bytes,
                -release.seeders,
                -release.published_at.timestamp(),
                -link_richness(release),
                release.name,
                release.info_hash.lower(),
                release.magnet_uri,
                release.download_url,
                release.page_link,
                release.info_hash,
                release.source_id.value,
                release.resolution,
                release.release_group,
                -release.leechers,
                -release.download_count,
                release.episode_number,
                _TRI_STATE[release.is_batch],
                release.confirmed,
                release.is_best_release,
                _TRI_STATE[release.cached],
            ]
        )
        return tuple(key)

    def compare(self, a: Release, b: Release) -> int:
        """Negative when ``a`` ranks before ``b``, positive when after."""
        key_a, key_b = self.sort_key(a), self.sort_key(b)
        if key_a < key_b:
            return -1
        if key_a > key_b:
            return 1
        return 0

    def better(self, a: Release, b: Release) -> Release:
        """Returns the preferred release of the two; ``a`` on a full tie."""
        return a if self.compare(a, b) <= 0 else b

    def sort(self, releases: Iterable[Release]) -> list[Release]:
        return sorted(releases, key=self.sort_key)


def rank_releases(
    releases: Iterable[Release],
    *,
    trusted_groups: Iterable[str] = TRUSTED_GROUPS,
    prefer_cached: bool = False,
) -> list[Release]:
    """Excludes unwanted qualities and returns the rest best-first."""
    ranker = ReleaseRanker(trusted_groups=trusted_groups, prefer_cached=prefer_cached)
    return ranker.sort(filter_excluded(releases))
