# anitorrent/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
UNKNOWN = -1


class SourceId(str, Enum):
    """Identifies which adapter produced a release."""

    SEADEX = "seadex"
    ANIMETOSHO = "animetosho"
    NYAA = "nyaa"
    ACGRIP = "acgrip"
    ANILIBERTY = "aniliberty"
    RUTRACKER = "rutracker"

    @property
    def label(self) -> str:
        return _SOURCE_LABELS[self]


_SOURCE_LABELS: dict[SourceId, str] = {
    SourceId.SEADEX: "SeaDex",
    SourceId.ANIMETOSHO: "AnimeTosho",
    SourceId.NYAA: "Nyaa",
    SourceId.ACGRIP: "ACG.RIP",
    SourceId.ANILIBERTY: "AniLiberty",
    SourceId.RUTRACKER: "RuTracker",
}


@dataclass
class Release:
    """
    A normalized download candidate.

    Counts use ``-1`` for "unknown"; ``is_batch`` may be ``None`` when an
    adapter cannot tell, in which case normalization infers it from the name.
    Only ``magnet_uri`` and ``cached`` are filled in after deduplication.
    """

    name: str
    source_id: SourceId
    published_at: datetime = EPOCH
    size_bytes: int = 0
    seeders: int = UNKNOWN
    leechers: int = UNKNOWN
    download_count: int = UNKNOWN
    page_link: str = ""
    download_url: str = ""
    magnet_uri: str = ""
    info_hash: str = ""
    resolution: str = ""
    is_batch: bool | None = None
    episode_number: int = UNKNOWN
    release_group: str = ""
    is_best_release: bool = False
    confirmed: bool = False
    cached: bool | None = None

    @property
    def is_usable(self) -> bool:
        return bool(self.download_url or self.magnet_uri or self.page_link)


@dataclass(frozen=True)
class AnimeMedia:
    """Structured metadata describing the anime being searched for."""

    romaji_title: str = ""
    english_title: str = ""
    synonyms: tuple[str, ...] = ()
    episode_count: int = 0
    format: str = ""
    absolute_season_offset: int = 0
    anilist_id: int | None = None

    @property
    def is_single_entity(self) -> bool:
        return self.episode_count == 1 or self.format.upper() == "MOVIE"

    @property
    def all_titles(self) -> list[str]:
        titles = [self.romaji_title, self.english_title, *self.synonyms]
        return [title for title in titles if title]


@dataclass(frozen=True)
class MediaIdentifiers:
    """Exact identifiers usable for lookups that bypass free-text search."""

    anilist_id: int | None = None
    anidb_aid: int | None = None
    anidb_eid: int | None = None

    def get(self, name: str | None) -> int | None:
        if not name:
            return None
        value = getattr(self, name, None)
        return value if isinstance(value, int) and value > 0 else None


@dataclass(frozen=True)
class SearchIntent:
    """What the caller is looking for in a smart search."""

    batch: bool = False
    episode_number: int = UNKNOWN
    resolution: str = ""
    query: str = ""


@dataclass
class AggregationReport:
    """Diagnostics collected during one aggregation pass."""

    queries: list[str] = field(default_factory=list)
    failures: dict[str, list[str]] = field(default_factory=dict)
    confirmed_by_identifier: bool = False

    def record_failure(self, source: SourceId, error: BaseException) -> None:
        message = f"{type(error).__name__}: {error}"
        self.failures.setdefault(source.value, []).append(message)
