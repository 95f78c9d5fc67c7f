# anitorrent/services/provider.py

from collections.abc import Mapping
from typing import Any

from ..config import SearchSettings, logger, settings_from_preferences
from ..models import (
    AggregationReport,
    AnimeMedia,
    MediaIdentifiers,
    Release,
    SearchIntent,
    SourceId,
)
from . import search_logic
from .cache_probe import CacheProbe
from .deduplication import dedupe
from .ranking import ReleaseRanker, filter_excluded
from .sources import SourceAdapter, build_sources
from .torrent_service import MagnetResolver

LATEST_SOURCES = {SourceId.ANIMETOSHO, SourceId.NYAA}


class AnimeTorrentProvider:
    """
    Caller-facing entry point: search, rank and enrich anime releases.

    Every call is an independent aggregation pass; nothing is cached between
    calls. ``sources`` may be injected to replace the settings-driven set.
    """

    def __init__(
        self,
        settings: SearchSettings | None = None,
        sources: list[SourceAdapter] | None = None,
    ) -> None:
        self.settings = settings or SearchSettings()
        self._sources = sources
        self.ranker = ReleaseRanker(
            trusted_groups=self.settings.trusted_groups,
            prefer_cached=(
                self.settings.prefer_cached and self.settings.cache_probe_enabled
            ),
        )
        self.resolver = MagnetResolver(self.settings)
        self.cache_probe = (
            CacheProbe(self.settings) if self.settings.cache_probe_enabled else None
        )
        self.last_report: AggregationReport | None = None

    @classmethod
    def from_preferences(
        cls, preferences: Mapping[str, Any]
    ) -> "AnimeTorrentProvider":
        return cls(settings_from_preferences(preferences))

    @staticmethod
    def provider_settings() -> dict[str, Any]:
        return {
            "type": "main",
            "can_smart_search": True,
            "smart_search_filters": ["batch", "episodeNumber", "resolution", "query"],
            "supports_adult": True,
        }

    def sources(self, only: set[SourceId] | None = None) -> list[SourceAdapter]:
        if self._sources is not None:
            if only is None:
                return list(self._sources)
            return [s for s in self._sources if s.source_id in only]
        return build_sources(self.settings, only=only)

    # --- Searches ---

    async def latest(self) -> list[Release]:
        report = AggregationReport()
        releases = await search_logic.aggregate_latest(
            self.sources(only=LATEST_SOURCES), report
        )
        return await self._finish(releases, report)

    async def search(
        self, query: str, media: AnimeMedia | None = None
    ) -> list[Release]:
        logger.info(f"[SEARCH] Free-text search for '{query}'")
        report = AggregationReport()
        releases = await search_logic.aggregate_query(
            query, self.sources(), media=media, report=report
        )
        return await self._finish(releases, report)

    async def smart_search(
        self,
        media: AnimeMedia,
        batch: bool = False,
        episode_number: int = -1,
        resolution: str = "",
        query: str = "",
        identifiers: MediaIdentifiers | None = None,
    ) -> list[Release]:
        intent = SearchIntent(
            batch=batch,
            episode_number=episode_number,
            resolution=resolution,
            query=query,
        )
        logger.info(
            f"[SEARCH] Smart search for '{media.romaji_title or media.english_title}' "
            f"(batch={batch}, episode={episode_number}, resolution={resolution!r})"
        )
        report = AggregationReport()
        releases = await search_logic.aggregate_smart(
            media, intent, self.sources(), identifiers=identifiers, report=report
        )
        return await self._finish(releases, report)

    # --- Per-release helpers ---

    async def resolve_magnet(self, release: Release) -> str:
        return await self.resolver.resolve(release)

    @staticmethod
    def get_info_hash(release: Release) -> str:
        return release.info_hash or ""

    # --- Pipeline ---

    async def finalize(self, releases: list[Release]) -> list[Release]:
        """
        Dedupe, drop excluded qualities, rank, enrich the top entries, re-rank.

        Magnets are filled on the highest-ranked releases that lack one; the
        cache probe then runs on magnet-bearing releases when enabled.
        """
        ranked = self.ranker.sort(filter_excluded(dedupe(releases, self.ranker)))

        if self.settings.auto_scrape_magnets and self.settings.magnet_scrape_limit > 0:
            await self.resolver.resolve_top_n(ranked, self.settings.magnet_scrape_limit)

        if self.cache_probe is not None:
            await self.cache_probe.probe_many(ranked, self.settings.probe_limit)

        return self.ranker.sort(ranked)

    async def _finish(
        self, releases: list[Release], report: AggregationReport
    ) -> list[Release]:
        self.last_report = report
        if report.failures:
            logger.warning(
                f"[SEARCH] Sources with errors: {', '.join(sorted(report.failures))}"
            )
        final = await self.finalize(releases)
        logger.info(f"[SEARCH] Returning {len(final)} ranked releases.")
        return final
