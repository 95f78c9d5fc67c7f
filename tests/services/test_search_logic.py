import asyncio
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parent.parent.parent))

import pytest

from anitorrent.config import SearchSettings
from anitorrent.models import (
    AggregationReport,
    AnimeMedia,
    MediaIdentifiers,
    Release,
    SearchIntent,
    SourceId,
)
from anitorrent.services import search_logic
from anitorrent.services.sources import SourceAdapter, SourceError


class StubSource(SourceAdapter):
    def __init__(
        self,
        source_id,
        releases=None,
        *,
        id_releases=None,
        error=None,
        boolean=True,
        curated=False,
        anime_id_field=None,
        episode_id_field=None,
    ):
        super().__init__(SearchSettings())
        self.source_id = source_id
        self.releases = releases or []
        self.id_releases = id_releases or []
        self.error = error
        self.supports_boolean_query = boolean
        self.curated = curated
        self.anime_id_field = anime_id_field
        self.episode_id_field = episode_id_field
        self.queries: list[str] = []
        self.id_lookups: list[int] = []

    async def fetch_by_query(self, query):
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return list(self.releases)

    async def fetch_by_anime_id(self, anime_id, resolution="", title=""):
        self.id_lookups.append(anime_id)
        if self.error is not None:
            raise self.error
        return list(self.id_releases)

    async def fetch_by_episode_id(self, episode_id, resolution=""):
        self.id_lookups.append(episode_id)
        return list(self.id_releases)


def _release(name, source_id=SourceId.NYAA, **kwargs):
    kwargs.setdefault("download_url", f"https://example.test/{name}")
    return Release(name=name, source_id=source_id, **kwargs)


SERIES = AnimeMedia(romaji_title="Shingeki no Kyojin", episode_count=25, format="TV")
MOVIE = AnimeMedia(romaji_title="Kimi no Na wa", episode_count=1, format="MOVIE")


@pytest.mark.asyncio
async def test_identifier_results_skip_free_text():
    batches = [_release(f"Batch {i}", SourceId.ANIMETOSHO, is_batch=True) for i in range(3)]
    tosho = StubSource(
        SourceId.ANIMETOSHO,
        [_release("free text hit", SourceId.ANIMETOSHO)],
        id_releases=batches,
        anime_id_field="anidb_aid",
        episode_id_field="anidb_eid",
    )
    nyaa = StubSource(SourceId.NYAA, [_release("nyaa hit", is_batch=True)])
    report = AggregationReport()

    releases = await search_logic.aggregate_smart(
        SERIES,
        SearchIntent(batch=True),
        [tosho, nyaa],
        identifiers=MediaIdentifiers(anidb_aid=123),
        report=report,
    )

    assert [r.name for r in releases] == ["Batch 0", "Batch 1", "Batch 2"]
    assert all(r.confirmed for r in releases)
    assert tosho.id_lookups == [123]
    assert tosho.queries == []
    assert nyaa.queries == []
    assert report.confirmed_by_identifier is True


@pytest.mark.asyncio
async def test_anime_id_lookup_keeps_singles_when_no_batches_exist():
    singles = [_release("OVA 1", is_batch=False), _release("OVA 2", is_batch=False)]
    tosho = StubSource(
        SourceId.ANIMETOSHO, id_releases=singles, anime_id_field="anidb_aid"
    )

    releases = await search_logic.aggregate_smart(
        SERIES, SearchIntent(batch=True), [tosho], MediaIdentifiers(anidb_aid=9)
    )

    assert [r.name for r in releases] == ["OVA 1", "OVA 2"]


@pytest.mark.asyncio
async def test_episode_id_lookup_drops_batches():
    tosho = StubSource(
        SourceId.ANIMETOSHO,
        id_releases=[_release("ep", is_batch=False), _release("pack", is_batch=True)],
        episode_id_field="anidb_eid",
    )

    releases = await search_logic.aggregate_smart(
        SERIES,
        SearchIntent(episode_number=4),
        [tosho],
        MediaIdentifiers(anidb_eid=77),
    )

    assert [r.name for r in releases] == ["ep"]
    assert releases[0].confirmed is True


@pytest.mark.asyncio
async def test_empty_identifier_result_falls_back_to_free_text():
    tosho = StubSource(
        SourceId.ANIMETOSHO,
        [_release("tosho batch", SourceId.ANIMETOSHO, is_batch=True, confirmed=True)],
        anime_id_field="anidb_aid",
    )
    report = AggregationReport()

    releases = await search_logic.aggregate_smart(
        SERIES, SearchIntent(batch=True), [tosho], MediaIdentifiers(anidb_aid=1), report
    )

    assert [r.name for r in releases] == ["tosho batch"]
    assert releases[0].confirmed is False
    assert tosho.queries and '"Batch"' in tosho.queries[0]
    assert report.confirmed_by_identifier is False
    assert report.queries == tosho.queries


@pytest.mark.asyncio
async def test_one_failing_source_does_not_sink_the_rest():
    sources = [
        StubSource(SourceId.ANIMETOSHO, [_release("a", SourceId.ANIMETOSHO)]),
        StubSource(SourceId.NYAA, [_release("b")]),
        StubSource(SourceId.ACGRIP, [_release("c", SourceId.ACGRIP)]),
        StubSource(SourceId.ANILIBERTY, [_release("d", SourceId.ANILIBERTY)]),
        StubSource(SourceId.RUTRACKER, error=SourceError(SourceId.RUTRACKER, "HTTP 500")),
    ]
    report = AggregationReport()

    releases = await search_logic.aggregate_query("frieren", sources, report=report)

    assert sorted(r.name for r in releases) == ["a", "b", "c", "d"]
    assert list(report.failures) == ["rutracker"]
    assert "HTTP 500" in report.failures["rutracker"][0]


@pytest.mark.asyncio
async def test_all_sources_failing_yields_empty_list():
    sources = [
        StubSource(SourceId.NYAA, error=RuntimeError("boom")),
        StubSource(SourceId.ACGRIP, error=SourceError(SourceId.ACGRIP, "down")),
    ]
    report = AggregationReport()

    releases = await search_logic.aggregate_smart(
        SERIES, SearchIntent(episode_number=2), sources, report=report
    )

    assert releases == []
    assert set(report.failures) == {"nyaa", "acgrip"}


@pytest.mark.asyncio
async def test_cancellation_propagates():
    sources = [StubSource(SourceId.NYAA, error=asyncio.CancelledError())]

    with pytest.raises(asyncio.CancelledError):
        await search_logic.aggregate_query("frieren", sources)


@pytest.mark.asyncio
async def test_batch_intent_drops_single_episodes():
    nyaa = StubSource(
        SourceId.NYAA,
        [_release("single", is_batch=False), _release("pack", is_batch=True)],
    )

    releases = await search_logic.aggregate_smart(
        SERIES, SearchIntent(batch=True), [nyaa]
    )

    assert [r.name for r in releases] == ["pack"]


@pytest.mark.asyncio
async def test_single_entity_keeps_everything():
    nyaa = StubSource(
        SourceId.NYAA,
        [_release("movie", is_batch=False), _release("movie pack", is_batch=True)],
    )

    releases = await search_logic.aggregate_smart(
        MOVIE, SearchIntent(batch=True), [nyaa]
    )

    assert [r.name for r in releases] == ["movie", "movie pack"]


@pytest.mark.asyncio
async def test_episode_intent_filters_mismatched_episode_numbers():
    nyaa = StubSource(
        SourceId.NYAA,
        [
            _release("ep5", episode_number=5, is_batch=False),
            _release("ep6", episode_number=6, is_batch=False),
            _release("unknown", episode_number=-1, is_batch=False),
        ],
    )

    releases = await search_logic.aggregate_smart(
        SERIES, SearchIntent(episode_number=5), [nyaa]
    )

    assert len(nyaa.queries) == 4
    assert list(dict.fromkeys(r.name for r in releases)) == ["ep5", "unknown"]


def test_filter_episode_numbers_accepts_absolute_numbering():
    releases = [
        _release("relative", episode_number=3),
        _release("absolute", episode_number=27),
        _release("other", episode_number=4),
    ]

    kept = search_logic.filter_episode_numbers(releases, 3, absolute_offset=24)

    assert [r.name for r in kept] == ["relative", "absolute"]


@pytest.mark.asyncio
async def test_curated_results_never_gate_identifier_results():
    seadex = StubSource(
        SourceId.SEADEX,
        id_releases=[_release("curated", SourceId.SEADEX, is_batch=True, confirmed=True)],
        curated=True,
        anime_id_field="anilist_id",
    )
    tosho = StubSource(
        SourceId.ANIMETOSHO,
        id_releases=[_release("exact", SourceId.ANIMETOSHO, is_batch=True)],
        anime_id_field="anidb_aid",
    )
    media = AnimeMedia(romaji_title="Frieren", episode_count=28, anilist_id=154587)

    releases = await search_logic.aggregate_smart(
        media, SearchIntent(batch=True), [seadex, tosho], MediaIdentifiers(anidb_aid=5)
    )

    assert [r.name for r in releases] == ["curated", "exact"]
    assert seadex.id_lookups == [154587]
    assert seadex.queries == []


@pytest.mark.asyncio
async def test_curated_lookup_skipped_for_episode_intent():
    seadex = StubSource(
        SourceId.SEADEX,
        id_releases=[_release("curated", SourceId.SEADEX, is_batch=True)],
        curated=True,
        anime_id_field="anilist_id",
    )
    media = AnimeMedia(romaji_title="Frieren", episode_count=28, anilist_id=1)

    await search_logic.aggregate_smart(media, SearchIntent(episode_number=1), [seadex])

    assert seadex.id_lookups == []


@pytest.mark.asyncio
async def test_plain_sources_receive_simplified_queries():
    plain = StubSource(SourceId.ACGRIP, boolean=False)
    boolean = StubSource(SourceId.NYAA, boolean=True)

    await search_logic.aggregate_smart(
        SERIES, SearchIntent(episode_number=5), [plain, boolean]
    )

    assert len(boolean.queries) == 4
    assert plain.queries == ["shingeki no kyojin 05", "shingeki no kyojin - 05"]
    assert not any('"' in q or "|" in q for q in plain.queries)


@pytest.mark.asyncio
async def test_latest_queries_each_source_once():
    tosho = StubSource(SourceId.ANIMETOSHO, [_release("new", SourceId.ANIMETOSHO)])

    releases = await search_logic.aggregate_latest([tosho])

    assert [r.name for r in releases] == ["new"]
    assert tosho.queries == [""]
