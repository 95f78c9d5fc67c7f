import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parent.parent.parent.parent))

import pytest

from anitorrent.config import SearchSettings
from anitorrent.services.sources import AnimeToshoSource, SourceError
from anitorrent.services.sources.animetosho import format_quality

FEED = "https://feed.animetosho.org/json"

ITEMS = [
    {
        "title": "[Judas] Sousou no Frieren (Season 1) [1080p][HEVC x265 10bit]",
        "link": "https://animetosho.org/view/judas-frieren.1",
        "torrent_url": "https://animetosho.org/storage/torrent/aa/judas.torrent",
        "magnet_uri": "magnet:?xt=urn:btih:JUDAS",
        "info_hash": "judas",
        "timestamp": 1700000000,
        "seeders": 200000,
        "leechers": 12,
        "torrent_download_count": 900,
        "total_size": 30_000_000_000,
        "num_files": 28,
    },
    {
        "title": "[SubsPlease] Sousou no Frieren - 05 (1080p) [ABCD1234].mkv",
        "link": "https://animetosho.org/view/subsplease-frieren-05.2",
        "torrent_url": "https://animetosho.org/storage/torrent/bb/sp.torrent",
        "magnet_uri": "",
        "info_hash": "sp05",
        "timestamp": "1700000500",
        "seeders": "340",
        "leechers": "4",
        "total_size": 1_400_000_000,
        "num_files": 1,
    },
    {"title": "No links at all", "num_files": 1},
    "not a dict",
]


@pytest.mark.parametrize(
    "resolution, expected", [("1080p", "1080"), ("720", "720"), ("", "")]
)
def test_format_quality(resolution, expected):
    assert format_quality(resolution) == expected


@pytest.mark.asyncio
async def test_fetch_by_query_normalizes_items(fake_http):
    client = fake_http({FEED: ITEMS})

    releases = await AnimeToshoSource(SearchSettings()).fetch_by_query("frieren")

    assert client.calls[0]["params"] == {"q": "frieren"}
    assert len(releases) == 2

    batch, single = releases
    assert batch.name.startswith("[AnimeTosho] [Judas]")
    assert batch.is_batch is True
    assert batch.episode_number == -1
    assert batch.seeders == 0
    assert batch.magnet_uri == "magnet:?xt=urn:btih:JUDAS"

    assert single.is_batch is False
    assert single.episode_number == 5
    assert single.resolution == "1080p"
    assert single.release_group == "SubsPlease"
    assert single.seeders == 340
    assert single.published_at == datetime.fromtimestamp(1700000500, tz=timezone.utc)


@pytest.mark.asyncio
async def test_identifier_lookups_send_anidb_params(fake_http):
    client = fake_http({FEED: []})
    source = AnimeToshoSource(SearchSettings())

    await source.fetch_by_anime_id(123, "1080p")
    await source.fetch_by_episode_id(456)

    assert client.calls[0]["params"] == {"order": "size-d", "aid": 123, "q": "1080"}
    assert client.calls[1]["params"] == {"eid": 456, "q": ""}


@pytest.mark.asyncio
async def test_custom_feed_url_is_used(fake_http):
    client = fake_http({"mirror.example.org": []})
    settings = SearchSettings(animetosho_url="https://mirror.example.org/json")

    await AnimeToshoSource(settings).fetch_by_query("x")

    assert client.calls[0]["url"] == "https://mirror.example.org/json"


@pytest.mark.asyncio
@pytest.mark.parametrize("outcome", [{"error": "nope"}, "<html>down</html>", 502])
async def test_bad_payloads_raise_source_error(fake_http, outcome):
    fake_http({FEED: outcome})

    with pytest.raises(SourceError):
        await AnimeToshoSource(SearchSettings()).fetch_by_query("frieren")
