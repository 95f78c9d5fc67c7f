import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parent.parent.parent.parent))

import pytest

from anitorrent.config import SearchSettings
from anitorrent.services.sources import AcgRipSource, load_site_config
from anitorrent.services.sources.acgrip import ACGRIP_CONFIG

RESULTS_PAGE = """
<html><body>
<table class="table table-hover table-condensed post-index">
<tbody>
<tr>
  <td class="date hidden-xs hidden-sm"><time datetime="1700000000">2023-11-14</time></td>
  <td class="title">
    <span class="label label-primary label-team"><a href="/team/1">SubsPlease</a></span>
    <span class="title"><a href="/t/300001">Sousou no Frieren - 10 (1080p) [ABCD1234].mkv</a></span>
  </td>
  <td class="action"><a href="/t/300001.torrent"><i class="fa fa-download"></i></a></td>
  <td class="size">1.4 GB</td>
</tr>
<tr>
  <td class="date hidden-xs hidden-sm"><time datetime="1700000100">2023-11-14</time></td>
  <td class="title">
    <span class="title"><a href="/t/300002">[Erai-raws] Sousou no Frieren - 11 [720p]</a></span>
  </td>
  <td class="action"><a href="/t/300002.torrent"><i class="fa fa-download"></i></a></td>
  <td class="size">700 MB</td>
</tr>
<tr>
  <td class="date hidden-xs hidden-sm"><time datetime="1700000200">2023-11-14</time></td>
  <td class="title">
    <span class="title"><a href="/t/300003">[Group] Totally Unrelated Show - 03 [720p]</a></span>
  </td>
  <td class="action"><a href="/t/300003.torrent"><i class="fa fa-download"></i></a></td>
  <td class="size">300 MB</td>
</tr>
</tbody>
</table>
</body></html>
"""


def test_load_site_config_caches_and_validates(tmp_path):
    assert load_site_config(ACGRIP_CONFIG) is load_site_config(ACGRIP_CONFIG)
    assert load_site_config(ACGRIP_CONFIG)["site_name"] == "ACG.RIP"

    broken = tmp_path / "broken.yaml"
    broken.write_text("site_name: Broken\nbase_url: https://example.org\n")
    with pytest.raises(ValueError, match="results_page_selectors"):
        load_site_config(broken)

    with pytest.raises(FileNotFoundError):
        load_site_config(tmp_path / "missing.yaml")


def test_parse_results_reads_rows():
    releases = AcgRipSource(SearchSettings()).parse_results(RESULTS_PAGE)

    assert len(releases) == 3
    first, second, _ = releases
    assert first.name == "Sousou no Frieren - 10 (1080p) [ABCD1234].mkv"
    assert first.release_group == "SubsPlease"
    assert first.page_link == "https://acg.rip/t/300001"
    assert first.download_url == "https://acg.rip/t/300001.torrent"
    assert first.published_at == datetime.fromtimestamp(1700000000, tz=timezone.utc)
    assert first.size_bytes == int(round(1.4 * 1024**3))
    assert first.episode_number == 10
    assert first.seeders == -1

    assert second.name == "Sousou no Frieren - 11 [720p]"
    assert second.release_group == "Erai-raws"
    assert second.resolution == "720p"


@pytest.mark.asyncio
async def test_fetch_by_query_filters_unrelated_titles(fake_http):
    client = fake_http({"acg.rip": RESULTS_PAGE})

    releases = await AcgRipSource(SearchSettings()).fetch_by_query("sousou no frieren")

    assert client.calls[0]["url"] == "https://acg.rip/?term=sousou+no+frieren"
    assert [r.name for r in releases] == [
        "[ACG.RIP] Sousou no Frieren - 10 (1080p) [ABCD1234].mkv",
        "[ACG.RIP] Sousou no Frieren - 11 [720p]",
    ]
    assert all(r.is_batch is False for r in releases)


@pytest.mark.asyncio
async def test_latest_keeps_every_row(fake_http):
    fake_http({"acg.rip": RESULTS_PAGE})

    releases = await AcgRipSource(SearchSettings()).fetch_latest()

    assert len(releases) == 3
