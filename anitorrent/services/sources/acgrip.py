# anitorrent/services/sources/acgrip.py

from __future__ import annotations

import re
import urllib.parse
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from bs4 import BeautifulSoup, Tag
from thefuzz import fuzz

from ...config import logger
from ...models import Release, SourceId
from ...utils import (
    normalize_resolution,
    parse_release_name,
    parse_size_to_bytes,
    parse_timestamp,
)
from .base import SourceAdapter

CONFIG_DIR = Path(__file__).resolve().parent / "configs"
ACGRIP_CONFIG = CONFIG_DIR / "acgrip.yaml"

_LEADING_GROUP = re.compile(r"^\[([^\]]+)\]")

# Cache for site configurations to avoid repeated disk reads.
_config_cache: dict[Path, dict[str, Any]] = {}


def load_site_config(config_path: Path) -> dict[str, Any]:
    """Load and minimally validate a YAML site configuration.

    Configurations are cached in-memory per resolved path after the first load.
    """
    resolved_path = config_path.resolve()
    cached = _config_cache.get(resolved_path)
    if cached is not None:
        return cached

    if not resolved_path.exists():
        raise FileNotFoundError(f"Scraper config not found: {resolved_path}")

    with resolved_path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}

    required = {"site_name", "base_url", "search_path", "results_page_selectors"}
    missing = required - data.keys()
    if missing:
        raise ValueError(f"Config missing keys: {', '.join(sorted(missing))}")

    _config_cache[resolved_path] = data
    return data


def _select_text(row: Tag, selector: str | None) -> str:
    if not selector:
        return ""
    node = row.select_one(selector)
    return node.get_text(strip=True) if node is not None else ""


def _select_attr(row: Tag, selector: str | None, attr: str) -> str:
    if not selector:
        return ""
    node = row.select_one(selector)
    if node is None:
        return ""
    value = node.get(attr)
    return value.strip() if isinstance(value, str) else ""


class AcgRipSource(SourceAdapter):
    """Scrapes the ACG.RIP search page using selectors from a YAML file."""

    source_id = SourceId.ACGRIP

    def __init__(self, settings, config_path: Path = ACGRIP_CONFIG) -> None:
        super().__init__(settings)
        self.config = load_site_config(config_path)
        self.base_url: str = self.config["base_url"].rstrip("/")
        self.search_path: str = self.config["search_path"]
        self.selectors: dict[str, Any] = self.config["results_page_selectors"]
        matching: dict[str, Any] = self.config.get("matching", {})
        scorer_name = matching.get("fuzz_scorer", "token_set_ratio")
        self._fuzz_scorer = getattr(fuzz, scorer_name, fuzz.token_set_ratio)
        self._fuzz_threshold = int(matching.get("fuzz_threshold", 60))
        if not hasattr(fuzz, scorer_name):
            logger.warning(
                "[SOURCE] Unknown fuzz scorer '%s'; defaulting to 'token_set_ratio'",
                scorer_name,
            )

    async def fetch_by_query(self, query: str) -> list[Release]:
        search_path = self.search_path.format(query=urllib.parse.quote_plus(query))
        url = urllib.parse.urljoin(f"{self.base_url}/", search_path.lstrip("/"))
        html = await self._get_text(url)
        releases = self.parse_results(html)
        if query.strip():
            releases = self._filter_relevant(releases, query)
        return self._finalize(releases)

    def parse_results(self, html: str) -> list[Release]:
        soup = BeautifulSoup(html, "lxml")
        rows = soup.select(self.selectors["rows"])
        releases: list[Release] = []
        for row in rows:
            release = self._parse_row(row)
            if release is not None:
                releases.append(release)
        logger.debug(f"[SOURCE] ACG.RIP: Parsed {len(releases)} of {len(rows)} rows.")
        return releases

    def _parse_row(self, row: Tag) -> Release | None:
        name = _select_text(row, self.selectors.get("title"))
        if not name:
            return None

        group = _select_text(row, self.selectors.get("group"))
        if not group:
            match = _LEADING_GROUP.match(name)
            if match:
                group = match.group(1).strip()
                name = name[match.end() :].strip()

        episodes = parse_release_name(name)["episodes"]
        href = _select_attr(row, self.selectors.get("title"), "href")
        download = _select_attr(row, self.selectors.get("download"), "href")
        timestamp = _select_attr(
            row,
            self.selectors.get("date"),
            self.selectors.get("date_attribute", "datetime"),
        )
        return Release(
            name=name,
            source_id=self.source_id,
            published_at=parse_timestamp(timestamp),
            size_bytes=parse_size_to_bytes(
                _select_text(row, self.selectors.get("size"))
            ),
            seeders=-1,
            leechers=-1,
            download_count=0,
            page_link=urllib.parse.urljoin(f"{self.base_url}/", href) if href else "",
            download_url=(
                urllib.parse.urljoin(f"{self.base_url}/", download) if download else ""
            ),
            resolution=normalize_resolution(name),
            is_batch=None,
            episode_number=episodes[0] if len(episodes) == 1 else -1,
            release_group=group,
        )

    def _filter_relevant(self, releases: list[Release], query: str) -> list[Release]:
        """Keeps releases whose parsed title fuzzily matches the query."""
        target = query.lower()
        kept: list[Release] = []
        for release in releases:
            title = parse_release_name(release.name)["title"] or release.name
            title = title.lower()
            score = self._fuzz_scorer(target, title)
            if score >= self._fuzz_threshold:
                kept.append(release)
            else:
                logger.debug(
                    f"[SOURCE] ACG.RIP: Dropping '{release.name}' (score {score} < "
                    f"{self._fuzz_threshold})"
                )
        return kept
