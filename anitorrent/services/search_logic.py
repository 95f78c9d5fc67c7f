# anitorrent/services/search_logic.py

import asyncio
from collections.abc import Coroutine, Iterable
from dataclasses import replace
from typing import Any

from .. import config
from ..config import logger
from ..models import (
    AggregationReport,
    AnimeMedia,
    MediaIdentifiers,
    Release,
    SearchIntent,
)
from ..utils import format_bytes
from .query_builder import build_queries, simplify_query
from .sources import SourceAdapter

# --- Type Aliases for Readability ---
SourceCoroutine = Coroutine[Any, Any, list[Release]]
TaskEntry = tuple[SourceAdapter, str, SourceCoroutine]


# --- Fan-out ---


async def run_source_tasks(
    task_entries: list[TaskEntry], report: AggregationReport
) -> list[Release]:
    """
    Runs every source task concurrently and concatenates the successes.

    A task that raises contributes nothing; its error is logged and recorded in
    ``report``. Cancellation is never swallowed.
    """
    if not task_entries:
        return []

    tasks = [asyncio.create_task(coro) for _, _, coro in task_entries]
    try:
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)
    except BaseException:
        for task in tasks:
            task.cancel()
        raise

    merged: list[Release] = []
    for (source, description, _), outcome in zip(task_entries, outcomes):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            logger.error(f"[SEARCH] {source.label} failed for {description}: {outcome}")
            report.record_failure(source.source_id, outcome)
            continue
        _log_source_results(source.label, description, outcome)
        merged.extend(outcome)
    return merged


def queries_for_source(source: SourceAdapter, queries: Iterable[str]) -> list[str]:
    """Flattens boolean queries for sources that cannot parse them."""
    if source.supports_boolean_query:
        return list(dict.fromkeys(queries))
    simplified = (simplify_query(q) for q in queries)
    return list(dict.fromkeys(q for q in simplified if q))


async def search_free_text(
    queries: list[str],
    sources: Iterable[SourceAdapter],
    report: AggregationReport,
) -> list[Release]:
    """Issues every query against every non-curated source in parallel."""
    task_entries: list[TaskEntry] = []
    for source in sources:
        if source.curated:
            continue
        for query in queries_for_source(source, queries):
            logger.info(
                f"[SEARCH] Creating search task for '{source.label}' "
                f"with query: '{query}'"
            )
            task_entries.append(
                (source, f"query '{query}'", source.fetch_by_query(query))
            )
    report.queries.extend(q for q in queries if q not in report.queries)

    if not task_entries:
        logger.warning("[SEARCH] No enabled free-text sources to query.")
        return []

    releases = await run_source_tasks(task_entries, report)
    return [replace(r, confirmed=False) if r.confirmed else r for r in releases]


# --- Intent filters ---


def filter_for_intent(
    releases: Iterable[Release], media: AnimeMedia, intent: SearchIntent
) -> list[Release]:
    """
    Batch intent keeps batches, episode intent keeps single files.

    Single-entity works (movies, one-episode specials) keep everything.
    """
    releases = list(releases)
    if media.is_single_entity:
        return releases
    if intent.batch:
        return [r for r in releases if r.is_batch]
    return [r for r in releases if not r.is_batch]


def prefer_batches(releases: list[Release], media: AnimeMedia) -> list[Release]:
    """
    Keeps the multi-file releases of an anime-id lookup when there are any.

    Works released only as single files (e.g. OVAs) keep everything.
    """
    if media.is_single_entity:
        return releases
    batches = [r for r in releases if r.is_batch]
    return batches or releases


def filter_episode_numbers(
    releases: Iterable[Release], episode: int, absolute_offset: int = 0
) -> list[Release]:
    """Drops releases whose known episode is neither the requested nor absolute one."""
    wanted = {episode}
    if absolute_offset:
        wanted.add(episode + absolute_offset)
    return [r for r in releases if r.episode_number < 0 or r.episode_number in wanted]


# --- Identifier lookups ---


def _identifier_field(source: SourceAdapter, intent: SearchIntent) -> str | None:
    return source.anime_id_field if intent.batch else source.episode_id_field


async def lookup_by_identifier(
    sources: Iterable[SourceAdapter],
    media: AnimeMedia,
    intent: SearchIntent,
    identifiers: MediaIdentifiers,
    report: AggregationReport,
) -> list[Release]:
    """
    Exact lookups on non-curated sources that support the intent's identifier.

    Results are already narrowed to the intent and marked confirmed.
    """
    task_entries: list[TaskEntry] = []
    for source in sources:
        if source.curated:
            continue
        field_name = _identifier_field(source, intent)
        identifier = identifiers.get(field_name)
        if identifier is None:
            continue
        logger.info(f"[SEARCH] {source.label}: Looking up {field_name}={identifier}")
        if intent.batch:
            coro = source.fetch_by_anime_id(identifier, intent.resolution)
        else:
            coro = source.fetch_by_episode_id(identifier, intent.resolution)
        task_entries.append((source, f"{field_name} {identifier}", coro))

    releases = await run_source_tasks(task_entries, report)
    if intent.batch:
        releases = prefer_batches(releases, media)
    else:
        releases = filter_for_intent(releases, media, intent)
    return [replace(r, confirmed=True) for r in releases]


def curated_task_entries(
    sources: Iterable[SourceAdapter], media: AnimeMedia, identifiers: MediaIdentifiers
) -> list[TaskEntry]:
    """Anime-id lookups on curated sources, keyed by whatever id they need."""
    task_entries: list[TaskEntry] = []
    title = media.romaji_title or media.english_title
    for source in sources:
        if not source.curated or not source.anime_id_field:
            continue
        identifier = identifiers.get(source.anime_id_field)
        if identifier is None and source.anime_id_field == "anilist_id":
            identifier = media.anilist_id if (media.anilist_id or 0) > 0 else None
        if identifier is None:
            continue
        task_entries.append(
            (
                source,
                f"{source.anime_id_field} {identifier}",
                source.fetch_by_anime_id(identifier, title=title),
            )
        )
    return task_entries


# --- Aggregation entry points ---


async def aggregate_smart(
    media: AnimeMedia,
    intent: SearchIntent,
    sources: list[SourceAdapter],
    identifiers: MediaIdentifiers | None = None,
    report: AggregationReport | None = None,
) -> list[Release]:
    """
    Identifier-first aggregation for a structured search.

    Curated lookups run alongside everything else and never suppress the
    free-text fallback. A non-empty identifier result is authoritative and
    skips free-text search entirely.
    """
    identifiers = identifiers or MediaIdentifiers()
    report = report if report is not None else AggregationReport()

    curated_entries: list[TaskEntry] = []
    if intent.batch or media.is_single_entity:
        curated_entries = curated_task_entries(sources, media, identifiers)
    curated_task = asyncio.create_task(run_source_tasks(curated_entries, report))

    try:
        releases = await lookup_by_identifier(
            sources, media, intent, identifiers, report
        )
        if releases:
            report.confirmed_by_identifier = True
            logger.info(
                f"[SEARCH] Identifier lookup returned {len(releases)} releases; "
                "skipping free-text search."
            )
        else:
            queries = build_queries(media, intent)
            if not queries:
                logger.warning("[SEARCH] No usable title to build free-text queries.")
            free_text = await search_free_text(queries, sources, report)
            releases = filter_for_intent(free_text, media, intent)
            if not intent.batch and intent.episode_number > 0:
                if not media.is_single_entity:
                    releases = filter_episode_numbers(
                        releases, intent.episode_number, media.absolute_season_offset
                    )
        curated = await curated_task
    except BaseException:
        curated_task.cancel()
        raise

    curated = filter_for_intent(curated, media, intent)
    logger.info(
        f"[SEARCH] Aggregation complete: {len(curated)} curated, "
        f"{len(releases)} other releases."
    )
    return curated + releases


async def aggregate_query(
    query: str,
    sources: list[SourceAdapter],
    media: AnimeMedia | None = None,
    report: AggregationReport | None = None,
) -> list[Release]:
    """Plain free-text search, plus curated lookups when the media id is known."""
    media = media or AnimeMedia()
    report = report if report is not None else AggregationReport()
    task_entries = curated_task_entries(sources, media, MediaIdentifiers())
    for source in sources:
        if source.curated:
            continue
        for source_query in queries_for_source(source, [query]):
            task_entries.append(
                (source, f"query '{source_query}'", source.fetch_by_query(source_query))
            )
    report.queries.append(query)
    return await run_source_tasks(task_entries, report)


async def aggregate_latest(
    sources: list[SourceAdapter], report: AggregationReport | None = None
) -> list[Release]:
    """Latest uploads from every given source."""
    report = report if report is not None else AggregationReport()
    task_entries: list[TaskEntry] = [
        (source, "latest", source.fetch_latest()) for source in sources
    ]
    return await run_source_tasks(task_entries, report)


def _log_source_results(label: str, description: str, results: list[Release]) -> None:
    """
    Logs what a source returned before any filtering happens.

    The per-record dump is only emitted when ``LOG_SOURCE_RESULTS`` is on.
    """
    logger.info(f"[SEARCH] {label}: {len(results)} results for {description}.")
    if not config.LOG_SOURCE_RESULTS:
        return

    lines = [f"--- {label} Source Results ---"]
    if not results:
        lines.append("No results returned.")
    for idx, release in enumerate(results, start=1):
        lines.append(f"Result {idx}:")
        lines.append(f"  name: {release.name}")
        lines.append(f"  size: {format_bytes(release.size_bytes)}")
        lines.append(f"  seeders: {release.seeders}")
        lines.append(f"  batch: {release.is_batch}")
        lines.append(f"  episode: {release.episode_number}")
    lines.append("--------------------")
    logger.info("\n".join(lines))
