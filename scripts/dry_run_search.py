"""
Quick dry-run script to check anime search aggregation and ranking.

Run:
    uv run scripts/dry_run_search.py "Frieren" --batch --episodes 28
    uv run scripts/dry_run_search.py "One Piece" --episode 1100 --res 1080p

This does not download anything. It runs the same aggregation pipeline the
provider uses and prints the top ranked releases.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from anitorrent.config import load_settings  # noqa: E402
from anitorrent.models import AnimeMedia, MediaIdentifiers  # noqa: E402
from anitorrent.services.provider import AnimeTorrentProvider  # noqa: E402
from anitorrent.utils import format_bytes  # noqa: E402


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Dry-run anime torrent search across the enabled sources"
    )
    parser.add_argument("title", help="Romaji or English title of the anime")
    parser.add_argument("--english", default="", help="Localized title, if different")
    parser.add_argument(
        "--synonym", action="append", default=[], help="Alternate title (repeatable)"
    )
    parser.add_argument("--episodes", type=int, default=0, help="Total episode count")
    parser.add_argument("--format", default="TV", help="TV, MOVIE, OVA, ...")
    parser.add_argument("--offset", type=int, default=0, help="Absolute season offset")
    parser.add_argument("--batch", action="store_true", help="Search for batches")
    parser.add_argument("--episode", type=int, default=-1, help="Episode to find")
    parser.add_argument(
        "--res", default="", choices=["", "480p", "720p", "1080p", "2160p"]
    )
    parser.add_argument("--anilist-id", type=int, default=None)
    parser.add_argument("--aid", type=int, default=None, help="AniDB anime id")
    parser.add_argument("--eid", type=int, default=None, help="AniDB episode id")
    parser.add_argument(
        "--plain", action="store_true", help="Plain free-text search instead"
    )
    parser.add_argument("--config", default="config.ini")
    parser.add_argument("--top", type=int, default=10)
    return parser


async def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    provider = AnimeTorrentProvider(load_settings(args.config))
    media = AnimeMedia(
        romaji_title=args.title,
        english_title=args.english,
        synonyms=tuple(args.synonym),
        episode_count=args.episodes,
        format=args.format,
        absolute_season_offset=args.offset,
        anilist_id=args.anilist_id,
    )

    if args.plain:
        releases = await provider.search(args.title, media)
    else:
        releases = await provider.smart_search(
            media,
            batch=args.batch,
            episode_number=args.episode,
            resolution=args.res,
            identifiers=MediaIdentifiers(
                anilist_id=args.anilist_id, anidb_aid=args.aid, anidb_eid=args.eid
            ),
        )

    report = provider.last_report
    if report is not None and report.failures:
        print(f"Failed sources: {', '.join(sorted(report.failures))}")
    if not releases:
        print("No results.")
        return

    print(f"Top {min(args.top, len(releases))} of {len(releases)} releases:")
    for release in releases[: args.top]:
        flags = []
        if release.confirmed:
            flags.append("confirmed")
        if release.is_best_release:
            flags.append("best")
        if release.cached:
            flags.append("cached")
        print(
            f"- {release.name} | {format_bytes(release.size_bytes)} | "
            f"seeders={release.seeders} | ep={release.episode_number} | "
            f"{' '.join(flags) or '-'}"
        )


if __name__ == "__main__":
    asyncio.run(main())
