# anitorrent/services/query_builder.py

import re

from ..models import AnimeMedia, SearchIntent

BATCH_MARKERS = (
    "Batch",
    "Complete",
    "+ OVA",
    "+ Specials",
    "+ Special",
    "Seasons",
    "Parts",
)
SEASON_PACK_EXCLUSION = "-S0"

_SEASON_SUFFIX = re.compile(r"(?i)\b(?:season|s)\s*(\d{1,2})\s*$")
_ROMAN_SUFFIX = re.compile(r"(?i)\s(ii|iii)$")
_INNER_GROUP = re.compile(r"\(([^()]*)\)")
_EXCLUSION_TOKEN = re.compile(r"(?:^|\s)-[A-Za-z0-9]\S*")


def sanitize_title(title: str) -> str:
    """Hyphens become spaces; anything but ASCII alphanumerics and spaces goes."""
    title = title.replace("-", " ")
    title = re.sub(r"[^a-zA-Z0-9\s]", "", title)
    return re.sub(r"\s+", " ", title).strip()


def zeropad(value: int) -> str:
    return str(value).zfill(2)


def extract_season_number(title: str) -> tuple[int, str]:
    """
    Splits a trailing ``season N`` / ``sN`` token off a title.

    Returns ``(0, title)`` when there is none.
    """
    match = _SEASON_SUFFIX.search(title.strip())
    if not match:
        return 0, title
    return int(match.group(1)), title.strip()[: match.start()].strip()


def _unique(items: list[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            ordered.append(item)
    return ordered


def _or_clause(alternatives: list[str]) -> str:
    return "(" + " | ".join(f'"{alt}"' for alt in alternatives) + ")"


def _candidate_titles(media: AnimeMedia, explicit_query: str) -> tuple[list[str], int]:
    """Returns the lower-cased title candidates and the detected season number."""
    raw_titles = [explicit_query] if explicit_query else media.all_titles

    season = 0
    titles: list[str] = []
    for raw in raw_titles:
        number, stripped = extract_season_number(sanitize_title(raw))
        if number and not season:
            season = number
        titles.append(stripped.lower())

    titles = _unique([t.strip() for t in titles])
    if not season:
        for title in titles:
            roman = _ROMAN_SUFFIX.search(title)
            if roman:
                season = len(roman.group(1))
                break
        if season:
            titles = _unique([_ROMAN_SUFFIX.sub("", t).strip() for t in titles])
    return titles, season


def build_title_clause(media: AnimeMedia, explicit_query: str = "") -> str:
    """
    Builds the OR clause of candidate titles, including season phrasings.

    Returns an empty string when no usable title survives sanitization.
    """
    titles, season = _candidate_titles(media, explicit_query)
    if not titles:
        return ""
    alternatives = list(titles)
    if season > 0:
        # min() keeps the first of equally short titles.
        short = min(titles, key=len)
        alternatives += [
            f"{short} season {season}",
            f"{short} season {zeropad(season)}",
            f"{short} s{season}",
            f"{short} s{zeropad(season)}",
        ]
    return _or_clause(_unique(alternatives))


def build_batch_clause(episode_count: int) -> str:
    markers: list[str] = []
    if episode_count > 1:
        markers += [
            f"{zeropad(1)} - {zeropad(episode_count)}",
            f"{zeropad(1)} ~ {zeropad(episode_count)}",
        ]
    markers += list(BATCH_MARKERS)
    return "(" + "|".join(f'"{marker}"' for marker in markers) + ")"


def build_episode_clauses(episode: int) -> list[str]:
    """Space-joined and hyphen-joined episode alternatives."""
    variants = [zeropad(episode), f"e{episode}", f"ep{episode}"]
    spaced = "(" + "|".join(f'"{v}"' for v in variants) + ")"
    hyphenated = "(" + "|".join(f'"- {v}"' for v in variants) + ")"
    return [spaced, hyphenated]


def build_queries(media: AnimeMedia, intent: SearchIntent) -> list[str]:
    """
    Turns anime metadata plus a search intent into free-text query strings.

    Output is ordered, free of duplicates and empty strings, and identical for
    identical inputs. An empty list means no free-text search is possible.
    """
    titles = build_title_clause(media, sanitize_title(intent.query))
    if not titles:
        return []

    queries: list[str] = []
    if media.is_single_entity:
        queries.append(titles)
    elif intent.batch:
        queries.append(f"{titles} {build_batch_clause(media.episode_count)}")
    elif intent.episode_number <= 0:
        queries += [titles, f"{titles} {SEASON_PACK_EXCLUSION}"]
    else:
        offset = media.absolute_season_offset
        absolute = intent.episode_number + offset
        absolute_clauses = build_episode_clauses(absolute) if offset else []
        episode_clauses = build_episode_clauses(intent.episode_number)
        for index, episode_clause in enumerate(episode_clauses):
            primary = f"{titles} {episode_clause}"
            if absolute_clauses:
                primary = f"({primary}) | ({titles} {absolute_clauses[index]})"
            queries += [primary, f"{primary} {SEASON_PACK_EXCLUSION}"]

    if intent.resolution:
        queries = [f"{query} {intent.resolution.strip()}" for query in queries]
    return _unique(queries)


def simplify_query(query: str) -> str:
    """
    Flattens a boolean query for sources that only take plain keywords.

    Every OR group collapses to its first alternative, exclusion tokens are
    dropped and quotes removed.
    """
    text = _EXCLUSION_TOKEN.sub(" ", query)
    while True:
        collapsed = _INNER_GROUP.sub(lambda m: m.group(1).split("|")[0], text)
        if collapsed == text:
            break
        text = collapsed
    text = text.split("|")[0].replace('"', " ")
    return re.sub(r"\s+", " ", text).strip()
