# anitorrent/utils.py

import math
import re
from dataclasses import replace
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

from .config import SWARM_SANITY_CEILING
from .models import EPOCH, UNKNOWN, Release

_BRACKETED = re.compile(r"\[.*?\]|\(.*?\)|\{.*?\}")
_LEADING_GROUP = re.compile(r"^\s*\[([^\]]+)\]")
_RESOLUTION_P = re.compile(r"(\d{3,4})p", re.IGNORECASE)
_RESOLUTION_DIMS = re.compile(r"\b\d{3,4}\s*[x×]\s*(\d{3,4})\b")
_SEASON_EPISODE = re.compile(r"(?i)\bS\d{1,2}\s*E(\d{1,4})\b")
_EPISODE_RANGE = re.compile(r"(?<![\w.])(\d{1,4})\s*[-~]\s*(\d{1,4})(?![\w.])")
_DASH_EPISODE = re.compile(r"\s-\s(\d{1,4})(?:v\d)?(?!\w)")
_EPISODE_WORD = re.compile(r"(?i)\b(?:ep?|episode)\s*\.?\s*(\d{1,4})(?:v\d)?\b")
_NOISE_TOKENS = re.compile(
    r"(?i)\d{3,4}p|\d{3,4}\s*[x×]\s*\d{3,4}|\b[0-9a-f]{8}\b|\b\d{1,2}bit\b"
)
_BATCH_WORDS = re.compile(r"(?i)\b(batch|complete|collection|seasons?|parts?)\b")
_SIZE = re.compile(r"([\d][\d.,]*)\s*([KMGT]?i?B)\b", re.IGNORECASE)
_THOUSANDS = re.compile(r"\d{1,3}(?:,\d{3})+")


def format_bytes(size_bytes: int) -> str:
    """Converts bytes into a human-readable string (e.g., KiB, MiB, GiB)."""
    if size_bytes <= 0:
        return "0B"
    size_name = ("B", "KiB", "MiB", "GiB", "TiB")
    i = min(int(math.floor(math.log(size_bytes, 1024))), len(size_name) - 1)
    p = math.pow(1024, i)
    s = round(size_bytes / p, 2)
    return f"{s} {size_name[i]}"


def safe_int(value: Any, default: int = UNKNOWN) -> int:
    """Parses an integer from loosely-typed payload data."""
    if isinstance(value, bool) or value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return default


def parse_size_to_bytes(size_str: str, *, si_decimal: bool = False) -> int:
    """
    Converts strings like ``'1.5 GiB'`` or ``'500 MB'`` to bytes.

    ``KiB``/``MiB`` style units are always binary. Plain ``KB``/``MB`` units are
    binary too unless ``si_decimal`` is set.
    A lone comma is a decimal mark unless it groups digits in threes.
    """
    if not size_str:
        return 0
    match = _SIZE.search(size_str.strip())
    if not match:
        return 0
    number = match.group(1)
    if ("," in number and "." in number) or _THOUSANDS.fullmatch(number):
        number = number.replace(",", "")
    try:
        value = float(number.replace(",", "."))
    except ValueError:
        return 0
    unit = match.group(2).upper()
    base = 1024 if "I" in unit or not si_decimal else 1000
    exponent = "BKMGT".index(unit[0]) if unit[0] in "KMGT" else 0
    return int(round(value * base**exponent))


def parse_resolution_height(text: str) -> int:
    """Returns the first ``NNNp``/``NNNNp`` height in ``text``, or 0."""
    match = _RESOLUTION_P.search(text or "")
    if not match:
        return 0
    return int(match.group(1))


def normalize_resolution(text: str) -> str:
    """Normalizes a resolution hint to a ``<height>p`` string, or ``""``."""
    if not text:
        return ""
    height = parse_resolution_height(text)
    if not height:
        dims = _RESOLUTION_DIMS.search(text)
        if dims:
            height = int(dims.group(1))
        elif re.search(r"(?i)\b(4k|uhd)\b", text):
            height = 2160
    return f"{height}p" if height else ""


def parse_timestamp(value: Any) -> datetime:
    """
    Parses epoch seconds, ISO-8601 or RFC-822 timestamps.

    Anything unparsable yields the zero-value timestamp so it sorts as oldest.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if value <= 0:
            return EPOCH
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return EPOCH
    if not isinstance(value, str) or not value.strip():
        return EPOCH

    text = value.strip()
    if text.isdigit():
        return parse_timestamp(int(text))
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = parsedate_to_datetime(text)
        except (TypeError, ValueError, IndexError):
            return EPOCH
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def parse_release_name(name: str) -> dict[str, Any]:
    """
    Extracts group, episode numbers and resolution from an anime release name.

    Handles the common fansub layout ``[Group] Title - 01 [1080p]`` as well as
    ``S01E05``, ``EP05`` and ``01 ~ 12`` style ranges.
    """
    group_match = _LEADING_GROUP.match(name)
    release_group = group_match.group(1).strip() if group_match else ""
    resolution = normalize_resolution(name)

    stripped = _BRACKETED.sub(" ", name)
    stripped = re.sub(r"[_]", " ", stripped)
    stripped = re.sub(r"\.(mkv|mp4|avi)$", "", stripped.strip(), flags=re.I)

    episodes: list[int] = []
    title_end = len(stripped)
    se_match = _SEASON_EPISODE.search(stripped)
    range_match = _EPISODE_RANGE.search(stripped)
    if se_match:
        episodes = [int(se_match.group(1))]
        title_end = se_match.start()
    elif range_match and int(range_match.group(2)) > int(range_match.group(1)):
        episodes = [int(range_match.group(1)), int(range_match.group(2))]
        title_end = range_match.start()
    else:
        for pattern in (_DASH_EPISODE, _EPISODE_WORD):
            match = pattern.search(stripped)
            if match:
                episodes = [int(match.group(1))]
                title_end = match.start()
                break

    if not episodes:
        # Batches often carry their range inside brackets, e.g. "(01-12)".
        loose = _NOISE_TOKENS.sub(" ", name)
        loose = re.sub(r"[\[\](){}]", " ", loose)
        bracket_range = _EPISODE_RANGE.search(loose)
        if bracket_range and int(bracket_range.group(2)) > int(bracket_range.group(1)):
            episodes = [int(bracket_range.group(1)), int(bracket_range.group(2))]

    title = stripped[:title_end]
    title = re.sub(r"\s+", " ", title).strip(" -~_.")
    return {
        "title": title,
        "release_group": release_group,
        "episodes": episodes,
        "resolution": resolution,
    }


def infer_batch(name: str, episodes: list[int] | None = None) -> bool:
    """Guesses whether a release bundles several episodes."""
    if episodes is not None and len(episodes) > 1:
        return True
    return bool(_BATCH_WORDS.search(name or ""))


def _clamp_swarm(value: int) -> int:
    if value > SWARM_SANITY_CEILING:
        return 0
    return value if value >= UNKNOWN else UNKNOWN


def normalize_release(release: Release, *, prefix_source: bool = True) -> Release:
    """
    Rewrites a freshly-emitted release into canonical form.

    Swarm counts above the sanity ceiling become 0, the batch flag is inferred
    when the source left it open, batches never carry an episode number, and
    the display name is prefixed with the source label.
    """
    name = release.name.strip()
    if prefix_source:
        label = f"[{release.source_id.label}]"
        if not name.startswith(label):
            name = f"{label} {name}"

    is_batch = release.is_batch
    if is_batch is None:
        episodes = parse_release_name(release.name)["episodes"]
        is_batch = infer_batch(release.name, episodes)

    episode = release.episode_number if release.episode_number > 0 else UNKNOWN
    if is_batch:
        episode = UNKNOWN

    return replace(
        release,
        name=name,
        size_bytes=max(release.size_bytes, 0),
        seeders=_clamp_swarm(release.seeders),
        leechers=_clamp_swarm(release.leechers),
        download_count=max(release.download_count, UNKNOWN),
        resolution=normalize_resolution(release.resolution),
        info_hash=release.info_hash.strip(),
        is_batch=is_batch,
        episode_number=episode,
    )


def magnet_from_info_hash(info_hash: str) -> str:
    """Builds a bare magnet URI (no trackers) from an info-hash."""
    info_hash = (info_hash or "").strip()
    if not info_hash:
        return ""
    return f"magnet:?xt=urn:btih:{info_hash}"
