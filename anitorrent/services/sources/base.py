# anitorrent/services/sources/base.py

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

import httpx

from ...config import SearchSettings, logger
from ...models import Release, SourceId
from ...utils import normalize_release

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    )
}


class SourceError(Exception):
    """Raised when a source cannot be reached or returns an unusable payload."""

    def __init__(self, source: SourceId, message: str) -> None:
        super().__init__(f"{source.label}: {message}")
        self.source = source


class SourceAdapter(ABC):
    """
    Abstract base class for all release sources.

    Subclasses turn one query (or identifier) into normalized ``Release``
    records. Network and payload problems are raised as ``SourceError`` so the
    caller can decide how a failing source is treated.
    """

    source_id: SourceId
    # Whether the backend understands quoted phrases, ``|`` and ``-term``.
    supports_boolean_query: bool = False
    # Curated sources never gate free-text fallback.
    curated: bool = False
    # Names of ``MediaIdentifiers`` fields this source can look up directly.
    anime_id_field: str | None = None
    episode_id_field: str | None = None

    def __init__(self, settings: SearchSettings) -> None:
        self.settings = settings

    @property
    def label(self) -> str:
        return self.source_id.label

    @abstractmethod
    async def fetch_by_query(self, query: str) -> list[Release]:
        """Free-text search."""

    async def fetch_by_anime_id(
        self, anime_id: int, resolution: str = "", title: str = ""
    ) -> list[Release]:
        """Exact lookup; ``title`` is a display hint for sources that lack one."""
        raise NotImplementedError(f"{self.label} has no anime-id lookup")

    async def fetch_by_episode_id(
        self, episode_id: int, resolution: str = ""
    ) -> list[Release]:
        raise NotImplementedError(f"{self.label} has no episode-id lookup")

    async def fetch_latest(self) -> list[Release]:
        return await self.fetch_by_query("")

    # --- Helpers shared by concrete sources ---

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.settings.request_timeout,
            follow_redirects=True,
            headers=DEFAULT_HEADERS,
        )

    async def _get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        try:
            async with self._client() as client:
                response = await client.get(url, params=params, headers=headers)
                response.raise_for_status()
                return response
        except httpx.HTTPStatusError as e:
            raise SourceError(
                self.source_id, f"HTTP {e.response.status_code} from {url}"
            ) from e
        except httpx.HTTPError as e:
            raise SourceError(self.source_id, f"request to {url} failed: {e}") from e

    async def _get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        response = await self._get(url, params=params, headers=headers)
        try:
            return response.json()
        except ValueError as e:
            raise SourceError(self.source_id, f"malformed JSON from {url}") from e

    async def _get_text(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> str:
        response = await self._get(url, params=params, headers=headers)
        return response.text

    def _finalize(self, releases: Iterable[Release]) -> list[Release]:
        """Normalizes records and drops those without any usable link."""
        finalized: list[Release] = []
        for release in releases:
            if not release.name.strip():
                continue
            release = normalize_release(
                release, prefix_source=self.settings.prefix_source_names
            )
            if not release.is_usable:
                logger.debug(
                    f"[SOURCE] {self.label}: Dropping '{release.name}' without links."
                )
                continue
            finalized.append(release)
        return finalized
