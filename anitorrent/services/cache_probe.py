# anitorrent/services/cache_probe.py

import asyncio
import urllib.parse
from typing import Any

import httpx

from ..config import SearchSettings, logger
from ..models import Release

REALDEBRID_API = "https://api.real-debrid.com/rest/1.0"


class CacheProbe:
    """
    Checks whether Real-Debrid already holds a torrent.

    The magnet is added, its status read once and the job deleted again.
    A "downloaded" status or 100% progress counts as cached. Any failure
    counts as not cached.
    """

    def __init__(self, settings: SearchSettings) -> None:
        self.settings = settings
        self.token = settings.realdebrid_token

    def _auth(self) -> tuple[dict[str, str], dict[str, str]]:
        # Bearer header plus auth_token query parameter; the API accepts both.
        return {"Authorization": f"Bearer {self.token}"}, {"auth_token": self.token}

    async def _add_magnet(self, client: httpx.AsyncClient, magnet: str) -> str:
        headers, params = self._auth()
        response = await client.post(
            f"{REALDEBRID_API}/torrents/addMagnet",
            data={"magnet": magnet},
            headers=headers,
            params=params,
        )
        response.raise_for_status()
        payload = response.json()
        return str(payload.get("id") or "") if isinstance(payload, dict) else ""

    async def _info(self, client: httpx.AsyncClient, job_id: str) -> dict[str, Any]:
        headers, params = self._auth()
        response = await client.get(
            f"{REALDEBRID_API}/torrents/info/{urllib.parse.quote(job_id)}",
            headers=headers,
            params=params,
        )
        response.raise_for_status()
        payload = response.json()
        return payload if isinstance(payload, dict) else {}

    async def _delete(self, client: httpx.AsyncClient, job_id: str) -> None:
        headers, params = self._auth()
        try:
            response = await client.delete(
                f"{REALDEBRID_API}/torrents/delete/{urllib.parse.quote(job_id)}",
                headers=headers,
                params=params,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"[PROBE] Failed to delete Real-Debrid job {job_id}: {e}")

    @staticmethod
    def is_cached_status(info: dict[str, Any]) -> bool:
        status = str(info.get("status") or "").lower()
        try:
            progress = float(info.get("progress") or 0)
        except (TypeError, ValueError):
            progress = 0.0
        return status == "downloaded" or progress >= 100

    async def probe(self, release: Release) -> bool:
        if not self.token or not release.magnet_uri:
            return False

        async with httpx.AsyncClient(
            timeout=self.settings.request_timeout, follow_redirects=True
        ) as client:
            job_id = ""
            try:
                job_id = await self._add_magnet(client, release.magnet_uri)
                if not job_id:
                    return False
                info = await self._info(client, job_id)
                return self.is_cached_status(info)
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"[PROBE] Probe failed for '{release.name}': {e}")
                return False
            finally:
                if job_id:
                    await self._delete(client, job_id)

    async def probe_many(self, releases: list[Release], limit: int) -> int:
        """
        Probes the first ``limit`` magnet-bearing releases concurrently.

        Sets ``cached`` on each probed release; returns how many are cached.
        """
        candidates = [r for r in releases if r.magnet_uri][: max(limit, 0)]
        if not candidates:
            return 0

        results = await asyncio.gather(*(self.probe(r) for r in candidates))
        for release, cached in zip(candidates, results):
            if release.cached is None:
                release.cached = cached
        hits = sum(1 for cached in results if cached)
        logger.info(f"[PROBE] {hits} of {len(candidates)} probed releases are cached.")
        return hits
