import json
import sys
from pathlib import Path

import httpx
import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from anitorrent.config import SearchSettings  # noqa: E402
from anitorrent.models import Release, SourceId  # noqa: E402

_NO_JSON = object()


class FakeResponse:
    def __init__(
        self,
        json_data=_NO_JSON,
        *,
        text: str = "",
        content: bytes | None = None,
        status_code: int = 200,
        url: str = "https://example.test/",
    ):
        self._json = json_data
        self.text = text if json_data is _NO_JSON else json.dumps(json_data)
        self.content = content if content is not None else self.text.encode()
        self.status_code = status_code
        self.url = url

    def json(self):
        if self._json is _NO_JSON:
            return json.loads(self.text)
        return self._json

    def raise_for_status(self):
        if self.status_code >= 400:
            request = httpx.Request("GET", self.url)
            response = httpx.Response(self.status_code, request=request)
            raise httpx.HTTPStatusError(
                f"HTTP {self.status_code}", request=request, response=response
            )


def _to_response(outcome, url: str) -> FakeResponse:
    if isinstance(outcome, FakeResponse):
        return outcome
    if isinstance(outcome, int) and not isinstance(outcome, bool):
        return FakeResponse(status_code=outcome, url=url)
    if isinstance(outcome, bytes):
        return FakeResponse(content=outcome, url=url)
    if isinstance(outcome, str):
        return FakeResponse(text=outcome, url=url)
    return FakeResponse(outcome, url=url)


class FakeAsyncClient:
    """
    Routes requests by URL substring.

    A route value may be a JSON-able payload, ``str`` (text body), ``bytes``
    (binary body), ``int`` (bare status code), an exception instance to
    raise, or a callable ``(url, params)`` returning any of those.
    """

    def __init__(self, routes):
        self.routes = list(routes.items())
        self.calls: list[dict] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def _respond(self, method, url, params=None, **kwargs):
        self.calls.append({"method": method, "url": url, "params": params, **kwargs})
        for pattern, outcome in self.routes:
            if pattern not in url:
                continue
            if callable(outcome) and not isinstance(outcome, BaseException):
                outcome = outcome(url, params)
            if isinstance(outcome, BaseException):
                raise outcome
            return _to_response(outcome, url)
        request = httpx.Request(method, url)
        raise httpx.ConnectError(f"no route for {url}", request=request)

    async def get(self, url, params=None, headers=None, **kwargs):
        return await self._respond("GET", url, params, headers=headers, **kwargs)

    async def post(self, url, data=None, params=None, headers=None, **kwargs):
        return await self._respond(
            "POST", url, params, data=data, headers=headers, **kwargs
        )

    async def delete(self, url, params=None, headers=None, **kwargs):
        return await self._respond("DELETE", url, params, headers=headers, **kwargs)

    def calls_to(self, fragment: str) -> list[dict]:
        return [call for call in self.calls if fragment in call["url"]]


@pytest.fixture
def fake_http(mocker):
    """Patches ``httpx.AsyncClient`` with a routed fake; returns an installer."""

    def _install(routes) -> FakeAsyncClient:
        client = FakeAsyncClient(routes)
        mocker.patch("httpx.AsyncClient", return_value=client)
        return client

    return _install


@pytest.fixture
def settings():
    return SearchSettings()


@pytest.fixture
def make_release():
    def _make(
        name: str = "[SubsPlease] Show - 01 (1080p)",
        source_id: SourceId = SourceId.NYAA,
        **overrides,
    ) -> Release:
        overrides.setdefault("download_url", f"https://example.test/{abs(hash(name))}")
        return Release(name=name, source_id=source_id, **overrides)

    return _make
