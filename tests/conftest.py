"""Shared pytest fixtures for the gateway test suite."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import httpx
import pytest
from curl_cffi import CurlError

from ygg_gateway.config import Settings
from ygg_gateway.session.transport import DirectClient, YggResponse
from ygg_gateway.shared.models import Torrent
from ygg_gateway.shared.site import Site

DOMAIN = "www.yggtorrent.top"
ROOT = f"https://{DOMAIN}/"


@dataclass
class _Route:
    status: int = 200
    text: str = ""
    content: bytes | None = None
    final_url: str | None = None
    set_cookies: Mapping[str, str] = field(default_factory=dict)


class FakeCurlSession:
    """Stand-in for ``curl_cffi.requests.AsyncSession`` answering from a route table.

    Several responses registered for the same route are served in order,
    the last one repeating. Unknown routes raise ``CurlError``.
    """

    def __init__(self, domain: str = DOMAIN) -> None:
        self.domain = domain
        self.cookies = httpx.Cookies()
        self.requests: list[SimpleNamespace] = []
        self.closed = False
        self._routes: dict[tuple[str, str], list[_Route]] = {}

    def add(self, method: str, url: str, **kwargs: Any) -> None:
        self._routes.setdefault((method, url), []).append(_Route(**kwargs))

    def sent(self, method: str, url: str) -> list[SimpleNamespace]:
        return [r for r in self.requests if r.method == method and r.url == url]

    async def request(self, method: str, url: str, **kwargs: Any) -> SimpleNamespace:
        self.requests.append(SimpleNamespace(method=method, url=url, kwargs=kwargs, cookies=dict(self.cookies)))
        queue = self._routes.get((method, url))
        if not queue:
            raise CurlError(f"no route for {method} {url}")
        route = queue.pop(0) if len(queue) > 1 else queue[0]
        for name, value in route.set_cookies.items():
            self.cookies.set(name, value, domain=self.domain, path="/")
        return SimpleNamespace(
            status_code=route.status,
            url=route.final_url or url,
            text=route.text,
            content=route.content if route.content is not None else route.text.encode(),
        )

    async def close(self) -> None:
        self.closed = True


class StubClient:
    """Scripted ``YggClient`` for components that only need canned responses.

    ``responses`` maps a URL to a ``YggResponse`` or to an exception to raise.
    """

    def __init__(
        self,
        responses: Mapping[str, YggResponse | Exception] | None = None,
        *,
        downloads: Mapping[str, tuple[int, bytes]] | None = None,
    ) -> None:
        self.responses = dict(responses or {})
        self.downloads = dict(downloads or {})
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    async def get(self, url: str) -> YggResponse:
        self.calls.append(("GET", url))
        return self._answer(url)

    async def post_form(self, url: str, fields: Mapping[str, str]) -> YggResponse:
        self.calls.append(("POST", url))
        return self._answer(url)

    async def get_bytes(self, url: str) -> tuple[int, bytes]:
        self.calls.append(("GET_BYTES", url))
        return self.downloads[url]

    def as_direct(self) -> None:
        return None

    async def aclose(self) -> None:
        self.closed = True

    def _answer(self, url: str) -> YggResponse:
        answer = self.responses[url]
        if isinstance(answer, Exception):
            raise answer
        return answer


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Return a Settings instance with test defaults."""
    return Settings(
        username="alice",
        password="secret",
        domain=DOMAIN,
        session_dir=str(tmp_path / "sessions"),
        categories_file=str(tmp_path / "categories.json"),
        rate_limit_interval_seconds=0,
    )


@pytest.fixture()
def site() -> Site:
    return Site(DOMAIN)


@pytest.fixture()
def fake_curl() -> FakeCurlSession:
    return FakeCurlSession()


@pytest.fixture()
def direct_client(fake_curl: FakeCurlSession) -> DirectClient:
    return DirectClient(fake_curl, domain=DOMAIN)


@pytest.fixture()
def make_torrent():
    """Factory for torrents; only ``id`` is required."""

    def _make(torrent_id: int, name: str | None = None, **fields: int) -> Torrent:
        return Torrent(id=torrent_id, name=name or f"Torrent {torrent_id}", **fields)

    return _make


@pytest.fixture()
def make_stub_client():
    """Build a scripted ``StubClient``."""
    return StubClient


@pytest.fixture()
def make_fake_curl():
    """Build extra ``FakeCurlSession`` instances (e.g. one per login)."""
    return FakeCurlSession
