"""Direct (fingerprinted HTTP) and Proxied (FlareSolverr) transports to the origin site."""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

from curl_cffi import CurlError, CurlOpt
from curl_cffi.requests import AsyncSession

from ygg_gateway.session.flaresolverr_client import FlareSolverr
from ygg_gateway.shared.cookies import format_cookie_header
from ygg_gateway.shared.exceptions import RemoteServiceError, TransportError

logger = logging.getLogger(__name__)

_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded; charset=UTF-8"


@dataclass(frozen=True, slots=True)
class YggResponse:
    status: int
    body: str
    url: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def bypass_headers(own_ip: str) -> dict[str, str]:
    """Headers spoofing the connecting IP, empty when no own IP is configured."""
    if not own_ip:
        return {}
    return {"CF-Connecting-IP": own_ip, "X-Forwarded-For": own_ip}


class DirectClient:
    """HTTP client impersonating a desktop browser's TLS/HTTP fingerprint.

    Implements the ``YggClient`` protocol and additionally owns the cookie
    store for the origin domain. Cookie mutations run as one critical
    section with no suspension point inside, so a request being prepared
    on the event loop never sees a half-replaced store.
    """

    def __init__(self, session: Any, *, domain: str, timeout: int = 30) -> None:
        self._session = session
        self._domain = domain
        self._timeout = timeout
        self._lock = threading.Lock()

    @classmethod
    def create(
        cls,
        *,
        domain: str,
        resolve_ip: str = "",
        own_ip: str = "",
        impersonate: str = "chrome",
        timeout: int = 30,
    ) -> DirectClient:
        """Build a client with a fresh cookie store.

        When ``resolve_ip`` is set the domain is pinned to that address, which
        is why certificate and hostname verification are disabled.
        """
        curl_options: dict[CurlOpt, Any] = {}
        if resolve_ip:
            curl_options[CurlOpt.RESOLVE] = [f"{domain}:443:{resolve_ip}"]
        try:
            session = AsyncSession(
                impersonate=impersonate,
                verify=False,
                headers=bypass_headers(own_ip),
                curl_options=curl_options or None,
            )
        except CurlError as exc:
            raise TransportError(f"could not create HTTP session for {domain}: {exc}") from exc
        return cls(session, domain=domain, timeout=timeout)

    async def get(self, url: str) -> YggResponse:
        resp = await self._send("GET", url)
        return YggResponse(status=resp.status_code, body=resp.text, url=str(resp.url))

    async def post_form(self, url: str, fields: Mapping[str, str]) -> YggResponse:
        resp = await self._send(
            "POST",
            url,
            data=urlencode(dict(fields)),
            headers={"Content-Type": _FORM_CONTENT_TYPE},
        )
        return YggResponse(status=resp.status_code, body=resp.text, url=str(resp.url))

    async def get_bytes(self, url: str) -> tuple[int, bytes]:
        # Redirects are not followed: the download step must see a raw 302.
        resp = await self._send("GET", url, allow_redirects=False)
        return resp.status_code, resp.content

    def as_direct(self) -> DirectClient:
        return self

    async def aclose(self) -> None:
        await self._session.close()

    # -- cookie store ---------------------------------------------------

    def set_cookie(self, name: str, value: str) -> None:
        with self._lock:
            self._session.cookies.set(name, value, domain=self._domain, path="/")

    def clear_cookies(self) -> None:
        with self._lock:
            self._session.cookies.clear()

    def replace_cookies(self, cookies: Mapping[str, str]) -> None:
        """Swap the whole store for ``cookies``; login is a full replace, never a merge."""
        with self._lock:
            self._session.cookies.clear()
            for name, value in cookies.items():
                self._session.cookies.set(name, value, domain=self._domain, path="/")

    def cookies(self) -> dict[str, str]:
        """Cookies the origin root would receive."""
        with self._lock:
            return {cookie.name: cookie.value for cookie in self._session.cookies.jar if self._matches(cookie.domain)}

    def cookie_header(self) -> str:
        return format_cookie_header(self.cookies())

    def _matches(self, cookie_domain: str) -> bool:
        bare = cookie_domain.lstrip(".")
        return not bare or self._domain == bare or self._domain.endswith(f".{bare}")

    async def _send(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            return await self._session.request(method, url, timeout=self._timeout, **kwargs)
        except CurlError as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc


class ProxiedClient:
    """Route every request through a FlareSolverr browser session.

    Implements the ``YggClient`` protocol. An empty ``session_id`` means the
    remote service could not open a session and requests are sent session-less.
    """

    def __init__(self, flaresolverr: FlareSolverr, session_id: str | None = None) -> None:
        self._flaresolverr = flaresolverr
        self._session_id = session_id or None

    @property
    def session_id(self) -> str | None:
        return self._session_id

    async def get(self, url: str) -> YggResponse:
        try:
            solution = await self._flaresolverr.get(url, session=self._session_id)
        except RemoteServiceError as exc:
            raise TransportError(f"GET {url} via FlareSolverr failed: {exc}") from exc
        return YggResponse(status=solution.status, body=solution.response, url=solution.url)

    async def post_form(self, url: str, fields: Mapping[str, str]) -> YggResponse:
        try:
            solution = await self._flaresolverr.post(url, urlencode(dict(fields)), session=self._session_id)
        except RemoteServiceError as exc:
            raise TransportError(f"POST {url} via FlareSolverr failed: {exc}") from exc
        return YggResponse(status=solution.status, body=solution.response, url=solution.url)

    async def get_bytes(self, url: str) -> tuple[int, bytes]:
        # The browser hands back decoded text only.
        response = await self.get(url)
        return response.status, response.body.encode("utf-8")

    def as_direct(self) -> None:
        return None

    async def aclose(self) -> None:
        """Best-effort teardown of the remote browser session."""
        if self._session_id is None:
            return
        session_id, self._session_id = self._session_id, None
        try:
            await self._flaresolverr.destroy_session(session_id)
        except RemoteServiceError as exc:
            logger.warning("failed to destroy FlareSolverr session %s: %s", session_id, exc)
