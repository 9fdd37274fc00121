"""Login protocol, session persistence and renewal."""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections.abc import Callable
from urllib.parse import urlencode

from ygg_gateway.config import Settings
from ygg_gateway.session.flaresolverr_client import FlareSolverr
from ygg_gateway.session.interfaces import YggClient
from ygg_gateway.session.renewal import Renewer
from ygg_gateway.session.transport import DirectClient, ProxiedClient
from ygg_gateway.shared.cookies import SessionSnapshotStore, parse_cookie_header
from ygg_gateway.shared.exceptions import (
    InvalidCredentialsError,
    LoginError,
    NoSessionCookieError,
    RemoteServiceError,
)
from ygg_gateway.shared.site import Site, is_session_expired

logger = logging.getLogger(__name__)

# The site refuses to hand out its session cookie until this one is present.
ACCOUNT_CREATED_COOKIE = ("account_created", "true")
SESSION_COOKIE_PREFIX = "ygg_"


class SessionManager:
    """Run the login protocol and hand back an authenticated ``YggClient``.

    The strategy is chosen once, at construction: when a FlareSolverr
    instance is given every login goes through the remote browser,
    otherwise a Direct client with a browser TLS fingerprint is used.
    None of the failures raised here are retried; retry policy belongs to
    the caller.
    """

    def __init__(
        self,
        *,
        site: Site,
        snapshots: SessionSnapshotStore,
        direct_factory: Callable[[], DirectClient],
        flaresolverr: FlareSolverr | None = None,
    ) -> None:
        self._site = site
        self._snapshots = snapshots
        self._direct_factory = direct_factory
        self._flaresolverr = flaresolverr

    @classmethod
    def from_settings(cls, settings: Settings) -> SessionManager:
        direct_factory = functools.partial(
            DirectClient.create,
            domain=settings.domain,
            resolve_ip=settings.resolve_ip,
            own_ip=settings.own_ip,
            impersonate=settings.impersonate,
            timeout=settings.request_timeout,
        )
        flaresolverr = None
        if settings.flaresolverr_url:
            flaresolverr = FlareSolverr(settings.flaresolverr_url, timeout=settings.flaresolverr_timeout)
        return cls(
            site=Site(settings.domain),
            snapshots=SessionSnapshotStore(settings.session_dir),
            direct_factory=direct_factory,
            flaresolverr=flaresolverr,
        )

    @property
    def proxied(self) -> bool:
        return self._flaresolverr is not None

    async def login(self, username: str, password: str, *, persist: bool) -> YggClient:
        """Authenticate ``username`` and return a ready client.

        Args:
            username: Site account name.
            password: Site account password.
            persist: Resume from / save to the per-user cookie snapshot
                (Direct strategy only).

        Raises:
            InvalidCredentialsError: The site answered the login POST with 401.
            NoSessionCookieError: The login page did not set a ``ygg_`` cookie.
            LoginError: Any other unexpected status during the protocol.
            RemoteServiceError: FlareSolverr failed.
            TransportError: Network failure on the Direct path.
        """
        logger.debug("logging in with username %s", username)
        if self._flaresolverr is not None:
            if persist:
                logger.debug("session snapshots are not supported through FlareSolverr, ignoring")
            return await self._login_proxied(self._flaresolverr, username, password)
        return await self._login_direct(username, password, persist=persist)

    def client_from_cookies(self, cookie_string: str) -> DirectClient:
        """Build a Direct client seeded with a caller-supplied cookie string."""
        client = self._direct_factory()
        client.replace_cookies(parse_cookie_header(cookie_string))
        logger.debug("created custom client with injected cookies")
        return client

    def discard_snapshot(self, username: str) -> None:
        self._snapshots.discard(username)

    # -- Direct strategy ------------------------------------------------

    async def _login_direct(self, username: str, password: str, *, persist: bool) -> DirectClient:
        client = self._direct_factory()
        start = time.monotonic()
        try:
            if persist and await self._resume(client, username):
                logger.debug("resumed session for %s in %.2fs", username, time.monotonic() - start)
                return client

            await self._fresh_login(client, username, password)
            logger.debug("logged in as %s in %.2fs", username, time.monotonic() - start)

            if persist:
                self._snapshots.save(username, client.cookie_header())
        except Exception:
            await client.aclose()
            raise
        return client

    async def _resume(self, client: DirectClient, username: str) -> bool:
        """Load the stored snapshot into ``client`` and probe the site root with it."""
        stored = self._snapshots.load(username)
        if stored is None:
            return False

        client.replace_cookies(stored)
        response = await client.get(self._site.root)
        if response.ok and not is_session_expired(response.status, response.url):
            return True

        logger.debug("stored session for %s is not valid (code %d), deleting snapshot", username, response.status)
        self._snapshots.discard(username)
        return False

    async def _fresh_login(self, client: DirectClient, username: str, password: str) -> None:
        client.replace_cookies(dict([ACCOUNT_CREATED_COOKIE]))

        response = await client.get(self._site.login_page)
        if not response.ok:
            raise LoginError(f"Failed to fetch login page: {response.status}", status=response.status)
        if not any(name.startswith(SESSION_COOKIE_PREFIX) for name in client.cookies()):
            raise NoSessionCookieError("No ygg_ cookie found")

        response = await client.post_form(self._site.login_process_page, {"id": username, "pass": password})
        if response.status == 401:
            logger.error("invalid username or password for %s", username)
            raise InvalidCredentialsError("Invalid username or password")
        if not response.ok:
            raise LoginError(f"Failed to login: {response.status}", status=response.status)

        # Late cookies are only set once the root page is visited.
        response = await client.get(self._site.root)
        if not response.ok:
            raise LoginError(f"Failed to fetch site root page: {response.status}", status=response.status)

    # -- Proxied strategy -----------------------------------------------

    async def _login_proxied(self, flaresolverr: FlareSolverr, username: str, password: str) -> ProxiedClient:
        try:
            session_id: str | None = await flaresolverr.create_session()
            logger.debug("created FlareSolverr session %s", session_id)
        except RemoteServiceError as exc:
            logger.warning("FlareSolverr session creation failed (%s), continuing without session", exc)
            session_id = None

        client = ProxiedClient(flaresolverr, session_id)
        start = time.monotonic()
        try:
            name, value = ACCOUNT_CREATED_COOKIE
            solution = await flaresolverr.get(
                self._site.login_page,
                session=session_id,
                cookies=[{"name": name, "value": value, "domain": self._site.domain}],
            )
            if not any(c.name.startswith(SESSION_COOKIE_PREFIX) for c in solution.cookies):
                raise NoSessionCookieError("No ygg_ cookie found via FlareSolverr")
            logger.debug("FlareSolverr got ygg_ cookie, %d cookies total", len(solution.cookies))

            solution = await flaresolverr.post(
                self._site.login_process_page,
                urlencode({"id": username, "pass": password}),
                session=session_id,
            )
            if solution.status == 401:
                logger.error("invalid username or password for %s", username)
                raise InvalidCredentialsError("Invalid username or password")
            if solution.status >= 400:
                raise LoginError(f"Failed to login via FlareSolverr: {solution.status}", status=solution.status)

            await flaresolverr.get(self._site.root, session=session_id)
        except Exception:
            await client.aclose()
            raise

        logger.debug("logged in via FlareSolverr in %.2fs", time.monotonic() - start)
        return client


class SharedSession:
    """The long-lived client every inbound request uses unless it brings its own cookies.

    Each successful renewal bumps ``generation``. A renewer handed out by
    ``renewer()`` remembers the generation its caller started from, so
    requests that hit the same expiry share a single login: the first one
    through the lock logs in, the others get the already renewed client.
    Direct clients keep their identity and receive the fresh cookies. A
    Proxied client is swapped out and its remote session is destroyed
    best-effort.
    """

    def __init__(self, manager: SessionManager, client: YggClient, *, username: str, password: str) -> None:
        self._manager = manager
        self._client = client
        self._username = username
        self._password = password
        self._generation = 0
        self._lock = asyncio.Lock()

    @property
    def client(self) -> YggClient:
        return self._client

    @property
    def generation(self) -> int:
        return self._generation

    def renewer(self) -> Renewer:
        """Return a renewal callable bound to the current session generation."""
        seen = self._generation

        async def renew() -> YggClient:
            nonlocal seen
            client, seen = await self.renew(seen)
            return client

        return renew

    async def renew(self, seen: int) -> tuple[YggClient, int]:
        """Log in again unless a renewal already happened since generation ``seen``.

        Returns:
            The client to retry with and the generation it belongs to.
        """
        async with self._lock:
            if self._generation != seen:
                logger.debug("session already renewed (generation %d), reusing it", self._generation)
                return self._client, self._generation

            logger.info("trying to renew session for %s", self._username)
            # The snapshot holds the cookies that just expired.
            self._manager.discard_snapshot(self._username)
            fresh = await self._manager.login(self._username, self._password, persist=True)

            shared_direct = self._client.as_direct()
            fresh_direct = fresh.as_direct()
            if shared_direct is not None and fresh_direct is not None:
                shared_direct.replace_cookies(fresh_direct.cookies())
                await fresh.aclose()
            else:
                previous, self._client = self._client, fresh
                await previous.aclose()

            self._generation += 1
            logger.info("session renewed")
            return self._client, self._generation

    async def aclose(self) -> None:
        await self._client.aclose()
