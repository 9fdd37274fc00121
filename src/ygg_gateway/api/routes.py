"""API routes for the gateway."""

from __future__ import annotations

import functools
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from fastapi import APIRouter, HTTPException, Query, Request, Response
from fastapi.responses import PlainTextResponse

from ygg_gateway.session.interfaces import YggClient
from ygg_gateway.session.renewal import Renewer, with_session_renewal
from ygg_gateway.shared.enums import Order, Sort
from ygg_gateway.shared.exceptions import (
    InvalidCredentialsError,
    QuotaExhaustedError,
    RatioInsufficientError,
    SessionExpiredError,
    SessionRenewalExhaustedError,
    YggGatewayError,
)
from ygg_gateway.shared.models import SearchRequest

logger = logging.getLogger(__name__)

router = APIRouter()

SESSION_COOKIES_HEADER = "X-Session-Cookies"

E = TypeVar("E", bound=Enum)


@dataclass
class _Caller:
    """The client a request runs with, and whether it may be renewed."""

    client: YggClient
    renew: Renewer | None
    cookies_header: str | None = None

    def decorate(self, response: Response) -> None:
        if self.cookies_header:
            response.headers[SESSION_COOKIES_HEADER] = self.cookies_header


def _state(request: Request, key: str) -> Any:
    return getattr(request.app.state, key, None)


def _require(request: Request, key: str) -> Any:
    value = _state(request, key)
    if value is None:
        raise HTTPException(status_code=503, detail=f"{key} unavailable")
    return value


@asynccontextmanager
async def _caller(request: Request, cookie: str | None) -> AsyncIterator[_Caller]:
    """Yield the shared session, or a throw-away client built from ``cookie``.

    Callers bringing their own cookies are never renewed on expiry. When
    the custom client cannot be built the shared session is used instead.
    """
    session = _require(request, "session")
    if not cookie:
        yield _Caller(session.client, session.renewer())
        return

    try:
        custom = _require(request, "manager").client_from_cookies(cookie)
    except YggGatewayError as exc:
        logger.warning("failed to create custom client: %s, falling back to default", exc)
        yield _Caller(session.client, session.renewer())
        return

    try:
        yield _Caller(custom, None, custom.cookie_header() or None)
    finally:
        await custom.aclose()


def _http_error(exc: YggGatewayError) -> HTTPException:
    if isinstance(exc, (InvalidCredentialsError, SessionExpiredError, SessionRenewalExhaustedError)):
        return HTTPException(status_code=401, detail=str(exc))
    if isinstance(exc, QuotaExhaustedError):
        return HTTPException(status_code=429, detail=str(exc))
    if isinstance(exc, RatioInsufficientError):
        return HTTPException(status_code=403, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def _split(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def _int_list(raw: str | None) -> tuple[int, ...] | None:
    ids = tuple(int(part) for part in _split(raw) if part.isdigit())
    return ids or None


def _number(raw: str | None) -> int | None:
    """Non-negative integer parameter; anything else is ignored."""
    if raw is None:
        return None
    if not raw.strip().isdecimal():
        logger.debug("ignoring non-numeric parameter %r", raw)
        return None
    return int(raw)


def _choice(enum: type[E], raw: str | None) -> E | None:
    if raw is None:
        return None
    try:
        return enum(raw)
    except ValueError:
        logger.debug("ignoring unknown %s %r", enum.__name__.lower(), raw)
        return None


@router.get("/search")
async def search(
    request: Request,
    response: Response,
    name: str | None = None,
    q: str | None = None,
    offset: str | None = None,
    category: str | None = None,
    sub_category: str | None = None,
    sort: str | None = None,
    order: str | None = None,
    categories: str | None = None,
    ban_words: str | None = None,
    quote_search: str | None = None,
    tmdbid: str | None = None,
    imdbid: str | None = None,
    connarr: str | None = None,
    cookie: str | None = None,
) -> list[dict[str, Any]]:
    """Torznab-style search; ``ban_words`` and ``categories`` are comma-separated."""
    query = SearchRequest(
        name=name,
        q=q,
        offset=_number(offset),
        category=_number(category),
        sub_category=_number(sub_category),
        sort=_choice(Sort, sort),
        order=_choice(Order, order),
        ban_words=tuple(_split(ban_words)),
        quote_search=quote_search == "true",
        categories=_int_list(categories),
        tmdbid=tmdbid,
        imdbid=imdbid,
        connarr=connarr is not None,
    )
    logger.debug("received search query %s", query)

    aggregator = _require(request, "aggregator")
    async with _caller(request, cookie) as caller:
        try:
            torrents = await aggregator.run(caller.client, query, renew=caller.renew)
        except YggGatewayError as exc:
            logger.error("search error: %s", exc)
            raise _http_error(exc) from exc
        caller.decorate(response)
    return [t.model_dump() for t in torrents]


@router.get("/torrent/{torrent_id}")
async def download_torrent(torrent_id: int, request: Request, cookie: str | None = None) -> Response:
    """Download a ``.torrent`` file; this takes the site's full cooldown unless turbo is on."""
    orchestrator = _require(request, "orchestrator")
    async with _caller(request, cookie) as caller:
        attempt = functools.partial(orchestrator.download, torrent_id=torrent_id)
        try:
            content = await with_session_renewal(attempt, caller.client, caller.renew)
        except YggGatewayError as exc:
            logger.error("download of torrent %d failed: %s", torrent_id, exc)
            raise _http_error(exc) from exc

        response = Response(
            content=content,
            media_type="application/x-bittorrent",
            headers={"Content-Disposition": f'attachment; filename="{torrent_id}.torrent"'},
        )
        caller.decorate(response)
    return response


@router.get("/auth", response_class=PlainTextResponse)
async def auth(
    request: Request,
    user: str | None = None,
    password: str | None = Query(default=None, alias="pass"),
) -> PlainTextResponse:
    """Log an arbitrary account in and hand back its cookies for later ``cookie=`` use."""
    if user is None:
        return PlainTextResponse("Missing 'user' parameter", status_code=400)
    if password is None:
        return PlainTextResponse("Missing 'pass' parameter", status_code=400)

    manager = _require(request, "manager")
    try:
        client = await manager.login(user, password, persist=False)
    except YggGatewayError as exc:
        logger.error("login failed for user %s: %s", user, exc)
        return PlainTextResponse(f"Login failed: {exc}", status_code=401)

    try:
        direct = client.as_direct()
        cookies_header = direct.cookie_header() if direct is not None else ""
    finally:
        await client.aclose()

    if not cookies_header:
        return PlainTextResponse("Login successful, but no cookies found")
    logger.info("login successful for user %s", user)
    return PlainTextResponse(cookies_header, headers={SESSION_COOKIES_HEADER: cookies_header})


@router.get("/categories")
async def categories(request: Request) -> list[dict[str, Any]]:
    return _require(request, "taxonomy").to_json()


@router.get("/remain", response_class=PlainTextResponse)
async def remaining_downloads(request: Request) -> PlainTextResponse:
    """Downloads left today, ``-1`` when the count could not be read."""
    probe = _require(request, "probe")
    session = _require(request, "session")
    try:
        remain = await probe.remaining(session.client)
    except YggGatewayError as exc:
        logger.error("failed to get remaining downloads: %s", exc)
        remain = -1
    return PlainTextResponse(str(remain))


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns:
        Status dictionary
    """
    return {"status": "ok"}
