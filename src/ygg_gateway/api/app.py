"""FastAPI application factory for the gateway."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from ygg_gateway.api.routes import router
from ygg_gateway.config import Settings, get_settings
from ygg_gateway.download.orchestrator import DownloadOrchestrator
from ygg_gateway.download.quota import RemainingDownloadsProbe
from ygg_gateway.search.aggregator import SearchAggregator
from ygg_gateway.search.dbs import TmdbQueryResolver
from ygg_gateway.search.parser import YggResultsParser
from ygg_gateway.search.rate_limiter import RateLimiter
from ygg_gateway.search.taxonomy import load_taxonomy
from ygg_gateway.session.manager import SessionManager, SharedSession
from ygg_gateway.shared.site import Site

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Log the configured account in, and close its session on shutdown."""
    settings: Settings = app.state.settings
    manager: SessionManager = app.state.manager

    mode = "FlareSolverr" if manager.proxied else "direct"
    logger.info("logging in as %s (%s mode)", settings.username, mode)
    client = await manager.login(settings.username, settings.password, persist=settings.use_sessions)
    session = SharedSession(manager, client, username=settings.username, password=settings.password)
    app.state.session = session

    try:
        yield
    finally:
        app.state.session = None
        await session.aclose()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Everything that does not need the network is built here; the login
    itself happens in ``lifespan``.
    """
    settings = settings or get_settings()
    site = Site(settings.domain)

    resolver = TmdbQueryResolver(settings.tmdb_token) if settings.tmdb_token else None
    if resolver is None:
        logger.info("no TMDB token configured, tmdbid/imdbid searches are disabled")
    taxonomy = load_taxonomy(settings.categories_file)
    probe = RemainingDownloadsProbe(site, settings.remaining_downloads_path)

    app = FastAPI(title="YggTorrent Gateway", lifespan=lifespan)
    app.state.settings = settings
    app.state.taxonomy = taxonomy
    app.state.probe = probe
    app.state.manager = SessionManager.from_settings(settings)
    app.state.aggregator = SearchAggregator(
        site=site,
        taxonomy=taxonomy,
        parser=YggResultsParser(),
        rate_limiter=RateLimiter(settings.rate_limit_concurrency, settings.rate_limit_interval_seconds),
        resolver=resolver,
    )
    app.state.orchestrator = DownloadOrchestrator(
        site,
        probe,
        turbo=settings.turbo_enabled,
        cooldown=settings.download_cooldown_seconds,
    )
    app.state.session = None
    app.include_router(router)
    return app


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
