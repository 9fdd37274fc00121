"""Search aggregation: one logical query, many physical ones."""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections.abc import Sequence

from ygg_gateway.search.interfaces import QueryResolver, TorrentParser
from ygg_gateway.search.query import build_query_url, filter_ban_words, sort_torrents
from ygg_gateway.search.rate_limiter import RateLimiter
from ygg_gateway.search.taxonomy import CategoryTaxonomy
from ygg_gateway.session.interfaces import YggClient
from ygg_gateway.session.renewal import Renewer, with_session_renewal
from ygg_gateway.shared.enums import ExternalDb, Order, Sort
from ygg_gateway.shared.exceptions import MetadataLookupError, SessionExpiredError, TransportError
from ygg_gateway.shared.models import SearchParams, SearchRequest, Torrent
from ygg_gateway.shared.site import Site, is_session_expired

logger = logging.getLogger(__name__)

# A title query returning more than this many hits is taken as the match.
UNAMBIGUOUS_MATCH = 5

_Outcome = list[Torrent] | BaseException


class SearchAggregator:
    """Expand, issue, merge and order searches against the origin site.

    Every physical search goes through the shared ``RateLimiter``. Fan-out
    searches run concurrently; their outcomes are then evaluated in query
    order, so the result only depends on the set of per-query outcomes.
    """

    def __init__(
        self,
        *,
        site: Site,
        taxonomy: CategoryTaxonomy,
        parser: TorrentParser,
        rate_limiter: RateLimiter,
        resolver: QueryResolver | None = None,
    ) -> None:
        self._site = site
        self._taxonomy = taxonomy
        self._parser = parser
        self._rate_limiter = rate_limiter
        self._resolver = resolver

    async def search(self, client: YggClient, params: SearchParams) -> list[Torrent]:
        """Run one physical search.

        Raises:
            SessionExpiredError: The site bounced the request to its login page.
            TransportError: The site answered with an error status.
            ParseError: The result page could not be parsed.
        """
        url = build_query_url(self._site, self._taxonomy, params)
        logger.debug("searching %s", url)
        start = time.monotonic()

        async with self._rate_limiter.acquire():
            response = await client.get(url)

        if is_session_expired(response.status, response.url):
            logger.warning("session expired (status=%d, url=%s)", response.status, response.url)
            raise SessionExpiredError(f"Session expired while searching {params.name!r}")
        if response.status >= 400:
            raise TransportError(f"search returned HTTP {response.status}")

        torrents = filter_ban_words(self._parser.extract_torrents(response.body), params.ban_words)
        logger.debug("found %d torrents in %.2fs", len(torrents), time.monotonic() - start)
        return torrents

    async def batch_best_search(
        self,
        client: YggClient,
        queries: Sequence[str],
        params: SearchParams,
    ) -> list[Torrent]:
        """Search every candidate title and keep the best-matching results.

        - The first candidate (in query order) with more than five hits wins
          outright and its sorted results are returned.
        - Otherwise candidates with five hits are merged, and a non-empty
          candidate is also merged while nothing else has been.
        - Other failures are logged and skipped.

        Raises:
            SessionExpiredError: No candidate won outright and at least one expired.
        """
        logger.debug("starting parallel search for %d queries", len(queries))
        outcomes = await self._gather(client, [params.model_copy(update={"name": q}) for q in queries])

        for idx, outcome in enumerate(outcomes):
            if isinstance(outcome, list) and len(outcome) > UNAMBIGUOUS_MATCH:
                logger.debug("query #%d (%s) found %d torrents, returning it", idx + 1, queries[idx], len(outcome))
                return sort_torrents(outcome, params.sort, params.order)
        self._raise_if_expired(outcomes)

        collected: dict[Torrent, None] = {}
        for idx, outcome in enumerate(outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("search failed for query #%d (%s): %s", idx + 1, queries[idx], outcome)
            elif len(outcome) >= UNAMBIGUOUS_MATCH or (outcome and not collected):
                logger.debug("query #%d (%s) found %d torrents, merging", idx + 1, queries[idx], len(outcome))
                collected.update(dict.fromkeys(t for t in outcome if t not in collected))
            else:
                logger.debug("query #%d (%s) returned %d results", idx + 1, queries[idx], len(outcome))

        if not collected:
            logger.debug("all title queries returned empty results")
        return sort_torrents(collected, params.sort, params.order)

    async def batch_category_search(
        self,
        client: YggClient,
        categories: Sequence[int],
        params: SearchParams,
    ) -> list[Torrent]:
        """Search each category and return the de-duplicated union, sorted.

        Raises:
            SessionExpiredError: At least one category search expired.
        """
        logger.debug("starting parallel search across %d categories", len(categories))
        outcomes = await self._gather(client, [params.model_copy(update={"category": c}) for c in categories])
        self._raise_if_expired(outcomes)

        collected: dict[Torrent, None] = {}
        for category, outcome in zip(categories, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("search failed for category %d: %s", category, outcome)
                continue
            logger.debug("category %d returned %d results", category, len(outcome))
            collected.update(dict.fromkeys(t for t in outcome if t not in collected))

        logger.debug("returning %d merged torrents from %d categories", len(collected), len(categories))
        return sort_torrents(collected, params.sort, params.order)

    async def run(self, client: YggClient, request: SearchRequest, *, renew: Renewer | None = None) -> list[Torrent]:
        """Dispatch an inbound query to the right search and handle session expiry.

        Args:
            client: Client for the first attempt.
            request: The inbound query.
            renew: Re-authenticates on expiry; ``None`` for callers using
                their own cookies, whose expiry is returned to them as-is.
        """
        categories = request.categories
        if categories and request.connarr and len(categories) > 2:
            logger.debug("ignoring over-broad category list %s", categories)
            categories = None

        external = _external_id(request)
        if external is not None:
            return await self._external_search(client, request, external, renew)

        name = request.name if request.name is not None else request.q
        sort, order = request.sort, request.order
        if name is None and request.connarr:
            # RSS feed consumers expect the newest releases first.
            sort, order = Sort.PUBLISH_DATE, Order.DESCENDING
        params = request.to_params(name=name or "", sort=sort, order=order)

        if request.category is None and categories:
            logger.debug("performing bulk search across categories %s", categories)
            attempt = functools.partial(self.batch_category_search, categories=categories, params=params)
        else:
            attempt = functools.partial(self.search, params=params)

        torrents = await with_session_renewal(attempt, client, renew)
        logger.info("%d torrents found", len(torrents))
        return torrents

    async def _external_search(
        self,
        client: YggClient,
        request: SearchRequest,
        external: tuple[str, ExternalDb],
        renew: Renewer | None,
    ) -> list[Torrent]:
        external_id, db = external
        if self._resolver is None:
            logger.warning("database id provided but no TMDB token configured, skipping database search")
            return []

        try:
            queries = await self._resolver.get_queries(external_id, db)
        except MetadataLookupError as exc:
            logger.warning("failed to get %s queries for id %s: %s", db.value, external_id, exc)
            return []

        attempt = functools.partial(self.batch_best_search, queries=queries, params=request.to_params())
        torrents = await with_session_renewal(attempt, client, renew)
        logger.info("%d torrents found via %s search", len(torrents), db.value)
        return torrents

    async def _gather(self, client: YggClient, searches: list[SearchParams]) -> list[_Outcome]:
        outcomes = await asyncio.gather(*(self.search(client, p) for p in searches), return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome
        return list(outcomes)

    @staticmethod
    def _raise_if_expired(outcomes: list[_Outcome]) -> None:
        expired = [o for o in outcomes if isinstance(o, SessionExpiredError)]
        if expired:
            raise SessionExpiredError(f"Session expired in {len(expired)} of {len(outcomes)} searches") from expired[0]


def _external_id(request: SearchRequest) -> tuple[str, ExternalDb] | None:
    if request.tmdbid:
        return request.tmdbid, ExternalDb.TMDB
    if request.imdbid:
        return request.imdbid, ExternalDb.IMDB
    return None
