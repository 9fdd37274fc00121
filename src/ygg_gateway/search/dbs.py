"""TMDB client expanding TMDB/IMDB ids into title queries."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ygg_gateway.shared.enums import ExternalDb
from ygg_gateway.shared.exceptions import MetadataLookupError

logger = logging.getLogger(__name__)


class TmdbQueryResolver:
    """Resolve external ids to candidate search titles via the TMDB v3 API.

    Implements the ``QueryResolver`` protocol. The French title comes first
    (the origin site indexes French releases), then the original title.
    """

    def __init__(
        self,
        token: str,
        *,
        base_url: str = "https://api.themoviedb.org/3",
        language: str = "fr-FR",
        timeout: int = 15,
    ) -> None:
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._language = language
        self._timeout = timeout

    async def get_queries(self, external_id: str, db: ExternalDb) -> list[str]:
        """Return de-duplicated title candidates for ``external_id``.

        Raises:
            MetadataLookupError: If TMDB is unreachable or knows nothing about the id.
        """
        async with httpx.AsyncClient(
            timeout=self._timeout,
            headers={"Authorization": f"Bearer {self._token}", "Accept": "application/json"},
        ) as client:
            if db is ExternalDb.IMDB:
                item = await self._find_imdb(client, external_id)
            else:
                item = await self._find_tmdb(client, external_id)

        queries = _titles(item)
        if not queries:
            raise MetadataLookupError(f"no title found for {db.value} id {external_id}")
        logger.info("resolved %s id %s to %d queries", db.value, external_id, len(queries))
        return queries

    async def _find_tmdb(self, client: httpx.AsyncClient, tmdb_id: str) -> dict[str, Any]:
        for kind in ("movie", "tv"):
            data = await self._get(client, f"/{kind}/{tmdb_id}")
            if data is not None:
                return data
        raise MetadataLookupError(f"TMDB id {tmdb_id} not found")

    async def _find_imdb(self, client: httpx.AsyncClient, imdb_id: str) -> dict[str, Any]:
        data = await self._get(client, f"/find/{imdb_id}", external_source="imdb_id")
        for key in ("movie_results", "tv_results"):
            results = (data or {}).get(key) or []
            if results:
                return results[0]
        raise MetadataLookupError(f"IMDB id {imdb_id} not found")

    async def _get(self, client: httpx.AsyncClient, path: str, **params: str) -> dict[str, Any] | None:
        try:
            resp = await client.get(f"{self._base_url}{path}", params={"language": self._language, **params})
            if resp.status_code == 404:
                return None
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as exc:
            raise MetadataLookupError(
                f"TMDB returned {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise MetadataLookupError(f"TMDB request failed: {exc}") from exc


def _titles(item: dict[str, Any]) -> list[str]:
    candidates = [
        item.get("title") or item.get("name"),
        item.get("original_title") or item.get("original_name"),
    ]
    queries: list[str] = []
    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip() and candidate.strip() not in queries:
            queries.append(candidate.strip())
    return queries
