"""Interfaces for the search module."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from ygg_gateway.shared.enums import ExternalDb
from ygg_gateway.shared.models import Torrent


@runtime_checkable
class TorrentParser(Protocol):
    """Protocol for turning a result page into torrent records."""

    def extract_torrents(self, html: str) -> list[Torrent]:
        """Parse a search result page.

        Args:
            html: Raw page body.

        Returns:
            Torrent records in document order.

        Raises:
            ParseError: If the page does not look like a result page.
        """
        ...


@runtime_checkable
class QueryResolver(Protocol):
    """Protocol for expanding an external metadata id into title queries."""

    async def get_queries(self, external_id: str, db: ExternalDb) -> list[str]:
        """Resolve ``external_id`` to candidate search strings.

        Args:
            external_id: TMDB numeric id or IMDB ``tt`` id.
            db: Which database the id belongs to.

        Returns:
            De-duplicated candidate titles, most specific first.
        """
        ...
