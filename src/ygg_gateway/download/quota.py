"""Remaining-downloads indicator scraped from a torrent page."""

from __future__ import annotations

import logging

from bs4 import BeautifulSoup, Tag

from ygg_gateway.session.interfaces import YggClient
from ygg_gateway.shared.exceptions import ParseError, SessionExpiredError, TransportError
from ygg_gateway.shared.site import Site, is_session_expired

logger = logging.getLogger(__name__)

QUOTA_REACHED_MARKER = "Limite atteinte"
# Returned when the page carries no indicator at all.
UNKNOWN_REMAINING = 65535


class RemainingDownloadsProbe:
    """Read today's remaining-download count from a content page.

    The origin only shows the counter on torrent pages, so any stable page
    will do; ``path`` is configurable for when the default one disappears.
    """

    def __init__(self, site: Site, path: str) -> None:
        self._url = site.url(path)

    async def remaining(self, client: YggClient) -> int:
        """Return the number of downloads left today.

        Raises:
            SessionExpiredError: The page bounced to the login page.
            TransportError: The page could not be fetched.
            ParseError: The indicator is present but unreadable.
        """
        logger.debug("fetching remaining downloads information")
        response = await client.get(self._url)
        if is_session_expired(response.status, response.url):
            raise SessionExpiredError("Session expired while checking remaining downloads")
        if not response.ok:
            raise TransportError(f"remaining downloads page returned HTTP {response.status}")
        return parse_remaining(response.body)


def parse_remaining(html: str) -> int:
    """Extract ``n`` from the ``<strong>n/m</strong>`` counter of a torrent page."""
    if QUOTA_REACHED_MARKER in html:
        return 0

    soup = BeautifulSoup(html, "lxml")
    small = soup.select_one('small[style="color: #888;"]')
    if small is None:
        return UNKNOWN_REMAINING

    strong = small.find("strong")
    if not isinstance(strong, Tag):
        raise ParseError("strong tag not found in remaining downloads info")

    parts = strong.get_text(strip=True).split("/")
    if len(parts) != 2 or not parts[0].strip().isdigit():
        raise ParseError(f"invalid remaining downloads format: {strong.get_text(strip=True)!r}")
    return int(parts[0].strip())
