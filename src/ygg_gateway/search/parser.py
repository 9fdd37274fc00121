"""Result-page parsing via BeautifulSoup."""

from __future__ import annotations

import logging
import re

from bs4 import BeautifulSoup, Tag

from ygg_gateway.shared.exceptions import ParseError
from ygg_gateway.shared.models import Torrent

logger = logging.getLogger(__name__)

_ID_FROM_HREF_RE = re.compile(r"/(\d+)-[^/]*$")
_SIZE_RE = re.compile(r"([\d.,]+)\s*([kmgtp]?)[ob]", re.I)
_UNIT_POWER = {"": 0, "k": 1, "m": 2, "g": 3, "t": 4, "p": 5}
_COLUMNS = 9


class YggResultsParser:
    """Parse the origin's search result table.

    Implements the ``TorrentParser`` protocol. Columns, in order: category
    (hidden sub-category id), name link, NFO link (``target`` = torrent id),
    comments, age (hidden UNIX timestamp), size, completed, seeders,
    leechers. Rows that do not fit are skipped.
    """

    def extract_torrents(self, html: str) -> list[Torrent]:
        if not html or not html.strip():
            raise ParseError("empty result page")

        soup = BeautifulSoup(html, "lxml")
        rows = soup.select("div.results table tbody tr") or soup.select("table.table tbody tr")

        torrents: list[Torrent] = []
        for row in rows:
            torrent = self._parse_row(row)
            if torrent is not None:
                torrents.append(torrent)

        logger.debug("extracted %d torrent(s) from %d row(s)", len(torrents), len(rows))
        return torrents

    def _parse_row(self, row: Tag) -> Torrent | None:
        cells = row.find_all("td", recursive=False)
        if len(cells) < _COLUMNS:
            return None

        link = cells[1].find("a", id="torrent_name") or cells[1].find("a")
        if not isinstance(link, Tag):
            return None
        torrent_id = _torrent_id(link, cells[2])
        if torrent_id is None:
            logger.debug("skipping row without torrent id: %s", link.get_text(strip=True)[:80])
            return None

        return Torrent(
            id=torrent_id,
            name=link.get_text(strip=True),
            category_id=_to_int(_hidden_text(cells[0])),
            comments=_to_int(cells[3].get_text(strip=True)),
            publish_date=_to_int(_hidden_text(cells[4])),
            size=parse_size(cells[5].get_text(strip=True)),
            completed=_to_int(cells[6].get_text(strip=True)),
            seeders=_to_int(cells[7].get_text(strip=True)),
            leechers=_to_int(cells[8].get_text(strip=True)),
        )


def _torrent_id(link: Tag, nfo_cell: Tag) -> int | None:
    nfo = nfo_cell.find("a", attrs={"target": True})
    if isinstance(nfo, Tag):
        target = str(nfo.get("target", ""))
        if target.isdigit():
            return int(target)

    href = link.get("href")
    if isinstance(href, str):
        match = _ID_FROM_HREF_RE.search(href)
        if match:
            return int(match.group(1))
    return None


def _hidden_text(cell: Tag) -> str:
    hidden = cell.find("div", class_="hidden")
    return hidden.get_text(strip=True) if isinstance(hidden, Tag) else ""


def _to_int(value: str) -> int:
    try:
        return int(value.replace(" ", ""))
    except ValueError:
        return 0


def parse_size(text: str) -> int:
    """Convert a French-style size label (``1.40Go``, ``700 Mo``) to bytes."""
    match = _SIZE_RE.search(text)
    if not match:
        return 0
    number = float(match.group(1).replace(",", "."))
    return int(number * 1024 ** _UNIT_POWER[match.group(2).lower()])
