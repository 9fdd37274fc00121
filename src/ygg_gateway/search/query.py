"""Search URL construction and result post-processing."""

from __future__ import annotations

from collections.abc import Iterable
from urllib.parse import quote, unquote

from ygg_gateway.search.taxonomy import CategoryTaxonomy
from ygg_gateway.shared.enums import Order, Sort
from ygg_gateway.shared.models import SearchParams, Torrent
from ygg_gateway.shared.site import SEARCH_PAGE, Site

_SORT_KEYS = {
    Sort.NAME: lambda t: t.name.lower(),
    Sort.SEED: lambda t: t.seeders,
    Sort.COMMENTS: lambda t: t.comments,
    Sort.PUBLISH_DATE: lambda t: t.publish_date,
    Sort.COMPLETED: lambda t: t.completed,
    Sort.LEECH: lambda t: t.leechers,
}


def quote_words(name: str) -> str:
    """Wrap every word of ``name`` in double quotes (exact-phrase search).

    The name may arrive still URL-encoded, with ``+`` or spaces between words.
    """
    if not name:
        return name
    words = unquote(name).replace("+", " ").split()
    return " ".join(f'"{word}"' for word in words)


def build_query_url(site: Site, taxonomy: CategoryTaxonomy, params: SearchParams) -> str:
    name = quote_words(params.name) if params.quote_search else params.name

    url = f"{site.url(SEARCH_PAGE)}?name={quote(name, safe='')}"
    if params.offset is not None:
        url += f"&page={params.offset}"
    if params.category is not None:
        pair = taxonomy.resolve(params.category)
        if pair is not None:
            url += f"&category={pair[0]}&sub_category={pair[1]}"
    if params.sub_category is not None:
        url += f"&sub_category={params.sub_category}"
    if params.sort is not None:
        url += f"&sort={params.sort.value}"
    if params.order is not None:
        url += f"&order={params.order.value}"
    return url + "&do=search"


def filter_ban_words(torrents: Iterable[Torrent], ban_words: Iterable[str]) -> list[Torrent]:
    """Drop torrents whose name contains any ban word, case-insensitively."""
    words = [w.lower() for w in ban_words if w]
    if not words:
        return list(torrents)
    return [t for t in torrents if not any(w in t.name.lower() for w in words)]


def sort_torrents(torrents: Iterable[Torrent], sort: Sort | None, order: Order | None) -> list[Torrent]:
    """Stable sort by ``sort``; descending unless ``order`` says otherwise.

    Without a sort key the incoming (document) order is kept.
    """
    result = list(torrents)
    if sort is None:
        return result
    result.sort(key=_SORT_KEYS[sort], reverse=order is not Order.ASCENDING)
    return result
