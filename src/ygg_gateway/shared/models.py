"""Frozen Pydantic domain models shared by all modules."""

from __future__ import annotations

from pydantic import BaseModel

from ygg_gateway.shared.enums import Order, Sort


class Torrent(BaseModel):
    """One row of an origin-site result page.

    Identity is the site-assigned ``id``: two records with the same id are
    equal and hash alike even when their counters differ, which is what lets
    overlapping result pages be merged into a set.
    """

    model_config = {"frozen": True}

    id: int
    name: str
    category_id: int = 0
    comments: int = 0
    publish_date: int = 0
    size: int = 0
    completed: int = 0
    seeders: int = 0
    leechers: int = 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Torrent):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)


class SubCategory(BaseModel):
    model_config = {"frozen": True}

    id: int
    name: str


class Category(BaseModel):
    """A top-level category and its ordered sub-categories."""

    model_config = {"frozen": True}

    id: int
    name: str = ""
    sub_categories: tuple[SubCategory, ...] = ()


class SearchParams(BaseModel):
    """Parameters of one physical search against the origin site."""

    model_config = {"frozen": True}

    name: str = ""
    offset: int | None = None
    category: int | None = None
    sub_category: int | None = None
    sort: Sort | None = None
    order: Order | None = None
    ban_words: tuple[str, ...] = ()
    quote_search: bool = False


class SearchRequest(BaseModel):
    """An inbound Torznab-style query before it is expanded into physical searches."""

    model_config = {"frozen": True}

    name: str | None = None
    q: str | None = None
    offset: int | None = None
    category: int | None = None
    sub_category: int | None = None
    sort: Sort | None = None
    order: Order | None = None
    ban_words: tuple[str, ...] = ()
    quote_search: bool = False
    categories: tuple[int, ...] | None = None
    tmdbid: str | None = None
    imdbid: str | None = None
    connarr: bool = False

    def to_params(self, **overrides: object) -> SearchParams:
        """Build physical search parameters from this request, applying ``overrides``."""
        values: dict[str, object] = {
            "name": self.name or "",
            "offset": self.offset,
            "category": self.category,
            "sub_category": self.sub_category,
            "sort": self.sort,
            "order": self.order,
            "ban_words": self.ban_words,
            "quote_search": self.quote_search,
        }
        values.update(overrides)
        return SearchParams(**values)
