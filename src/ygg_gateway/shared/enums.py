"""Domain enumerations used across all modules."""

from __future__ import annotations

from enum import Enum, unique


@unique
class Sort(str, Enum):
    """Sort keys understood by the origin search engine."""

    NAME = "name"
    SEED = "seed"
    COMMENTS = "comments"
    PUBLISH_DATE = "publish_date"
    COMPLETED = "completed"
    LEECH = "leech"


@unique
class Order(str, Enum):
    """Sort direction."""

    ASCENDING = "asc"
    DESCENDING = "desc"


@unique
class ExternalDb(str, Enum):
    """External metadata databases a search can be keyed on."""

    TMDB = "tmdb"
    IMDB = "imdb"
