"""Read-only snapshot of the origin site's category tree."""

from __future__ import annotations

import json
import logging
from importlib import resources
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from ygg_gateway.shared.exceptions import ParseError
from ygg_gateway.shared.models import Category

logger = logging.getLogger(__name__)

_CATEGORIES = TypeAdapter(tuple[Category, ...])

# Shipped with the package, used unless a file is configured.
BUNDLED_CATEGORIES = "categories.json"


class CategoryTaxonomy:
    """Immutable category tree, loaded once and injected where needed."""

    def __init__(self, categories: tuple[Category, ...] = ()) -> None:
        self._categories = tuple(categories)

    @property
    def categories(self) -> tuple[Category, ...]:
        return self._categories

    def __len__(self) -> int:
        return len(self._categories)

    def resolve(self, category_id: int) -> tuple[str, str] | None:
        """Map a category id to the ``(category, sub_category)`` query pair.

        A top-level id maps to ``(id, "all")``, a sub-category id to
        ``(parent_id, id)``. Unknown ids give ``None``.
        """
        for category in self._categories:
            if category.id == category_id:
                return str(category_id), "all"
            for sub in category.sub_categories:
                if sub.id == category_id:
                    return str(category.id), str(category_id)
        return None

    def to_json(self) -> list[dict[str, object]]:
        return [c.model_dump(mode="json") for c in self._categories]


def load_taxonomy(path: str | Path | None = None) -> CategoryTaxonomy:
    """Load the taxonomy from a JSON file, or the bundled snapshot when no path is given.

    A missing file yields an empty taxonomy (searches then carry no
    category filter); a malformed one is an error.

    Raises:
        ParseError: If the file exists but does not hold a category list.
    """
    if not path:
        source = resources.files("ygg_gateway.search").joinpath(BUNDLED_CATEGORIES)
        return _parse(source.read_text(encoding="utf-8"), f"bundled {BUNDLED_CATEGORIES}")

    file = Path(path)
    if not file.exists():
        logger.warning("categories file %s not found, category filters disabled", file)
        return CategoryTaxonomy()
    return _parse(file.read_text(encoding="utf-8"), str(file))


def _parse(text: str, source: str) -> CategoryTaxonomy:
    try:
        categories = _CATEGORIES.validate_python(json.loads(text))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ParseError(f"invalid categories file {source}: {exc}") from exc

    logger.info("loaded %d categories from %s", len(categories), source)
    return CategoryTaxonomy(categories)
