"""
Offset/limit pagination and the page envelope.
"""
import math
from typing import Callable, List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING
from pymongo.collection import Collection

from errors import ValidationError

DEFAULT_LIMIT = 10
MAX_LIMIT = 100

SORT_DIRECTIONS = {"asc": ASCENDING, "desc": DESCENDING}


def validate_page(page: int, limit: int, max_limit: int = MAX_LIMIT) -> Tuple[int, int]:
    if page < 1:
        raise ValidationError("Page must be at least 1")
    if limit < 1:
        raise ValidationError("Limit must be at least 1")
    if limit > max_limit:
        raise ValidationError(f"Limit cannot exceed {max_limit}")
    return page, limit


def sort_spec(sort_by: str, sort_dir: str, allowed: Tuple[str, ...]) -> List[Tuple[str, int]]:
    if sort_by not in allowed:
        raise ValidationError("Invalid sort field")
    if sort_dir not in SORT_DIRECTIONS:
        raise ValidationError("Sort direction must be 'asc' or 'desc'")
    direction = SORT_DIRECTIONS[sort_dir]
    return [(sort_by, direction), ("_id", direction)]


def page_envelope(docs: list, total: int, page: int, limit: int) -> dict:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "docs": docs,
        "totalDocs": total,
        "page": page,
        "limit": limit,
        "totalPages": total_pages,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }


def paginate(
    collection: Collection,
    filter_dict: dict,
    page: int,
    limit: int,
    sort: Optional[List[Tuple[str, int]]] = None,
    compose: Optional[Callable[[List[dict]], list]] = None,
) -> dict:
    """Run one page of `filter_dict` and wrap it in the page envelope.

    `compose` receives the raw page of documents and returns the rendered
    items, so joins can be batched over the whole page.
    """
    validate_page(page, limit)
    total = collection.count_documents(filter_dict)
    sort = sort or [("created_at", DESCENDING), ("_id", DESCENDING)]
    docs = list(collection.find(filter_dict).sort(sort).skip((page - 1) * limit).limit(limit))
    items = compose(docs) if compose else docs
    return page_envelope(items, total, page, limit)
