"""Pagination helpers shared by every list endpoint."""

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_LIMIT = 100


@dataclass(frozen=True)
class PageParams:
    """Normalized page number and page size."""

    page: int
    limit: int

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    def slice(self, items: Sequence[Any]) -> List[Any]:
        """Return the items that fall on this page."""
        return list(items[self.skip : self.skip + self.limit])


def parse_pagination(
    page: Optional[int] = None,
    limit: Optional[int] = None,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
) -> PageParams:
    """Clamp raw query values: page >= 1 and 1 <= limit <= max_limit."""
    page = max(1, int(page or DEFAULT_PAGE))
    limit = int(limit or default_limit)
    limit = min(max(1, limit), max_limit)
    return PageParams(page=page, limit=limit)


def build_pagination_meta(page: int, limit: int, total_items: int) -> Dict[str, Any]:
    total_pages = math.ceil(total_items / limit) if limit else 0
    return {
        "page": page,
        "limit": limit,
        "totalItems": total_items,
        "totalPages": total_pages,
        "hasNext": page < total_pages,
        "hasPrev": page > 1,
    }
