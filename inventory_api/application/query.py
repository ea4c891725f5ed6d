"""
Query options and paginated results shared by every list endpoint.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

from sqlalchemy.orm import Query

from inventory_api.core_settings import get_settings

SortSpec = List[Tuple[str, str]]

# id breaks ties between rows written in the same instant
MOST_RECENT_FIRST = (("created_at", "desc"), ("id", "desc"))


@dataclass
class QueryOptions:
    limit: int = 50
    skip: int = 0
    # (field, "asc" | "desc"); most recent first by default
    sort: SortSpec = field(default_factory=lambda: list(MOST_RECENT_FIRST))

    def __post_init__(self):
        max_limit = get_settings().MAX_PAGE_LIMIT
        self.limit = max(1, min(int(self.limit), max_limit))
        self.skip = max(0, int(self.skip))

    @classmethod
    def from_page(cls, page: int = 1, limit: int = None, sort_by: str = None, sort_order: str = "desc") -> "QueryOptions":
        if limit is None:
            limit = get_settings().DEFAULT_PAGE_LIMIT
        limit = max(1, min(int(limit), get_settings().MAX_PAGE_LIMIT))
        page = max(1, int(page))
        sort = [(sort_by, "asc" if sort_order == "asc" else "desc")] if sort_by else list(MOST_RECENT_FIRST)
        return cls(limit=limit, skip=(page - 1) * limit, sort=sort)

    def apply(self, query: Query, model) -> Query:
        """Apply ordering and the skip/limit window; unknown sort fields are ignored."""
        for name, direction in self.sort:
            if name not in model.__table__.columns:
                continue
            column = getattr(model, name)
            query = query.order_by(column.asc() if direction == "asc" else column.desc())
        return query.offset(self.skip).limit(self.limit)


@dataclass
class Page:
    documents: Sequence[Any]
    pagination: Dict[str, Any]


def build_pagination(total: int, options: QueryOptions) -> Dict[str, Any]:
    return {
        "total": total,
        "limit": options.limit,
        "skip": options.skip,
        "page": options.skip // options.limit + 1,
        "totalPages": math.ceil(total / options.limit) if total else 0,
        "hasNext": options.skip + options.limit < total,
        "hasPrev": options.skip > 0,
    }


def paginate(query: Query, model, options: QueryOptions) -> Page:
    total = query.order_by(None).count()
    documents = options.apply(query, model).all()
    return Page(documents=documents, pagination=build_pagination(total, options))
