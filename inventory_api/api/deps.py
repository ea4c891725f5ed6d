from typing import Optional

from fastapi import Query, Request

from inventory_api.application.query import QueryOptions
from inventory_api.core_settings import get_settings
from shared.core import ACTOR_HEADER
from .auth_local import actor_from_authorization


def get_actor(request: Request) -> str:
    """Acting user for ledger entries: X-User header, then a bearer token subject, then the default actor."""
    return (
        request.headers.get(ACTOR_HEADER)
        or actor_from_authorization(request.headers.get("Authorization"))
        or get_settings().DEFAULT_ACTOR
    )


def get_query_options(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    sort_by: Optional[str] = None,
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
) -> QueryOptions:
    return QueryOptions.from_page(page=page, limit=limit, sort_by=sort_by, sort_order=sort_order)
